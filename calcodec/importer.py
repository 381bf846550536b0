"""
Component-by-component import of large iCalendar files.

The file is read line by line.  Everything from BEGIN:VCALENDAR up to the
first event/task/free-busy block (METHOD, PRODID, VTIMEZONEs, ...) is
kept as the calendar header, and each block is decoded on its own,
wrapped in that header.  Blocks of the same recurring series are kept
together so exceptions end up with their master.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Iterator, Optional

from calcodec.codec import CalendarCodec
from calcodec.component import parse_components
from calcodec.lib import vcal
from calcodec.lib.error import ParseError
from calcodec.model import EventRecord

log = logging.getLogger("calcodec")

## The signature has to show up this early in a file
SNIFF_SIZE = 1024

_BLOCK_BEGIN_RE = re.compile(r"^BEGIN:(VEVENT|VTODO|VFREEBUSY)\s*$", re.IGNORECASE)
_BLOCK_END_RE = re.compile(r"^END:(VEVENT|VTODO|VFREEBUSY)\s*$", re.IGNORECASE)
_LINKED_RE = re.compile(r"^(RRULE|RECURRENCE-ID)[;:]", re.IGNORECASE | re.MULTILINE)
_UID_RE = re.compile(r"^UID(?:;[^:\n]*)?:(.*)$", re.IGNORECASE | re.MULTILINE)


def _uid_of(block: str) -> Optional[str]:
    match = _UID_RE.search(block)
    return match.group(1).strip() if match else None


class StreamingImporter:
    """Iterates over the records of an iCalendar source.

    :param source: iterable of lines (an open file, a list of str, ...)
    :param codec: the CalendarCodec used for decoding; method and agent
        of the calendar end up on it
    :param forward_exceptions: raise instead of logging and skipping
        blocks that can't be decoded

    Decoded records are yielded in file order and also collected in
    ``objects``.
    """

    def __init__(
        self,
        source: Iterable[str],
        codec: Optional[CalendarCodec] = None,
        forward_exceptions: Optional[bool] = None,
        source_name: Optional[str] = None,
    ) -> None:
        self.codec = codec if codec is not None else CalendarCodec()
        if forward_exceptions is None:
            forward_exceptions = self.codec.forward_exceptions
        self.forward_exceptions = forward_exceptions
        self.source = source
        self.source_name = source_name
        self.objects: list[EventRecord] = []
        self._lines = iter(source)
        self._header: list[str] = []
        self._in_header = False
        self._pending: Optional[tuple[list[str], str]] = None

    @classmethod
    def open(
        cls, path, codec: Optional[CalendarCodec] = None, forward_exceptions: Optional[bool] = None
    ) -> Optional["StreamingImporter"]:
        """An importer reading from the file at ``path``, or None if the
        file doesn't start like iCalendar data"""
        with open(path, "rb") as fp:
            head = fp.read(SNIFF_SIZE)
        if b"BEGIN:VCALENDAR" not in head.upper():
            log.error(f"{path} does not look like an iCalendar file")
            return None
        fp = open(path, "r", encoding="utf-8-sig", errors="replace", newline="")
        return cls(fp, codec=codec, forward_exceptions=forward_exceptions, source_name=str(path))

    def close(self) -> None:
        close = getattr(self.source, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "StreamingImporter":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def _read_block(self) -> Optional[tuple[list[str], str]]:
        """The next event/task/free-busy block, together with the header
        of the calendar it belongs to"""
        buffer: list[str] = []
        for raw in self._lines:
            line = raw.rstrip("\r\n")
            if not line.strip():
                continue
            upper = line.upper()
            if upper.startswith("BEGIN:VCALENDAR"):
                self._header = [line]
                self._in_header = True
                continue
            if upper.startswith("END:VCALENDAR"):
                self._in_header = False
                continue
            if self._in_header:
                if not _BLOCK_BEGIN_RE.match(line):
                    self._header.append(line)
                    continue
                self._in_header = False
            buffer.append(line)
            if _BLOCK_END_RE.match(line):
                return self._header, "\n".join(buffer)
        if buffer:
            ## truncated file, let the parser complain about it
            return self._header, "\n".join(buffer)
        return None

    def _next_unit(self) -> Optional[tuple[list[str], list[str]]]:
        """The next block, plus the directly following blocks that carry a
        recurrence rule, a recurrence id or the same UID"""
        first = self._pending or self._read_block()
        self._pending = None
        if first is None:
            return None
        header, block = first
        blocks = [block]
        uids = {_uid_of(block)}
        while True:
            following = self._read_block()
            if following is None:
                break
            following_header, following_block = following
            if following_header is header and (
                _LINKED_RE.search(following_block) or _uid_of(following_block) in uids
            ):
                blocks.append(following_block)
                uids.add(_uid_of(following_block))
            else:
                self._pending = following
                break
        return header, blocks

    def _decode(self, header: list[str], blocks: list[str]) -> list[EventRecord]:
        lines = header or ["BEGIN:VCALENDAR"]
        text = "\n".join([*lines, *blocks, "END:VCALENDAR"]) + "\n"
        roots = parse_components(vcal.fix(text))
        return self.codec.import_components(roots, self.forward_exceptions)

    def _decode_unit(self, header: list[str], blocks: list[str]) -> list[EventRecord]:
        try:
            return self._decode(header, blocks)
        except ParseError as exc:
            if self.forward_exceptions:
                exc.source = exc.source or self.source_name
                raise
            if len(blocks) == 1:
                log.error(f"skipping undecodable component: {exc}")
                self.codec.errors.append(exc)
                return []
        ## one of the grouped blocks is broken, salvage the others
        ret: list[EventRecord] = []
        for block in blocks:
            try:
                ret.extend(self._decode(header, [block]))
            except ParseError as exc:
                log.error(f"skipping undecodable component: {exc}")
                self.codec.errors.append(exc)
        return ret

    def __iter__(self) -> Iterator[EventRecord]:
        while True:
            unit = self._next_unit()
            if unit is None:
                return
            for record in self._decode_unit(*unit):
                self.objects.append(record)
                yield record
