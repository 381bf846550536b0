#!/usr/bin/env python
"""
The CalendarCodec: import and export of whole calendars.

Decoding and encoding of single components is done by
:mod:`calcodec.convert`; this module deals with what happens around it:
the VCALENDAR container, linking recurrence exceptions to their master,
the user's timezone, VTIMEZONE generation, free/busy data and the
memory and attachment collaborators.
"""

from __future__ import annotations

import logging
import re
from datetime import tzinfo
from typing import Callable, Iterable, Optional, Union

from calcodec import __version__
from calcodec.component import Component, Property, parse_components
from calcodec.convert.decode import decode_component, decode_freebusy
from calcodec.convert.encode import EncodeOptions, encode_record
from calcodec.instant import get_zone
from calcodec.lib import vcal
from calcodec.lib.error import (
    CalCodecError,
    ParseError,
    ValidationError,
    ZoneNotFoundError,
    weirdness,
)
from calcodec.lib.python_utilities import to_normal_str
from calcodec.model import Attachment, EventRecord, FreeBusyRecord
from calcodec.timezones import TimeZoneTransitionResolver

log = logging.getLogger("calcodec")

## Rough memory footprint of one decoded event/task
RECORD_MEMORY_ESTIMATE = 70 * 1024


class CalendarCodec:
    """Converts between iCalendar data and EventRecords.

    :param prodid: PRODID written on export
    :param agent: the product that produced (or will consume) the data.
        Set from the PRODID when importing; an agent containing "outlook"
        gets Outlook specific properties on export.
    :param timezone: zone (name or tzinfo) decoded instants are moved to
    :param attach_uri: template for attachment links, ``{{id}}``,
        ``{{name}}`` and ``{{mimetype}}`` are replaced
    :param get_attachment: callable returning the payload of an
        Attachment, for embedding attachments on export
    :param memory_budget: bytes embedded attachments may use per export
    :param forward_exceptions: raise errors from single records in
        multi-record imports instead of logging and skipping them
    """

    def __init__(
        self,
        prodid: Optional[str] = None,
        agent: str = "",
        timezone: Union[str, tzinfo, None] = None,
        attach_uri: Optional[str] = None,
        get_attachment: Optional[Callable[[Attachment], Optional[bytes]]] = None,
        memory_budget: Optional[int] = None,
        forward_exceptions: bool = False,
    ) -> None:
        self.prodid = prodid or f"-//calcodec//calcodec {__version__}//EN"
        self.agent = agent or ""
        if isinstance(timezone, str):
            zone = get_zone(timezone)
            if zone is None:
                raise ZoneNotFoundError(timezone)
            timezone = zone
        self.timezone = timezone
        self.attach_uri = attach_uri
        self.get_attachment = get_attachment
        self.memory_budget = memory_budget
        self.forward_exceptions = forward_exceptions
        self.resolver = TimeZoneTransitionResolver()
        self.reset()

    @classmethod
    def from_config(cls, fn: Optional[str] = None, section: str = "default", **kwargs) -> "CalendarCodec":
        """A codec set up from a config file section, see
        :mod:`calcodec.config`.  Keyword arguments override the file."""
        from calcodec.config import codec_options, read_config

        options = codec_options(read_config(fn) or {}, section)
        options.update(kwargs)
        return cls(**options)

    def reset(self) -> None:
        """Forget everything learned from previous imports"""
        self.method: Optional[str] = None
        self.objects: list[EventRecord] = []
        self.freebusy: Optional[FreeBusyRecord] = None
        self.errors: list[CalCodecError] = []

    ## Decoding

    def decode(self, component: Component, method: Optional[str] = None) -> EventRecord:
        """One VEVENT/VTODO component to an EventRecord, moved to the
        codec's timezone.  Raises ValidationError."""
        record = decode_component(component, method or self.method)
        if self.timezone is not None:
            record.set_timezone(self.timezone)
        return record

    def import_components(
        self, components: Iterable[Component], forward_exceptions: Optional[bool] = None
    ) -> list[EventRecord]:
        """Decode VCALENDAR components (or bare VEVENT/VTODO/VFREEBUSY
        components), and link recurrence exceptions to their master.

        Exceptions become part of the master record with the same UID;
        an exception without master is returned as a record of its own.
        """
        forward = self.forward_exceptions if forward_exceptions is None else forward_exceptions
        masters: dict[str, EventRecord] = {}
        records: list[EventRecord] = []
        overrides: list[EventRecord] = []

        for root in components:
            if root.name == "VCALENDAR":
                method = root.get("METHOD")
                if method is not None:
                    self.method = method.text().strip().upper()
                prodid = root.get("PRODID")
                if prodid is not None:
                    self.agent = prodid.text()
                children = root.subcomponents
            else:
                children = [root]

            for component in children:
                if component.name == "VFREEBUSY":
                    self.freebusy = decode_freebusy(component)
                    continue
                if component.name not in ("VEVENT", "VTODO"):
                    continue
                try:
                    record = self.decode(component)
                except ValidationError as exc:
                    if forward:
                        raise
                    log.error(f"skipping invalid {component.name}: {exc}")
                    self.errors.append(exc)
                    continue
                if record.is_override:
                    overrides.append(record)
                elif record.uid in masters:
                    weirdness("duplicate master record, ignoring it", record.uid)
                else:
                    masters[record.uid] = record
                    records.append(record)

        for override in overrides:
            master = masters.get(override.uid)
            if master is None:
                masters[override.uid] = override
                records.append(override)
            else:
                master.add_exception(override)
        return records

    def import_ical(
        self,
        data: Union[str, bytes],
        forward_exceptions: Optional[bool] = None,
        memcheck: Optional[Callable[[int], bool]] = None,
    ) -> list[EventRecord]:
        """Decode all events and tasks of some iCalendar text.

        ``memcheck`` is asked whether the expected memory for the number
        of events/tasks in the data is available; if not, nothing is
        decoded.  Broken data gives an empty list (and an entry in
        ``errors``) unless ``forward_exceptions`` is set.
        """
        forward = self.forward_exceptions if forward_exceptions is None else forward_exceptions
        self.reset()
        text = to_normal_str(data)

        if memcheck is not None:
            count = len(re.findall(r"^BEGIN:(?:VEVENT|VTODO)\s*$", text, re.MULTILINE | re.IGNORECASE))
            if not memcheck(count * RECORD_MEMORY_ESTIMATE):
                error = CalCodecError(f"not enough memory left for {count} events/tasks")
                log.error(str(error))
                self.errors.append(error)
                return []

        try:
            roots = parse_components(vcal.fix(text))
        except ParseError as exc:
            if forward:
                raise
            log.error(f"could not parse iCalendar data: {exc}")
            self.errors.append(exc)
            return []
        self.objects = self.import_components(roots, forward)
        return self.objects

    def import_from_file(self, path, forward_exceptions: Optional[bool] = None) -> list[EventRecord]:
        """Decode a file component by component.  Returns an empty list
        for files not looking like iCalendar data."""
        from calcodec.importer import StreamingImporter

        self.reset()
        importer = StreamingImporter.open(path, codec=self, forward_exceptions=forward_exceptions)
        if importer is None:
            return []
        with importer:
            self.objects = list(importer)
        return self.objects

    def get_busy_periods(self) -> list:
        """Busy periods of the last VFREEBUSY decoded"""
        if self.freebusy is None:
            return []
        return self.freebusy.busy_periods()

    ## Encoding

    def _options(self, method, get_attachment, memory_budget) -> EncodeOptions:
        return EncodeOptions(
            method=method,
            agent=self.agent,
            attach_uri=self.attach_uri,
            get_attachment=get_attachment or self.get_attachment,
            memory_budget=self.memory_budget if memory_budget is None else memory_budget,
        )

    def encode(
        self,
        records: Union[EventRecord, Iterable[EventRecord]],
        method: Optional[str] = None,
        with_timezones: bool = True,
        get_attachment: Optional[Callable[[Attachment], Optional[bytes]]] = None,
        memory_budget: Optional[int] = None,
    ) -> Component:
        """A VCALENDAR component holding the given record(s), their
        exceptions and VTIMEZONE components for the zones they use"""
        if isinstance(records, EventRecord):
            records = [records]
        options = self._options(method, get_attachment, memory_budget)

        calendar = Component("VCALENDAR")
        calendar.add(Property("VERSION", "2.0"))
        calendar.add(Property("PRODID", self.prodid))
        calendar.add(Property("CALSCALE", "GREGORIAN"))
        if method:
            calendar.add(Property("METHOD", method.upper()))

        components = []
        for record in records:
            components.extend(encode_record(record, options))

        if with_timezones or method:
            for tzid, (first, last) in options.zones.items():
                try:
                    calendar.add_component(self.resolver.resolve(tzid, first, last))
                except ZoneNotFoundError as exc:
                    log.warning(f"VTIMEZONE for {tzid} omitted: {exc}")
        calendar.subcomponents.extend(components)
        return calendar

    def export(
        self,
        records: Union[EventRecord, Iterable[EventRecord]],
        method: Optional[str] = None,
        with_timezones: bool = True,
        get_attachment: Optional[Callable[[Attachment], Optional[bytes]]] = None,
        memory_budget: Optional[int] = None,
    ) -> str:
        """iCalendar text for the given record(s)"""
        return self.encode(
            records,
            method=method,
            with_timezones=with_timezones,
            get_attachment=get_attachment,
            memory_budget=memory_budget,
        ).to_ical()
