"""
The canonical event/task model.

Dataclasses only; mapping to and from the wire format lives in
:mod:`calcodec.convert`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, tzinfo
from typing import Optional, Union

from calcodec.instant import DateTime, Instant
from calcodec.lib.error import assert_

FREQUENCIES = ("SECONDLY", "MINUTELY", "HOURLY", "DAILY", "WEEKLY", "MONTHLY", "YEARLY")
WEEKDAYS = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")


@dataclass
class RecurrenceRule:
    """An RRULE plus the EXDATE/RDATE sets belonging to the same series.

    ``byday`` holds (ordinal, weekday) pairs, ordinal None when the BYDAY
    entry had no numeric prefix, weekday as two-letter code.  Overrides
    of single occurrences are not kept here but in
    :attr:`EventRecord.exceptions`.
    """

    freq: Optional[str] = None
    interval: int = 1
    count: Optional[int] = None
    until: Optional[Instant] = None
    bysecond: list[int] = field(default_factory=list)
    byminute: list[int] = field(default_factory=list)
    byhour: list[int] = field(default_factory=list)
    byday: list[tuple[Optional[int], str]] = field(default_factory=list)
    bymonthday: list[int] = field(default_factory=list)
    byyearday: list[int] = field(default_factory=list)
    byweekno: list[int] = field(default_factory=list)
    bymonth: list[int] = field(default_factory=list)
    bysetpos: list[int] = field(default_factory=list)
    wkst: str = "MO"
    exdates: list[Instant] = field(default_factory=list)
    rdates: list[Instant] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.freq is not None:
            self.freq = self.freq.upper()
            if self.freq not in FREQUENCIES:
                raise ValueError(f"unknown FREQ {self.freq!r}")
        if self.interval < 1:
            raise ValueError(f"INTERVAL must be positive, not {self.interval}")
        self.wkst = self.wkst.upper()
        self.byday = [
            (n, day.upper()) for n, day in (_split_byday(x) for x in self.byday)
        ]

    def with_count(self, count: Optional[int]) -> "RecurrenceRule":
        return replace(self, count=count)


def _split_byday(entry) -> tuple[Optional[int], str]:
    """Accepts "MO", "-1FR", "+2TU" or already split (n, "MO") tuples"""
    if isinstance(entry, tuple):
        return entry
    text = str(entry).strip().upper()
    day = text.lstrip("+-0123456789")
    prefix = text[: len(text) - len(day)]
    if day not in WEEKDAYS:
        raise ValueError(f"invalid BYDAY entry {entry!r}")
    return (int(prefix) if prefix not in ("", "+", "-") else None, day)


@dataclass
class Attendee:
    email: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None
    role: Optional[str] = None
    cutype: Optional[str] = None
    rsvp: bool = False
    delegated_from: Optional[str] = None
    delegated_to: Optional[str] = None
    schedule_status: Optional[str] = None
    schedule_agent: Optional[str] = None
    sent_by: Optional[str] = None


@dataclass
class AlarmRecord:
    """A VALARM.

    ``trigger`` is either an absolute instant or a timedelta relative to
    the start (or the end, if ``related`` is "END") of the parent.
    """

    action: str = "DISPLAY"
    trigger: Union[Instant, timedelta, None] = None
    related: str = "START"
    repeat: Optional[int] = None
    duration: Optional[timedelta] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    uri: Optional[str] = None
    attendees: list[str] = field(default_factory=list)

    @property
    def is_absolute(self) -> bool:
        return isinstance(self.trigger, Instant)


@dataclass
class Attachment:
    id: Optional[str] = None
    name: Optional[str] = None
    mimetype: Optional[str] = None
    size: Optional[int] = None
    data: Optional[bytes] = None


@dataclass
class TimeZoneTransition:
    instant: datetime
    offset_before: timedelta
    offset_after: timedelta
    is_daylight: bool
    abbreviation: Optional[str] = None


@dataclass
class EventRecord:
    uid: Optional[str] = None
    kind: str = "event"
    title: str = ""
    start: Optional[Instant] = None
    end: Optional[Instant] = None
    due: Optional[Instant] = None
    allday: bool = False
    created: Optional[Instant] = None
    changed: Optional[Instant] = None
    recurrence: Optional[RecurrenceRule] = None
    recurrence_date: Optional[Instant] = None
    thisandfuture: bool = False
    exceptions: list["EventRecord"] = field(default_factory=list)
    attendees: list[Attendee] = field(default_factory=list)
    organizer: Optional[Attendee] = None
    alarms: list[AlarmRecord] = field(default_factory=list)
    legacy_alarm: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    custom_properties: list[tuple[str, str]] = field(default_factory=list)
    status: Optional[str] = None
    priority: int = 0
    sensitivity: Optional[str] = None
    categories: list[str] = field(default_factory=list)
    free_busy: Optional[str] = None
    cancelled: bool = False
    complete: Optional[int] = None
    sequence: Optional[int] = None
    location: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    comment: Optional[str] = None
    parent_id: Optional[str] = None

    @property
    def is_override(self) -> bool:
        return self.recurrence_date is not None

    def custom_property(self, name: str) -> Optional[str]:
        for key, value in self.custom_properties:
            if key.upper() == name.upper():
                return value
        return None

    def add_exception(self, exception: "EventRecord") -> None:
        """Attach an override instance.  An existing override for the
        same recurrence id is replaced."""
        assert_(exception.uid == self.uid)
        key = exception.recurrence_date or exception.start
        for idx, existing in enumerate(self.exceptions):
            if (existing.recurrence_date or existing.start) == key:
                self.exceptions[idx] = exception
                return
        self.exceptions.append(exception)

    def exception_for(self, instant: Instant) -> Optional["EventRecord"]:
        for exception in self.exceptions:
            if (exception.recurrence_date or exception.start) == instant:
                return exception
        return None

    def set_timezone(self, tz: tzinfo) -> None:
        """Move every zoned or UTC instant of the record (and of its
        exceptions) to the given zone.  Floating and date-only instants
        stay as they are."""

        def convert(instant):
            if isinstance(instant, DateTime):
                return instant.set_timezone(tz)
            return instant

        for attr in ("start", "end", "due", "created", "changed", "recurrence_date"):
            setattr(self, attr, convert(getattr(self, attr)))
        for alarm in self.alarms:
            alarm.trigger = convert(alarm.trigger)
        if self.recurrence:
            self.recurrence.until = convert(self.recurrence.until)
            self.recurrence.exdates = [convert(x) for x in self.recurrence.exdates]
            self.recurrence.rdates = [convert(x) for x in self.recurrence.rdates]
        for exception in self.exceptions:
            exception.set_timezone(tz)


@dataclass
class FreeBusyRecord:
    uid: Optional[str] = None
    start: Optional[Instant] = None
    end: Optional[Instant] = None
    organizer: Optional[Attendee] = None
    attendees: list[Attendee] = field(default_factory=list)
    periods: list[tuple[Instant, Instant, str]] = field(default_factory=list)

    def busy_periods(self) -> list[tuple[Instant, Instant, str]]:
        """All periods except those explicitly marked FREE"""
        return [x for x in self.periods if x[2].upper() != "FREE"]
