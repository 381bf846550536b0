"""
Instants: the points in time an iCalendar object talks about.

An instant is either a :class:`DateOnly` (a calendar day, "all-day") or a
:class:`DateTime` (a date with a time of day, which may be UTC, bound to
a named zone, or floating).  All comparison and arithmetic dispatches on
which of the two it is, there is no "is this a date" side flag anywhere.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import total_ordering
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from icalendar import vDate, vDatetime
from icalendar.timezone.windows_to_olson import WINDOWS_TO_OLSON

log = logging.getLogger("calcodec")

## Time of day used when an all-day instant has to be shown as a datetime
ALLDAY_TIME = time(12, 0)

_UTC_NAMES = ("UTC", "Z", "GMT", "ETC/UTC", "ETC/GMT")


def get_zone(tzid: Optional[str]) -> Optional[tzinfo]:
    """Find a tzinfo object for a TZID parameter value, or None.

    Olson ids are looked up with zoneinfo.  Windows zone names (as sent
    by Outlook/Exchange) are mapped to Olson ids first, and the
    "/vendor/version/Region/City" style ids some producers use are
    reduced to their trailing "Region/City".
    """
    if not tzid:
        return None
    tzid = tzid.strip().strip('"')
    if tzid.upper() in _UTC_NAMES:
        return timezone.utc
    candidates = [WINDOWS_TO_OLSON.get(tzid, tzid)]
    if "/" in tzid:
        candidates.append("/".join(tzid.strip("/").split("/")[-2:]))
    for candidate in candidates:
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return None


def tzid_of(tz: Optional[tzinfo]) -> Optional[str]:
    if tz is None:
        return None
    if tz is timezone.utc:
        return "UTC"
    key = getattr(tz, "key", None) or getattr(tz, "zone", None)
    if key in ("UTC", "Etc/UTC"):
        return "UTC"
    return key


@total_ordering
class Instant:
    """Base for the two kinds of instants.  Not instantiated directly."""

    __slots__ = ()

    def _key(self) -> datetime:
        raise NotImplementedError

    @property
    def is_date_only(self) -> bool:
        return isinstance(self, DateOnly)

    def sort_key(self) -> tuple:
        return (self._key(), 0 if self.is_date_only else 1)

    def __lt__(self, other: Any) -> bool:
        if not isinstance(other, Instant):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Instant):
            return NotImplemented
        return self.sort_key() == other.sort_key()

    def __hash__(self) -> int:
        return hash(self.sort_key())

    def as_date(self) -> date:
        raise NotImplementedError

    def as_datetime(self) -> datetime:
        raise NotImplementedError

    def shift(self, delta) -> "Instant":
        raise NotImplementedError

    def to_ical(self) -> tuple[str, dict]:
        raise NotImplementedError

    @staticmethod
    def coerce(value: Union["Instant", date, datetime]) -> "Instant":
        """Turns a date or datetime into the matching instant"""
        if isinstance(value, Instant):
            return value
        if isinstance(value, datetime):
            return DateTime(value)
        if isinstance(value, date):
            return DateOnly(value)
        raise TypeError(f"not a date, datetime or instant: {value!r}")

    @staticmethod
    def from_ical(raw: str, params: Optional[dict] = None) -> "Instant":
        """Parse a DATE or DATE-TIME property value.

        ``params`` are the property parameters; VALUE and TZID are
        honoured.  Raises ValueError on malformed values.
        """
        params = params or {}
        raw = raw.strip()
        value_type = str(params.get("VALUE", "")).upper()
        if value_type == "DATE" or (len(raw) == 8 and raw.isdigit()):
            return DateOnly(vDate.from_ical(raw))
        dt = vDatetime.from_ical(raw)
        tzid = params.get("TZID")
        if dt.tzinfo is not None or not tzid:
            return DateTime(dt)
        tz = get_zone(tzid)
        if tz is None:
            log.warning(f"unknown timezone {tzid!r}, treating {raw} as floating time")
            return DateTime(dt, tzid=str(tzid))
        return DateTime(dt.replace(tzinfo=tz))


@dataclass(frozen=True, eq=False)
class DateOnly(Instant):
    """A calendar day without time of day"""

    value: date

    def __post_init__(self) -> None:
        if isinstance(self.value, datetime):
            object.__setattr__(self, "value", self.value.date())

    def _key(self) -> datetime:
        return datetime.combine(self.value, time())

    def as_date(self) -> date:
        return self.value

    def as_datetime(self) -> datetime:
        return datetime.combine(self.value, ALLDAY_TIME)

    def shift(self, delta) -> "DateOnly":
        """Day granularity arithmetic: the shift is applied to midnight
        and the resulting calendar day is kept, so shifting back by
        PT23H gives the previous day."""
        return DateOnly((datetime.combine(self.value, time()) + delta).date())

    def timestamp(self) -> float:
        return self.as_datetime().replace(tzinfo=timezone.utc).timestamp()

    def to_ical(self) -> tuple[str, dict]:
        return self.value.strftime("%Y%m%d"), {"VALUE": "DATE"}

    def __repr__(self) -> str:
        return f"DateOnly({self.value.isoformat()})"


@dataclass(frozen=True, eq=False)
class DateTime(Instant):
    """A date with time of day.

    ``tzid`` is derived from the tzinfo of ``value``.  It is only given
    explicitly for a naive value carrying a TZID we could not resolve;
    such a value behaves as floating time but keeps its TZID on output.
    Fixed-offset tzinfos without a zone name are converted to UTC.
    """

    value: datetime
    tzid: Optional[str] = None

    def __post_init__(self) -> None:
        value = self.value
        if not isinstance(value, datetime):
            value = datetime.combine(value, time())
        if value.tzinfo is not None:
            tzid = tzid_of(value.tzinfo)
            if tzid is None:
                value = value.astimezone(timezone.utc)
                tzid = "UTC"
            elif tzid == "UTC":
                value = value.astimezone(timezone.utc)
            object.__setattr__(self, "tzid", tzid)
        object.__setattr__(self, "value", value.replace(microsecond=0))

    @property
    def is_utc(self) -> bool:
        return self.tzid == "UTC"

    @property
    def is_floating(self) -> bool:
        return self.value.tzinfo is None

    @property
    def is_zoned(self) -> bool:
        return self.value.tzinfo is not None and not self.is_utc

    def _key(self) -> datetime:
        if self.value.tzinfo is None:
            return self.value
        return self.value.astimezone(timezone.utc).replace(tzinfo=None)

    def as_date(self) -> date:
        return self.value.date()

    def as_datetime(self) -> datetime:
        return self.value

    def shift(self, delta) -> "DateTime":
        ## wall clock arithmetic, also across DST changes
        return DateTime(self.value + delta, tzid=None if self.value.tzinfo else self.tzid)

    def timestamp(self) -> float:
        if self.value.tzinfo is None:
            return self.value.replace(tzinfo=timezone.utc).timestamp()
        return self.value.timestamp()

    def to_utc(self) -> "DateTime":
        if self.value.tzinfo is None:
            return DateTime(self.value.replace(tzinfo=timezone.utc))
        return DateTime(self.value.astimezone(timezone.utc))

    def set_timezone(self, tz: tzinfo) -> "DateTime":
        """The same instant seen from another zone.  Floating times
        have no instant to convert, and are returned unchanged."""
        if self.value.tzinfo is None:
            return self
        return DateTime(self.value.astimezone(tz))

    def to_ical(self) -> tuple[str, dict]:
        if self.is_utc:
            return self.value.strftime("%Y%m%dT%H%M%SZ"), {}
        text = self.value.strftime("%Y%m%dT%H%M%S")
        if self.tzid:
            return text, {"TZID": self.tzid}
        return text, {}

    def __repr__(self) -> str:
        return f"DateTime({self.value.isoformat()}{', ' + self.tzid if self.tzid else ''})"
