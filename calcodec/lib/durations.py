"""
Shared duration utilities for the iCalendar codec.

RFC 5545 durations (``dur-value``) are handled as :class:`datetime.timedelta`
in the data model and as text on the wire.  Months and years cannot occur
in a dur-value and are not handled here.
"""

from __future__ import annotations

import re
from datetime import timedelta

_DURATION_RE = re.compile(
    r"^(?P<sign>[+-])?P"
    r"(?:(?P<weeks>\d+)W)?"
    r"(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def timedelta_to_duration(td: timedelta, zero: str = "PT0S") -> str:
    """Convert a timedelta to an RFC 5545 duration string.

    Examples:
        timedelta(hours=1, minutes=30) → "PT1H30M"
        timedelta(days=1, hours=2)     → "P1DT2H"
        timedelta(weeks=2)             → "P2W"
        timedelta(0)                   → "PT0S"
        timedelta(seconds=-900)        → "-PT15M"

    Whole weeks are written with the W designator, as alarm triggers
    commonly are.  Zero components are never written.

    Args:
        td: The duration to convert.
        zero: What to return for a zero duration.

    Returns:
        Duration string with an optional negative prefix, never
        fractional components.
    """
    total_seconds = int(td.total_seconds())
    if not total_seconds:
        return zero
    sign = "-" if total_seconds < 0 else ""
    total_seconds = abs(total_seconds)

    days, rem = divmod(total_seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)

    if days and not rem and not days % 7:
        return f"{sign}P{days // 7}W"

    day_part = f"{days}D" if days else ""
    time_parts = []
    if hours:
        time_parts.append(f"{hours}H")
    if minutes:
        time_parts.append(f"{minutes}M")
    if seconds:
        time_parts.append(f"{seconds}S")

    time_part = ("T" + "".join(time_parts)) if time_parts else ""
    return f"{sign}P{day_part}{time_part}"


def duration_to_timedelta(duration_str: str) -> timedelta:
    """Parse an RFC 5545 duration string into a timedelta.

    Examples:
        "PT1H30M"  → timedelta(hours=1, minutes=30)
        "P1DT2H"   → timedelta(days=1, hours=2)
        "-P1W"     → timedelta(weeks=-1)
        "-PT15M"   → timedelta(seconds=-900)

    Raises:
        ValueError: If the string cannot be parsed.
    """
    match = _DURATION_RE.match(duration_str.strip().upper())
    if not match or duration_str.strip().upper().rstrip("T").endswith("P"):
        raise ValueError(f"Invalid duration string: {duration_str!r}")
    parts = {k: int(v or 0) for k, v in match.groupdict().items() if k != "sign"}
    td = timedelta(**parts)
    if match.group("sign") == "-":
        td = -td
    return td


def legacy_trigger(trigger) -> str:
    """The trigger part of the combined legacy alarm string.

    Relative triggers become their duration text, absolute triggers
    (anything with a ``timestamp()``) become ``@<unix time>``.
    """
    if isinstance(trigger, timedelta):
        return timedelta_to_duration(trigger)
    return f"@{int(trigger.timestamp())}"
