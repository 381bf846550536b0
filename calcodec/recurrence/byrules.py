"""
The BYxxx parts of RFC 5545 recurrence rules, as pure functions.

Everything here works on naive wall-clock ``datetime`` objects; zones
are attached by the engine afterwards.  A rule is expanded period by
period: :func:`period_start` gives the start of the ``index``-th period
(``index * interval`` frequency units after the anchor's period), and
:func:`expand_period` returns the sorted candidates inside that period.

The days of a period are produced by taking every day the period spans
(a year, a month, a week or a single day) and filtering them through the
BYMONTH, BYWEEKNO, BYYEARDAY, BYMONTHDAY and BYDAY predicates; this gives
the RFC 5545 section 3.3.10 "expand" behaviour for the parts below the
frequency and the "limit" behaviour for the parts at or above it.
Times of day are then combined from BYHOUR/BYMINUTE/BYSECOND, and
finally BYSETPOS picks from the resulting set.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from itertools import product
from typing import Optional

from dateutil.relativedelta import relativedelta

from calcodec.model import WEEKDAYS, RecurrenceRule

## How many periods in a row may come up empty before we conclude the
## rule will never produce anything again (e.g. BYMONTHDAY=30;BYMONTH=2)
MAX_EMPTY_PERIODS = {
    "YEARLY": 400,
    "MONTHLY": 1200,
    "WEEKLY": 600,
    "DAILY": 4000,
    "HOURLY": 9600,
    "MINUTELY": 11520,
    "SECONDLY": 172800,
}


def weekday_index(code: str) -> int:
    return WEEKDAYS.index(code.upper())


def days_in_year(year: int) -> int:
    return 366 if calendar.isleap(year) else 365


def week_one_start(year: int, wkst: int) -> date:
    """First day of week 1: the week (starting on wkst) that holds at
    least four days of the year"""
    jan4 = date(year, 1, 4)
    return jan4 - timedelta(days=(jan4.weekday() - wkst) % 7)


def week_number(day: date, wkst: int) -> tuple[int, int, int]:
    """(week year, week number, number of weeks in that week year)"""
    year = day.year
    start = week_one_start(year, wkst)
    if day < start:
        year -= 1
        start = week_one_start(year, wkst)
    else:
        next_start = week_one_start(year + 1, wkst)
        if day >= next_start:
            year += 1
            start = next_start
    weeks = (week_one_start(year + 1, wkst) - start).days // 7
    return year, (day - start).days // 7 + 1, weeks


def period_start(
    anchor: datetime, freq: str, interval: int, index: int, wkst: int = 0
) -> datetime:
    """Start of the index-th period of a rule anchored at ``anchor``.

    May raise ValueError or OverflowError once the period runs out of
    the representable date range.
    """
    step = interval * index
    if freq == "YEARLY":
        return datetime(anchor.year + step, 1, 1)
    if freq == "MONTHLY":
        return datetime(anchor.year, anchor.month, 1) + relativedelta(months=step)
    if freq == "WEEKLY":
        first = datetime.combine(anchor.date(), datetime.min.time())
        first -= timedelta(days=(anchor.weekday() - wkst) % 7)
        return first + timedelta(weeks=step)
    if freq == "DAILY":
        return datetime.combine(anchor.date(), datetime.min.time()) + timedelta(days=step)
    if freq == "HOURLY":
        return anchor.replace(minute=0, second=0) + timedelta(hours=step)
    if freq == "MINUTELY":
        return anchor.replace(second=0) + timedelta(minutes=step)
    if freq == "SECONDLY":
        return anchor + timedelta(seconds=step)
    raise ValueError(f"unknown frequency {freq!r}")


def period_days(freq: str, start: datetime, byweekno: list[int], wkst: int) -> list[date]:
    """Every day the period spans"""
    first = start.date()
    if freq == "YEARLY":
        if byweekno:
            ## weeks of the week year may reach into the neighbour years
            year = first.year
            first = week_one_start(year, wkst)
            last = week_one_start(year + 1, wkst)
            return [first + timedelta(days=n) for n in range((last - first).days)]
        count = days_in_year(first.year)
    elif freq == "MONTHLY":
        count = calendar.monthrange(first.year, first.month)[1]
    elif freq == "WEEKLY":
        count = 7
    else:
        count = 1
    return [first + timedelta(days=n) for n in range(count)]


def match_bymonth(day: date, bymonth: list[int]) -> bool:
    return not bymonth or day.month in bymonth


def match_byweekno(day: date, byweekno: list[int], wkst: int, year: Optional[int] = None) -> bool:
    if not byweekno:
        return True
    week_year, weekno, weeks = week_number(day, wkst)
    if year is not None and week_year != year:
        return False
    return any(n == weekno or (n < 0 and weeks + n + 1 == weekno) for n in byweekno)


def match_byyearday(day: date, byyearday: list[int]) -> bool:
    if not byyearday:
        return True
    yday = day.timetuple().tm_yday
    total = days_in_year(day.year)
    return any(n == yday or (n < 0 and total + n + 1 == yday) for n in byyearday)


def match_bymonthday(day: date, bymonthday: list[int]) -> bool:
    if not bymonthday:
        return True
    total = calendar.monthrange(day.year, day.month)[1]
    return any(n == day.day or (n < 0 and total + n + 1 == day.day) for n in bymonthday)


def match_byday(day: date, byday: list[tuple[Optional[int], str]], scope: str) -> bool:
    """BYDAY with optional ordinals.  ``scope`` is "MONTH" or "YEAR" and
    decides what "the 2nd monday" counts within; ordinals are ignored
    for any other scope."""
    if not byday:
        return True
    for nth, code in byday:
        if day.weekday() != weekday_index(code):
            continue
        if nth is None or scope not in ("MONTH", "YEAR"):
            return True
        if scope == "MONTH":
            position = (day.day - 1) // 7 + 1
            total = calendar.monthrange(day.year, day.month)[1]
            from_end = (total - day.day) // 7 + 1
        else:
            yday = day.timetuple().tm_yday
            position = (yday - 1) // 7 + 1
            from_end = (days_in_year(day.year) - yday) // 7 + 1
        if (nth > 0 and nth == position) or (nth < 0 and -nth == from_end):
            return True
    return False


def apply_bysetpos(candidates: list[datetime], bysetpos: list[int]) -> list[datetime]:
    if not bysetpos:
        return candidates
    picked = set()
    for pos in bysetpos:
        idx = pos - 1 if pos > 0 else len(candidates) + pos
        if 0 <= idx < len(candidates):
            picked.add(candidates[idx])
    return sorted(picked)


def effective_rule(rule: RecurrenceRule, anchor: datetime) -> dict:
    """The BYxxx lists the expansion works with, with the values the
    anchor implies filled in where the rule gives none"""
    by = {
        "bymonth": list(rule.bymonth),
        "byweekno": list(rule.byweekno),
        "byyearday": list(rule.byyearday),
        "bymonthday": list(rule.bymonthday),
        "byday": list(rule.byday),
        "byhour": list(rule.byhour),
        "byminute": list(rule.byminute),
        "bysecond": list(rule.bysecond),
    }
    if not (by["byweekno"] or by["byyearday"] or by["bymonthday"] or by["byday"]):
        if rule.freq == "YEARLY":
            by["bymonth"] = by["bymonth"] or [anchor.month]
            by["bymonthday"] = [anchor.day]
        elif rule.freq == "MONTHLY":
            by["bymonthday"] = [anchor.day]
        elif rule.freq == "WEEKLY":
            by["byday"] = [(None, WEEKDAYS[anchor.weekday()])]
    return by


def day_matches(day: date, freq: str, by: dict, wkst: int, year: Optional[int] = None) -> bool:
    if freq == "MONTHLY" or (freq == "YEARLY" and by["bymonth"]):
        scope = "MONTH"
    elif freq == "YEARLY":
        scope = "YEAR"
    else:
        scope = None
    return (
        match_bymonth(day, by["bymonth"])
        and match_byweekno(day, by["byweekno"], wkst, year)
        and match_byyearday(day, by["byyearday"])
        and match_bymonthday(day, by["bymonthday"])
        and match_byday(day, by["byday"], scope)
    )


def period_times(freq: str, start: datetime, anchor: datetime, by: dict) -> list[tuple[int, int, int]]:
    """(hour, minute, second) combinations inside one day of the period"""
    if freq in ("YEARLY", "MONTHLY", "WEEKLY", "DAILY"):
        hours = by["byhour"] or [anchor.hour]
        minutes = by["byminute"] or [anchor.minute]
        seconds = by["bysecond"] or [anchor.second]
    elif freq == "HOURLY":
        if by["byhour"] and start.hour not in by["byhour"]:
            return []
        hours = [start.hour]
        minutes = by["byminute"] or [anchor.minute]
        seconds = by["bysecond"] or [anchor.second]
    elif freq == "MINUTELY":
        if (by["byhour"] and start.hour not in by["byhour"]) or (
            by["byminute"] and start.minute not in by["byminute"]
        ):
            return []
        hours, minutes = [start.hour], [start.minute]
        seconds = by["bysecond"] or [anchor.second]
    else:
        if (
            (by["byhour"] and start.hour not in by["byhour"])
            or (by["byminute"] and start.minute not in by["byminute"])
            or (by["bysecond"] and start.second not in by["bysecond"])
        ):
            return []
        hours, minutes, seconds = [start.hour], [start.minute], [start.second]
    return sorted(
        (h, m, s)
        for h, m, s in product(hours, minutes, seconds)
        if 0 <= h < 24 and 0 <= m < 60 and 0 <= s < 60
    )


def expand_period(
    rule: RecurrenceRule,
    anchor: datetime,
    index: int,
    date_only: bool = False,
    by: Optional[dict] = None,
) -> list[datetime]:
    """Sorted candidates of the index-th period of the rule.

    For date-only series all candidates are at midnight.  Candidates
    before the anchor are included; the caller filters them.
    """
    wkst = weekday_index(rule.wkst)
    if by is None:
        by = effective_rule(rule, anchor)
    start = period_start(anchor, rule.freq, rule.interval, index, wkst)
    year = start.year if rule.freq == "YEARLY" and by["byweekno"] else None
    days = [
        day
        for day in period_days(rule.freq, start, by["byweekno"], wkst)
        if day_matches(day, rule.freq, by, wkst, year)
    ]
    if date_only:
        candidates = [datetime.combine(day, datetime.min.time()) for day in days]
    else:
        times = period_times(rule.freq, start, anchor, by)
        candidates = sorted(
            datetime(day.year, day.month, day.day, h, m, s) for day in days for h, m, s in times
        )
    return apply_bysetpos(candidates, rule.bysetpos)
