"""
Stateful expansion of a recurrence rule into occurrence instants.
"""

from __future__ import annotations

import heapq
import logging
from datetime import datetime, time, timezone
from typing import Iterator, Optional

from dateutil.relativedelta import relativedelta

from calcodec.instant import DateOnly, DateTime, Instant
from calcodec.lib.error import RecurrenceConsistencyError
from calcodec.model import RecurrenceRule
from calcodec.recurrence.byrules import MAX_EMPTY_PERIODS, effective_rule, expand_period

log = logging.getLogger("calcodec")

## Upper bound on occurrences enumerated to find the end of a COUNT
## bounded series or the first occurrence of a rewound rule
MAX_COUNT_STEPS = 1000


class RecurrenceEngine:
    """Iterates over the occurrences of a recurring series.

    The anchor (DTSTART) opens the series but is not counted: COUNT is
    the number of occurrences generated after it.  EXDATE suppresses
    occurrences (they still count towards COUNT), RDATE adds occurrences
    regardless of COUNT and UNTIL.

    ``next()`` moves a cursor that starts at the anchor, so the first
    call gives the first generated occurrence; ``occurrences()`` gives
    the whole series, anchor included.  Date-only anchors give date-only
    occurrences; date-time anchors give occurrences at the anchor's time
    of day (unless BYHOUR/BYMINUTE/BYSECOND say otherwise) in the
    anchor's zone.
    """

    def __init__(self, rule: RecurrenceRule, start) -> None:
        self.rule = rule
        self.set_start(start)

    def set_start(self, start) -> None:
        """(Re)anchor the series and reset the cursor to the anchor"""
        self.start = Instant.coerce(start)
        if isinstance(self.start, DateOnly):
            self._anchor = datetime.combine(self.start.value, time())
            self._tzinfo = None
            self._tzid = None
        else:
            self._anchor = self.start.value.replace(tzinfo=None)
            self._tzinfo = self.start.value.tzinfo
            self._tzid = self.start.tzid

        exdates = [Instant.coerce(x) for x in self.rule.exdates]
        self._exkeys = {x.sort_key() for x in exdates}
        self._exdays = {x.value for x in exdates if isinstance(x, DateOnly)}
        self._exdays_any = {x.as_date() for x in exdates}
        self._exfloating = {
            x.value for x in exdates if isinstance(x, DateTime) and x.is_floating
        }
        self._rdates = sorted({Instant.coerce(x) for x in self.rule.rdates})

        self._cursor = self.start
        self._stream = self._occurrences()

    def _make(self, wall: datetime) -> Instant:
        if isinstance(self.start, DateOnly):
            return DateOnly(wall.date())
        if self._tzinfo is not None:
            ## wall times inside a DST gap move forward to a real local time
            value = wall.replace(tzinfo=self._tzinfo).astimezone(timezone.utc)
            return DateTime(value.astimezone(self._tzinfo))
        return DateTime(wall, tzid=self._tzid)

    def _until_passed(self, instant: Instant) -> bool:
        until = self.rule.until
        if until is None:
            return False
        if isinstance(until, DateOnly) or isinstance(instant, DateOnly):
            return instant.as_date() > until.as_date()
        return instant > until

    def _is_excluded(self, instant: Instant) -> bool:
        if instant.sort_key() in self._exkeys:
            return True
        if isinstance(instant, DateOnly):
            return instant.value in self._exdays_any
        if instant.as_date() in self._exdays:
            return True
        return instant.value.replace(tzinfo=None) in self._exfloating

    def _rule_instances(self) -> Iterator[Instant]:
        """The anchor followed by the instances the RRULE generates,
        limited by COUNT and UNTIL, EXDATE not applied"""
        rule = self.rule
        yield self.start
        if rule.freq is None:
            return

        produced = 0
        by = effective_rule(rule, self._anchor)
        date_only = isinstance(self.start, DateOnly)
        max_empty = MAX_EMPTY_PERIODS[rule.freq]
        last = self._anchor
        last_key = self.start.sort_key()
        empty = 0
        index = 0
        while rule.count is None or produced < rule.count:
            try:
                candidates = expand_period(rule, self._anchor, index, date_only, by)
            except (ValueError, OverflowError):
                ## ran out of representable dates
                return
            index += 1
            fresh = [x for x in candidates if x > last]
            if not fresh:
                empty += 1
                if empty > max_empty:
                    log.debug(f"no occurrences in {max_empty} periods, giving up on {rule!r}")
                    return
                continue
            empty = 0
            for wall in fresh:
                last = wall
                instant = self._make(wall)
                if instant.sort_key() <= last_key:
                    ## collapsed onto an earlier occurrence by the DST gap
                    continue
                if self._until_passed(instant):
                    return
                if rule.count is not None and produced >= rule.count:
                    return
                produced += 1
                last_key = instant.sort_key()
                yield instant

    def _occurrences(self) -> Iterator[Instant]:
        """RRULE instances merged with RDATE, EXDATE applied.  Ends the
        series if the merged stream ever stops increasing."""
        previous = None
        for instant in heapq.merge(
            self._rule_instances(), self._rdates, key=Instant.sort_key
        ):
            if previous is not None:
                if instant == previous:
                    continue
                if instant < previous:
                    log.warning(
                        f"recurrence for {self.rule!r} is not progressing "
                        f"({instant!r} after {previous!r}), ending series"
                    )
                    return
            previous = instant
            if self._is_excluded(instant):
                continue
            yield instant

    def next(self) -> Optional[Instant]:
        """The next occurrence strictly after the cursor, or None once
        the series is exhausted"""
        for instant in self._stream:
            if instant > self._cursor:
                self._cursor = instant
                return instant
        return None

    def __iter__(self) -> Iterator[Instant]:
        while True:
            instant = self.next()
            if instant is None:
                return
            yield instant

    def occurrences(self) -> Iterator[Instant]:
        """The complete series, starting with the anchor itself (unless
        the anchor is excluded by EXDATE).  Independent of the cursor."""
        return self._occurrences()

    def between(self, start, end) -> Iterator[Instant]:
        """Occurrences within [start, end]"""
        start = Instant.coerce(start)
        end = Instant.coerce(end)
        for instant in self._occurrences():
            if instant > end:
                return
            if instant >= start:
                yield instant

    def end(self) -> Optional[Instant]:
        """The last occurrence of the series, or None if it's open ended"""
        if self.rule.until is not None:
            return self.rule.until
        if self._rdates:
            return self._rdates[-1]
        if self.rule.count is not None:
            last = None
            for step, instant in enumerate(self._occurrences()):
                if step >= MAX_COUNT_STEPS:
                    break
                last = instant
            return last
        return None

    def first_occurrence(self) -> Instant:
        """The first instant that actually satisfies the rule.

        An anchor like a Wednesday for a WEEKLY;BYDAY=MO rule does not;
        the series is then re-run from one period earlier and the first
        occurrence at or after the anchor is picked.
        """
        rule = self.rule
        rewind = None
        if rule.freq == "WEEKLY" and rule.byday:
            rewind = relativedelta(weeks=rule.interval)
        elif rule.freq == "MONTHLY" and (rule.byday or rule.bymonthday):
            rewind = relativedelta(months=rule.interval)
        elif rule.freq == "YEARLY" and (rule.byday or rule.bymonth):
            rewind = relativedelta(years=rule.interval)
        if rewind is None:
            return self.start

        count = rule.count + 100 if rule.count is not None else None
        rewound = RecurrenceEngine(rule.with_count(count), self.start.shift(-rewind))
        for step, instant in enumerate(rewound.occurrences()):
            if step > MAX_COUNT_STEPS:
                break
            if instant >= self.start:
                return instant
        raise RecurrenceConsistencyError(rule)
