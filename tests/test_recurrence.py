from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import timezone
from itertools import islice
from zoneinfo import ZoneInfo

import pytest

from calcodec.instant import DateOnly
from calcodec.instant import DateTime
from calcodec.lib.error import RecurrenceConsistencyError
from calcodec.model import RecurrenceRule
from calcodec.recurrence import RecurrenceEngine

utc = timezone.utc
berlin = ZoneInfo("Europe/Berlin")


def at(day, hour=9, minute=0, tz=utc, month=1, year=2024):
    return DateTime(datetime(year, month, day, hour, minute, tzinfo=tz))


def drain(engine, limit=100):
    ret = []
    for _ in range(limit):
        instant = engine.next()
        if instant is None:
            return ret
        ret.append(instant)
    raise AssertionError("series did not terminate")


class TestTermination:
    def test_count(self):
        engine = RecurrenceEngine(RecurrenceRule(freq="DAILY", count=5), at(1))
        assert drain(engine) == [at(2), at(3), at(4), at(5), at(6)]
        assert engine.next() is None

    def test_occurrences_start_with_the_anchor(self):
        engine = RecurrenceEngine(RecurrenceRule(freq="DAILY", count=5), at(1))
        assert list(engine.occurrences()) == [at(1), at(2), at(3), at(4), at(5), at(6)]

    def test_until(self):
        until = at(5)
        engine = RecurrenceEngine(RecurrenceRule(freq="DAILY", until=until), at(1))
        occurrences = drain(engine)
        assert occurrences == [at(2), at(3), at(4), at(5)]
        assert all(x <= until for x in occurrences)

    def test_until_between_occurrences(self):
        engine = RecurrenceEngine(RecurrenceRule(freq="DAILY", until=at(5, hour=8)), at(1))
        assert drain(engine)[-1] == at(4)

    def test_date_only_until(self):
        rule = RecurrenceRule(freq="DAILY", until=DateOnly(date(2024, 1, 5)))
        assert drain(RecurrenceEngine(rule, at(1)))[-1] == at(5)

    def test_exdate_counts(self):
        rule = RecurrenceRule(freq="DAILY", count=5, exdates=[at(3)])
        assert drain(RecurrenceEngine(rule, at(1))) == [at(2), at(4), at(5), at(6)]

    def test_exdate_anchor(self):
        rule = RecurrenceRule(freq="DAILY", count=2, exdates=[at(1)])
        assert list(RecurrenceEngine(rule, at(1)).occurrences()) == [at(2), at(3)]

    def test_rdate_ignores_count(self):
        rule = RecurrenceRule(freq="DAILY", count=2, rdates=[at(10), at(2)])
        assert drain(RecurrenceEngine(rule, at(1))) == [at(2), at(3), at(10)]

    def test_rdate_only(self):
        rule = RecurrenceRule(rdates=[at(7), at(4)])
        assert drain(RecurrenceEngine(rule, at(1))) == [at(4), at(7)]

    def test_open_ended(self):
        engine = RecurrenceEngine(RecurrenceRule(freq="WEEKLY"), at(1))
        assert list(islice(engine, 3)) == [at(8), at(15), at(22)]

    def test_impossible_rule_ends(self):
        rule = RecurrenceRule(freq="YEARLY", bymonth=[2], bymonthday=[30])
        assert drain(RecurrenceEngine(rule, at(1))) == []


class TestMonotonicity:
    @pytest.mark.parametrize(
        "rule",
        [
            RecurrenceRule(freq="WEEKLY", byday=["MO", "WE", "FR"]),
            RecurrenceRule(freq="MONTHLY", byday=["-1FR", "1MO"]),
            RecurrenceRule(freq="MONTHLY", bymonthday=[31, 1, 15]),
            RecurrenceRule(freq="YEARLY", bymonth=[3, 1], byday=["2TU"]),
            RecurrenceRule(freq="DAILY", interval=3, byhour=[18, 6]),
            RecurrenceRule(freq="HOURLY", interval=5, rdates=[at(1, 11), at(2, 14)]),
        ],
    )
    def test_strictly_increasing(self, rule):
        previous = None
        for instant in islice(RecurrenceEngine(rule, at(1)), 60):
            if previous is not None:
                assert instant > previous
            previous = instant


class TestExpansion:
    def test_interval(self):
        engine = RecurrenceEngine(RecurrenceRule(freq="WEEKLY", interval=2), at(1))
        assert list(islice(engine, 2)) == [at(15), at(29)]

    def test_monthly_31st_skips_short_months(self):
        rule = RecurrenceRule(freq="MONTHLY", count=3)
        assert drain(RecurrenceEngine(rule, at(31))) == [
            at(31, month=3),
            at(31, month=5),
            at(31, month=7),
        ]

    def test_leap_day(self):
        engine = RecurrenceEngine(RecurrenceRule(freq="YEARLY"), at(29, month=2))
        assert engine.next() == at(29, month=2, year=2028)

    def test_last_workday(self):
        rule = RecurrenceRule(
            freq="MONTHLY", byday=["MO", "TU", "WE", "TH", "FR"], bysetpos=[-1], count=2
        )
        assert drain(RecurrenceEngine(rule, at(31))) == [at(29, month=2), at(29, month=3)]

    def test_date_only_series(self):
        rule = RecurrenceRule(freq="WEEKLY", byday=["MO", "WE"])
        engine = RecurrenceEngine(rule, DateOnly(date(2024, 1, 1)))
        occurrences = list(islice(engine, 4))
        assert occurrences == [
            DateOnly(date(2024, 1, 3)),
            DateOnly(date(2024, 1, 8)),
            DateOnly(date(2024, 1, 10)),
            DateOnly(date(2024, 1, 15)),
        ]
        assert all(x.is_date_only for x in occurrences)
        assert {x.as_datetime().time() for x in occurrences} == {time(12, 0)}

    def test_zoned_series_keeps_wall_clock(self):
        ## DST starts 2024-03-31 in Berlin
        start = DateTime(datetime(2024, 3, 30, 9, 0, tzinfo=berlin))
        engine = RecurrenceEngine(RecurrenceRule(freq="DAILY"), start)
        following = engine.next()
        assert following.tzid == "Europe/Berlin"
        assert following.value.hour == 9
        assert following.value.utcoffset() == timedelta(hours=2)

    def test_sub_daily_series_across_spring_forward(self):
        start = DateTime(datetime(2024, 3, 31, 1, 0, tzinfo=berlin))
        rule = RecurrenceRule(freq="MINUTELY", interval=15, count=20)
        occurrences = drain(RecurrenceEngine(rule, start))
        assert len(occurrences) == 20
        assert all(b > a for a, b in zip(occurrences, occurrences[1:]))
        assert [x.value.hour for x in occurrences].count(2) == 0
        assert occurrences[2].value == datetime(2024, 3, 31, 1, 45, tzinfo=berlin)
        assert occurrences[3].value == datetime(2024, 3, 31, 3, 0, tzinfo=berlin)
        assert occurrences[-1].value == datetime(2024, 3, 31, 7, 0, tzinfo=berlin)
        assert occurrences[-1].value.utcoffset() == timedelta(hours=2)

    def test_hourly_series_skips_the_missing_hour(self):
        start = DateTime(datetime(2024, 3, 31, 0, 30, tzinfo=berlin))
        rule = RecurrenceRule(freq="HOURLY", count=4)
        occurrences = drain(RecurrenceEngine(rule, start))
        assert [x.value.hour for x in occurrences] == [1, 3, 4, 5]
        assert [x.value.utcoffset() for x in occurrences] == [
            timedelta(hours=1),
            timedelta(hours=2),
            timedelta(hours=2),
            timedelta(hours=2),
        ]

    def test_floating_series(self):
        start = DateTime(datetime(2024, 1, 1, 9, 0))
        following = RecurrenceEngine(RecurrenceRule(freq="DAILY"), start).next()
        assert following.is_floating
        assert following.value == datetime(2024, 1, 2, 9, 0)

    def test_between(self):
        engine = RecurrenceEngine(RecurrenceRule(freq="DAILY"), at(1))
        assert list(engine.between(at(3), at(5))) == [at(3), at(4), at(5)]

    def test_set_start_resets_cursor(self):
        engine = RecurrenceEngine(RecurrenceRule(freq="DAILY"), at(1))
        engine.next()
        engine.next()
        engine.set_start(at(10))
        assert engine.next() == at(11)


class TestEnd:
    def test_until(self):
        rule = RecurrenceRule(freq="DAILY", until=at(5))
        assert RecurrenceEngine(rule, at(1)).end() == at(5)

    def test_rdate(self):
        rule = RecurrenceRule(freq="DAILY", count=3, rdates=[at(20), at(12)])
        assert RecurrenceEngine(rule, at(1)).end() == at(20)

    def test_count(self):
        rule = RecurrenceRule(freq="DAILY", count=3)
        assert RecurrenceEngine(rule, at(1)).end() == at(4)

    def test_date_only_count(self):
        rule = RecurrenceRule(freq="DAILY", count=5)
        engine = RecurrenceEngine(rule, DateOnly(date(2024, 1, 1)))
        assert list(engine.occurrences()) == [DateOnly(date(2024, 1, x)) for x in range(1, 7)]
        assert engine.end() == DateOnly(date(2024, 1, 6))

    def test_long_count_is_capped(self):
        rule = RecurrenceRule(freq="DAILY", count=5000)
        assert RecurrenceEngine(rule, at(1)).end() == at(26, month=9, year=2026)

    def test_open_ended(self):
        assert RecurrenceEngine(RecurrenceRule(freq="DAILY"), at(1)).end() is None


class TestFirstOccurrence:
    def test_anchor_not_matching_the_rule(self):
        ## 2024-01-03 is a wednesday
        rule = RecurrenceRule(freq="WEEKLY", byday=["MO"], interval=1)
        assert RecurrenceEngine(rule, at(3)).first_occurrence() == at(8)

    def test_count_survives_the_rewind(self):
        rule = RecurrenceRule(freq="WEEKLY", byday=["MO"], count=1)
        assert RecurrenceEngine(rule, at(3)).first_occurrence() == at(8)

    def test_anchor_matching_the_rule(self):
        rule = RecurrenceRule(freq="WEEKLY", byday=["MO"])
        assert RecurrenceEngine(rule, at(8)).first_occurrence() == at(8)

    def test_monthly_byday(self):
        ## the second tuesday of january 2024 is the 9th
        rule = RecurrenceRule(freq="MONTHLY", byday=["2TU"])
        assert RecurrenceEngine(rule, at(3)).first_occurrence() == at(9)

    def test_unqualified_rule(self):
        rule = RecurrenceRule(freq="DAILY")
        assert RecurrenceEngine(rule, at(3)).first_occurrence() == at(3)

    def test_impossible_rule(self):
        rule = RecurrenceRule(freq="MONTHLY", bymonth=[2], bymonthday=[30])
        with pytest.raises(RecurrenceConsistencyError) as excinfo:
            RecurrenceEngine(rule, at(3)).first_occurrence()
        assert excinfo.value.rule is rule
