from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import timezone
from itertools import islice
from zoneinfo import ZoneInfo

from calcodec import CalendarCodec
from calcodec import RecurrenceEngine
from calcodec.instant import DateOnly
from calcodec.instant import DateTime
from calcodec.model import AlarmRecord
from calcodec.model import Attendee
from calcodec.model import EventRecord
from calcodec.model import RecurrenceRule

utc = timezone.utc
berlin = ZoneInfo("Europe/Berlin")


def roundtrip(record):
    text = CalendarCodec().export(record)
    records = CalendarCodec().import_ical(text)
    assert len(records) == 1
    return records[0]


class TestRoundTrip:
    def test_recurring_event(self):
        rule = RecurrenceRule(
            freq="WEEKLY",
            byday=["MO", "WE"],
            count=6,
            exdates=[
                DateTime(datetime(2024, 1, 17, 10, tzinfo=berlin)),
                DateTime(datetime(2024, 1, 10, 10, tzinfo=berlin)),
            ],
        )
        record = EventRecord(
            uid="roundtrip-1@example.com",
            title="Stand-up, daily; mostly",
            start=DateTime(datetime(2024, 1, 8, 10, tzinfo=berlin)),
            end=DateTime(datetime(2024, 1, 8, 10, 15, tzinfo=berlin)),
            recurrence=rule,
            attendees=[
                Attendee(email="jane@example.com", status="ACCEPTED"),
                Attendee(email="bob@example.com", rsvp=True),
            ],
            alarms=[AlarmRecord(trigger=timedelta(minutes=-10))],
            categories=["Work"],
            description="line one\nline two",
        )
        back = roundtrip(record)

        assert back.uid == record.uid
        assert back.title == record.title
        assert back.description == record.description
        assert back.start == record.start
        assert back.start.tzid == "Europe/Berlin"
        assert back.end == record.end
        assert not back.allday
        assert back.recurrence.freq == "WEEKLY"
        assert back.recurrence.byday == [(None, "MO"), (None, "WE")]
        assert back.recurrence.count == 6
        assert set(back.recurrence.exdates) == set(rule.exdates)
        assert {x.email for x in back.attendees} == {"jane@example.com", "bob@example.com"}
        assert back.alarms[0].trigger == timedelta(minutes=-10)
        assert back.alarms[0].related == "START"
        assert back.categories == ["Work"]

    def test_allday_weekly(self):
        record = EventRecord(
            uid="allday-weekly@example.com",
            title="Gym",
            allday=True,
            start=DateOnly(date(2024, 1, 1)),
            end=DateOnly(date(2024, 1, 1)),
            recurrence=RecurrenceRule(freq="WEEKLY", byday=["MO", "WE"]),
        )
        back = roundtrip(record)
        assert back.allday
        assert back.start == DateOnly(date(2024, 1, 1))
        assert back.end == DateOnly(date(2024, 1, 1))

        engine = RecurrenceEngine(back.recurrence, back.start)
        occurrences = list(islice(engine.occurrences(), 20))
        assert all(x.is_date_only for x in occurrences)
        assert {x.as_datetime().time() for x in occurrences} == {time(12, 0)}
        assert [x.as_date().weekday() for x in occurrences[:4]] == [0, 2, 0, 2]

        again = roundtrip(back)
        assert again.allday
        assert again.start == back.start

    def test_exceptions(self):
        start = DateTime(datetime(2024, 1, 1, 10, tzinfo=utc))
        moved = EventRecord(
            uid="series@example.com",
            title="Moved",
            recurrence_date=DateTime(datetime(2024, 1, 3, 10, tzinfo=utc)),
            start=DateTime(datetime(2024, 1, 3, 14, tzinfo=utc)),
            end=DateTime(datetime(2024, 1, 3, 15, tzinfo=utc)),
        )
        record = EventRecord(
            uid="series@example.com",
            title="Series",
            start=start,
            end=start.shift(timedelta(hours=1)),
            recurrence=RecurrenceRule(freq="DAILY", count=5),
            exceptions=[moved],
        )
        back = roundtrip(record)
        assert len(back.exceptions) == 1
        exception = back.exceptions[0]
        assert exception.title == "Moved"
        assert exception.recurrence_date == moved.recurrence_date
        assert exception.start == moved.start
        assert back.exception_for(moved.recurrence_date) is exception

    def test_task(self):
        record = EventRecord(
            uid="task-rt@example.com",
            kind="task",
            title="Report",
            start=DateTime(datetime(2024, 1, 2, 9, tzinfo=utc)),
            due=DateTime(datetime(2024, 1, 5, 17, tzinfo=utc)),
            complete=40,
            priority=1,
        )
        back = roundtrip(record)
        assert back.kind == "task"
        assert back.due == record.due
        assert back.start == record.start
        assert back.end is None
        assert back.complete == 40
        assert back.priority == 1

    def test_custom_properties(self):
        record = EventRecord(
            uid="custom@example.com",
            start=DateTime(datetime(2024, 1, 2, 9, tzinfo=utc)),
            end=DateTime(datetime(2024, 1, 2, 10, tzinfo=utc)),
            custom_properties=[("X-PROJECT", "alpha, beta")],
        )
        assert roundtrip(record).custom_properties == [("X-PROJECT", "alpha, beta")]
