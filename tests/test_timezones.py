from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest

from calcodec.lib.error import ZoneNotFoundError
from calcodec.timezones import TimeZoneTransitionResolver

utc = timezone.utc


@pytest.fixture
def resolver():
    return TimeZoneTransitionResolver()


def blocks(vtimezone, name=None):
    return [x for x in vtimezone.subcomponents if name is None or x.name == name]


class TestTransitions:
    def test_berlin_2024(self, resolver):
        transitions = resolver.transitions(
            "Europe/Berlin", datetime(2024, 1, 1, tzinfo=utc), datetime(2024, 12, 31, tzinfo=utc)
        )
        assert len(transitions) == 3
        state, spring, autumn = transitions
        assert state.offset_before == state.offset_after == timedelta(hours=1)
        assert not state.is_daylight
        assert spring.is_daylight
        assert spring.instant == datetime(2024, 3, 31, 1, 0, tzinfo=utc)
        assert spring.offset_before == timedelta(hours=1)
        assert spring.offset_after == timedelta(hours=2)
        assert spring.abbreviation == "CEST"
        assert not autumn.is_daylight
        assert autumn.instant == datetime(2024, 10, 27, 1, 0, tzinfo=utc)
        assert autumn.offset_after == timedelta(hours=1)

    def test_transitions_are_ordered(self, resolver):
        transitions = resolver.transitions(
            "America/New_York", datetime(2000, 1, 1), datetime(2010, 1, 1)
        )
        instants = [x.instant for x in transitions]
        assert instants == sorted(instants)
        assert len(transitions) == 21

    def test_zone_without_history(self, resolver):
        transitions = resolver.transitions("UTC", datetime(2024, 1, 1))
        assert len(transitions) == 1
        assert transitions[0].offset_after == timedelta(0)

    def test_unknown_zone(self, resolver):
        with pytest.raises(ZoneNotFoundError) as excinfo:
            resolver.transitions("Mars/Olympus_Mons")
        assert excinfo.value.zone_id == "Mars/Olympus_Mons"


class TestResolve:
    def test_berlin(self, resolver):
        vtimezone = resolver.resolve(
            "Europe/Berlin", datetime(2024, 6, 1, tzinfo=utc), datetime(2024, 6, 1, tzinfo=utc)
        )
        assert vtimezone.name == "VTIMEZONE"
        assert vtimezone.get("TZID").value == "Europe/Berlin"
        daylight = [
            x for x in blocks(vtimezone, "DAYLIGHT") if x.get("DTSTART").value == "20240331T020000"
        ]
        assert len(daylight) == 1
        assert daylight[0].get("TZOFFSETFROM").value == "+0100"
        assert daylight[0].get("TZOFFSETTO").value == "+0200"
        assert daylight[0].get("TZNAME").text() == "CEST"
        standard = blocks(vtimezone, "STANDARD")
        assert "20241027T030000" in [x.get("DTSTART").value for x in standard]

    def test_range_is_covered(self, resolver):
        vtimezone = resolver.resolve(
            "Europe/Berlin", datetime(2020, 6, 1, tzinfo=utc), datetime(2024, 6, 1, tzinfo=utc)
        )
        onsets = [x.get("DTSTART").value for x in blocks(vtimezone)]
        assert min(onsets) < "20200601"
        assert max(onsets) > "20240601"

    def test_zone_without_dst(self, resolver):
        vtimezone = resolver.resolve("Asia/Tokyo", datetime(2024, 6, 1, tzinfo=utc))
        assert len(blocks(vtimezone)) == 1
        standard = blocks(vtimezone, "STANDARD")[0]
        assert standard.get("TZOFFSETTO").value == "+0900"

    def test_utc(self, resolver):
        vtimezone = resolver.resolve("UTC", datetime(2024, 6, 1, tzinfo=utc))
        assert [x.name for x in blocks(vtimezone)] == ["STANDARD"]
        assert blocks(vtimezone)[0].get("TZOFFSETTO").value == "+0000"

    def test_windows_zone_name(self, resolver):
        vtimezone = resolver.resolve("W. Europe Standard Time", datetime(2024, 6, 1, tzinfo=utc))
        assert vtimezone.get("TZID").value == "W. Europe Standard Time"
        assert blocks(vtimezone, "DAYLIGHT")

    def test_unknown_zone(self, resolver):
        with pytest.raises(ZoneNotFoundError):
            resolver.resolve("Mars/Olympus_Mons", datetime(2024, 6, 1, tzinfo=utc))

    def test_serializes(self, resolver):
        text = resolver.resolve("Europe/Berlin", datetime(2024, 6, 1, tzinfo=utc)).to_ical()
        assert text.startswith("BEGIN:VTIMEZONE\r\nTZID:Europe/Berlin\r\n")
        assert text.endswith("END:VTIMEZONE\r\n")

    def test_exchange_zone_id(self, resolver):
        when = datetime(2024, 6, 1, tzinfo=utc)
        assert resolver.resolve("Europe/Berlin", when).get("X-MICROSOFT-CDO-TZID").value == "4"
        assert resolver.resolve("Asia/Tokyo", when).get("X-MICROSOFT-CDO-TZID").value == "20"
        windows = resolver.resolve("W. Europe Standard Time", when)
        assert windows.get("X-MICROSOFT-CDO-TZID").value == "4"

    def test_no_exchange_zone_id(self, resolver):
        vtimezone = resolver.resolve("Europe/Oslo", datetime(2024, 6, 1, tzinfo=utc))
        assert vtimezone.get("X-MICROSOFT-CDO-TZID") is None
        assert vtimezone.get("TZID").value == "Europe/Oslo"
