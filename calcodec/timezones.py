"""
VTIMEZONE synthesis from the tz database.

Offsets and transition times come from the compiled tables of pytz
(``_utc_transition_times`` / ``_transition_info``), which hold the full
history of a zone as UTC instants.
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytz
from icalendar import vUTCOffset
from icalendar.timezone.windows_to_olson import WINDOWS_TO_OLSON

from calcodec.component import Component, Property
from calcodec.instant import Instant
from calcodec.lib.error import ZoneNotFoundError
from calcodec.model import TimeZoneTransition

log = logging.getLogger("calcodec")

## Exchange (CDO) time zone numbers, sent as X-MICROSOFT-CDO-TZID
EXCHANGE_ZONE_IDS = {
    "UTC": 0,
    "Europe/London": 1,
    "Europe/Lisbon": 2,
    "Europe/Paris": 3,
    "Europe/Berlin": 4,
    "Europe/Bucharest": 5,
    "Europe/Prague": 6,
    "Europe/Athens": 7,
    "America/Sao_Paulo": 8,
    "America/Halifax": 9,
    "America/New_York": 10,
    "America/Chicago": 11,
    "America/Denver": 12,
    "America/Los_Angeles": 13,
    "America/Anchorage": 14,
    "Pacific/Honolulu": 15,
    "Pacific/Midway": 16,
    "Pacific/Auckland": 17,
    "Australia/Brisbane": 18,
    "Australia/Adelaide": 19,
    "Asia/Tokyo": 20,
    "Asia/Singapore": 21,
    "Asia/Bangkok": 22,
    "Asia/Calcutta": 23,
    "Asia/Muscat": 24,
    "Asia/Tehran": 25,
    "Asia/Baghdad": 26,
    "Asia/Jerusalem": 27,
    "America/St_Johns": 28,
    "Atlantic/Azores": 29,
    "America/Noronha": 30,
    "Africa/Casablanca": 31,
    "America/Argentina/Buenos_Aires": 32,
    "America/Caracas": 33,
    "America/Indiana/Indianapolis": 34,
    "America/Bogota": 35,
    "America/Edmonton": 36,
    "America/Mexico_City": 37,
    "America/Phoenix": 38,
    "Pacific/Kwajalein": 39,
    "Pacific/Fiji": 40,
    "Asia/Magadan": 41,
    "Australia/Hobart": 42,
    "Pacific/Guam": 43,
    "Australia/Darwin": 44,
    "Asia/Shanghai": 45,
    "Asia/Almaty": 46,
    "Asia/Karachi": 47,
    "Asia/Kabul": 48,
    "Africa/Cairo": 49,
    "Africa/Harare": 50,
    "Europe/Moscow": 51,
    "Atlantic/Cape_Verde": 53,
    "Asia/Baku": 54,
    "America/Guatemala": 55,
    "Africa/Nairobi": 56,
    "Asia/Yekaterinburg": 58,
    "Europe/Helsinki": 59,
    "America/Godthab": 60,
    "Asia/Rangoon": 61,
    "Asia/Kathmandu": 62,
    "Asia/Irkutsk": 63,
    "Asia/Krasnoyarsk": 64,
    "America/Santiago": 65,
    "Asia/Colombo": 66,
    "Pacific/Tongatapu": 67,
    "Asia/Vladivostok": 68,
    "Africa/Luanda": 69,
    "Asia/Yakutsk": 70,
    "Asia/Dhaka": 71,
    "Asia/Seoul": 72,
    "Australia/Perth": 73,
    "Asia/Kuwait": 74,
    "Asia/Taipei": 75,
    "Australia/Sydney": 76,
}


def _naive_utc(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, Instant):
        value = value.as_datetime() if value.is_date_only else value.value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, timezone.utc).replace(tzinfo=None)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None)


class TimeZoneTransitionResolver:
    """Lists offset transitions of a zone and turns them into VTIMEZONE
    components covering a given date range"""

    ## how far outside the requested range transitions are looked for
    window = timedelta(days=360)

    def zone(self, zone_id: str):
        try:
            return pytz.timezone(WINDOWS_TO_OLSON.get(zone_id, zone_id))
        except pytz.UnknownTimeZoneError as exc:
            raise ZoneNotFoundError(zone_id) from exc

    def transitions(self, zone_id: str, start=None, end=None) -> list[TimeZoneTransition]:
        """Offset transitions of the zone between start and end.

        The first entry always describes the state at ``start`` (with equal
        offsets before and after), the following ones are the actual
        transitions up to ``end``.  A ``start`` of None means the earliest
        data the tz database has on the zone.  Zones without any history
        give exactly one entry.
        """
        tz = self.zone(zone_id)
        start_utc = _naive_utc(start)
        end_utc = _naive_utc(end)
        times = getattr(tz, "_utc_transition_times", None)
        if not times:
            if start_utc is None:
                start_utc = datetime(1970, 1, 1)
            offset = tz.utcoffset(start_utc)
            return [
                TimeZoneTransition(
                    instant=start_utc.replace(tzinfo=timezone.utc),
                    offset_before=offset,
                    offset_after=offset,
                    is_daylight=False,
                    abbreviation=tz.tzname(start_utc),
                )
            ]

        infos = tz._transition_info
        if start_utc is None or start_utc < times[0]:
            start_utc = times[0]
        idx = max(bisect_right(times, start_utc) - 1, 0)
        offset, dst, abbreviation = infos[idx]
        ret = [
            TimeZoneTransition(
                instant=start_utc.replace(tzinfo=timezone.utc),
                offset_before=offset,
                offset_after=offset,
                is_daylight=bool(dst),
                abbreviation=abbreviation,
            )
        ]
        previous = offset
        for when, (offset, dst, abbreviation) in zip(times[idx + 1 :], infos[idx + 1 :]):
            if end_utc is not None and when > end_utc:
                break
            ret.append(
                TimeZoneTransition(
                    instant=when.replace(tzinfo=timezone.utc),
                    offset_before=previous,
                    offset_after=offset,
                    is_daylight=bool(dst),
                    abbreviation=abbreviation,
                )
            )
            previous = offset
        return ret

    def resolve(self, zone_id: str, from_instant=None, to_instant=None) -> Component:
        """A VTIMEZONE component for the zone, valid from ``from_instant``
        to ``to_instant`` (default: now).

        Raises ZoneNotFoundError for zones unknown to the tz database.
        """
        start = _naive_utc(from_instant) or datetime.now(timezone.utc).replace(tzinfo=None)
        end = _naive_utc(to_instant) or start
        transitions = self.transitions(zone_id, start - self.window, end + self.window)

        tzfrom = None
        if len(transitions) == 1:
            ## no DST in the window, find the offset in effect before the
            ## last change of the zone
            history = self.transitions(zone_id, None, end + self.window)
            if len(history) > 1:
                tzfrom = history[-2].offset_after
            else:
                tzfrom = transitions[0].offset_after

        vtimezone = Component("VTIMEZONE")
        vtimezone.add("TZID", zone_id)
        exchange_id = EXCHANGE_ZONE_IDS.get(WINDOWS_TO_OLSON.get(zone_id, zone_id))
        if exchange_id is not None:
            vtimezone.add("X-MICROSOFT-CDO-TZID", exchange_id)
        t_std = t_dst = None
        utc_start = start.replace(tzinfo=timezone.utc)
        utc_end = end.replace(tzinfo=timezone.utc)
        for trans in transitions:
            if tzfrom is None:
                tzfrom = trans.offset_after
                continue

            block = Component("DAYLIGHT" if trans.is_daylight else "STANDARD")
            onset = (trans.instant + tzfrom).replace(tzinfo=None)
            block.add(Property("DTSTART", onset.strftime("%Y%m%dT%H%M%S")))
            block.add(Property("TZOFFSETFROM", vUTCOffset(tzfrom).to_ical()))
            block.add(Property("TZOFFSETTO", vUTCOffset(trans.offset_after).to_ical()))
            if trans.abbreviation:
                block.add("TZNAME", trans.abbreviation)
            vtimezone.add_component(block)
            tzfrom = trans.offset_after

            if trans.is_daylight:
                t_dst = trans.instant
            else:
                t_std = trans.instant
            if (
                t_std is not None
                and t_dst is not None
                and min(t_std, t_dst) < utc_start
                and max(t_std, t_dst) > utc_end
            ):
                break

        if not vtimezone.subcomponents:
            log.debug(f"no transitions found for {zone_id} between {start} and {end}")
        return vtimezone
