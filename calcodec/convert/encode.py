"""
EventRecord → iCalendar component conversion.

Public API:
    encode_record(record, options=None) -> list[Component]
    encode_rrule(rule, start=None) -> str

``encode_record`` returns the component of the record followed by one
component per recurrence exception.  :class:`EncodeOptions` carries the
transport method, the attachment callback and memory budget, and
collects which timezones the written instants use, so a VTIMEZONE can be
added for each of them.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, time, timedelta, timezone
from typing import Callable, Optional
from urllib.parse import quote_plus

from icalendar import vRecur
from icalendar.parser import Parameters

from calcodec.component import Component, Property
from calcodec.convert._maps import (
    ADDRESS_PARAMS,
    ATTENDEE_PARAMS,
    BUSYSTATUS_TO_ICAL,
    ORGANIZER_PARAMS,
    RRULE_INT_PARTS,
)
from calcodec.instant import DateOnly, DateTime, Instant
from calcodec.lib.durations import duration_to_timedelta
from calcodec.lib.error import CalCodecError
from calcodec.lib.python_utilities import normalize_newlines
from calcodec.model import AlarmRecord, Attachment, Attendee, EventRecord, RecurrenceRule

log = logging.getLogger("calcodec")


@dataclass
class EncodeOptions:
    """Settings and state for encoding one batch of records.

    ``memory_budget`` is the number of bytes embedded attachments may
    use in total; None means no limit.  ``get_attachment`` returns the
    payload of an attachment; without it attachments are written as
    links built from the ``attach_uri`` template.
    """

    method: Optional[str] = None
    agent: Optional[str] = None
    attach_uri: Optional[str] = None
    get_attachment: Optional[Callable[[Attachment], Optional[bytes]]] = None
    memory_budget: Optional[int] = None
    zones: dict = field(default_factory=dict)

    def register(self, instant: Optional[Instant]) -> None:
        """Remember the range of instants written for each timezone"""
        if not isinstance(instant, DateTime) or not instant.is_zoned:
            return
        span = self.zones.setdefault(instant.tzid, [instant.value, instant.value])
        span[0] = min(span[0], instant.value)
        span[1] = max(span[1], instant.value)

    def reserve(self, size: int) -> bool:
        """Claim budget for embedding ``size`` bytes.  The payload is held
        raw, base64 encoded and serialized, so three times the size is
        claimed."""
        if self.memory_budget is None:
            return True
        needed = size * 3
        if needed > self.memory_budget:
            return False
        self.memory_budget -= needed
        return True


def _to_utc(instant: Instant) -> DateTime:
    if isinstance(instant, DateOnly):
        return DateTime(datetime.combine(instant.value, time(), tzinfo=timezone.utc))
    return instant.to_utc()


def _now() -> DateTime:
    return DateTime(datetime.now(timezone.utc))


def encode_rrule(rule: RecurrenceRule, start: Optional[Instant] = None) -> str:
    """The RRULE value for a rule, EXDATE and RDATE not included"""
    parts: dict = {"FREQ": rule.freq}
    if rule.until is not None:
        until = rule.until
        if isinstance(start, DateOnly):
            until = DateOnly(until.as_date())
        elif isinstance(until, DateTime) and not until.is_floating:
            ## RFC 5545: UNTIL is in UTC when DTSTART has a zone
            until = until.to_utc()
        parts["UNTIL"] = until.value
    if rule.count is not None:
        parts["COUNT"] = rule.count
    if rule.interval != 1:
        parts["INTERVAL"] = rule.interval
    if rule.byday:
        parts["BYDAY"] = [f"{nth}{day}" if nth else day for nth, day in rule.byday]
    for attr, part in RRULE_INT_PARTS.items():
        values = getattr(rule, attr)
        if values:
            parts[part] = list(values)
    if rule.wkst != "MO":
        parts["WKST"] = rule.wkst
    return vRecur(parts).to_ical().decode("utf-8")


def encode_attendee(
    name: str, attendee: Attendee, keymap: dict, schedule_agent: Optional[str] = None
) -> Property:
    params = Parameters()
    for attr, param in keymap.items():
        value = getattr(attendee, attr)
        if attr == "rsvp":
            if value:
                params["RSVP"] = "TRUE"
            continue
        if not value:
            continue
        if param in ADDRESS_PARAMS:
            addresses = [f"mailto:{x.strip()}" for x in value.split(",") if x.strip()]
            value = addresses[0] if len(addresses) == 1 else addresses
        params[param] = value
    if schedule_agent and "SCHEDULE-AGENT" not in params:
        params["SCHEDULE-AGENT"] = schedule_agent
    return Property(name, f"mailto:{attendee.email}", params)


def parse_legacy_alarm(legacy: str) -> Optional[AlarmRecord]:
    """"-PT15M:DISPLAY" or "@1700000000:EMAIL" → AlarmRecord"""
    trigger, _, action = legacy.partition(":")
    alarm = AlarmRecord(action=(action or "DISPLAY").upper())
    try:
        if trigger.startswith("@"):
            alarm.trigger = DateTime(datetime.fromtimestamp(int(trigger[1:]), timezone.utc))
        else:
            alarm.trigger = duration_to_timedelta(trigger)
    except ValueError:
        log.warning(f"ignoring unparseable alarm {legacy!r}")
        return None
    return alarm


def encode_alarm(alarm: AlarmRecord, options: EncodeOptions) -> Component:
    valarm = Component("VALARM")
    valarm.add("ACTION", alarm.action.upper())
    if isinstance(alarm.trigger, Instant):
        valarm.add("TRIGGER", _to_utc(alarm.trigger), {"VALUE": "DATE-TIME"})
    else:
        params = {"RELATED": "END"} if alarm.related.upper() == "END" else None
        valarm.add("TRIGGER", alarm.trigger or timedelta(0), params)

    if alarm.summary:
        valarm.add("SUMMARY", alarm.summary)
    if alarm.description or alarm.action.upper() in ("DISPLAY", "EMAIL"):
        ## DISPLAY and EMAIL alarms require a DESCRIPTION
        valarm.add("DESCRIPTION", normalize_newlines(alarm.description or ""))
    if alarm.action.upper() == "EMAIL":
        for address in alarm.attendees:
            valarm.add(Property("ATTENDEE", f"mailto:{address}"))
    if alarm.duration is not None and alarm.repeat:
        valarm.add("DURATION", alarm.duration)
        valarm.add("REPEAT", alarm.repeat)
    if alarm.uri:
        valarm.add(Property("ATTACH", alarm.uri, {"VALUE": "URI"}))
    return valarm


def _attachment_link(attachment: Attachment, options: EncodeOptions) -> Optional[Property]:
    if not options.attach_uri:
        return None
    uri = options.attach_uri
    for key in ("id", "name", "mimetype"):
        uri = uri.replace("{{%s}}" % key, quote_plus(str(getattr(attachment, key) or "")))
    params = {"VALUE": "URI"}
    if attachment.mimetype:
        params["FMTTYPE"] = attachment.mimetype
    return Property("ATTACH", uri, params)


def encode_attachment(attachment: Attachment, options: EncodeOptions) -> Optional[Property]:
    """An embedded payload if we have or can fetch it within budget,
    otherwise a link"""
    data = attachment.data
    if data is None and options.get_attachment is not None:
        size = attachment.size
        if size is not None and not options.reserve(size):
            log.info(f"attachment {attachment.name!r} exceeds the memory budget, linking it")
            return _attachment_link(attachment, options)
        try:
            data = options.get_attachment(attachment)
        except (CalCodecError, OSError, KeyError, ValueError) as exc:
            log.warning(f"could not fetch attachment {attachment.name!r}, linking it: {exc}")
            data = None
        if data is not None and size is None and not options.reserve(len(data)):
            log.info(f"attachment {attachment.name!r} exceeds the memory budget, linking it")
            return _attachment_link(attachment, options)
    elif data is not None and not options.reserve(len(data)):
        log.info(f"attachment {attachment.name!r} exceeds the memory budget, linking it")
        return _attachment_link(attachment, options)

    if data is None:
        return _attachment_link(attachment, options)

    params = {"VALUE": "BINARY", "ENCODING": "BASE64"}
    if attachment.mimetype:
        params["FMTTYPE"] = attachment.mimetype
    if attachment.name:
        params["X-LABEL"] = attachment.name
    return Property("ATTACH", base64.b64encode(data).decode("ascii"), params)


def encode_record(
    record: EventRecord,
    options: Optional[EncodeOptions] = None,
    recurrence_id: Optional[Instant] = None,
) -> list[Component]:
    """Convert an EventRecord into its VEVENT/VTODO component, followed
    by the components of its recurrence exceptions.

    ``recurrence_id`` is given when encoding an exception of a master
    record; the component then gets a RECURRENCE-ID and no RRULE.
    """
    if options is None:
        options = EncodeOptions()
    component = Component("VTODO" if record.kind == "task" else "VEVENT")

    def add_instant(name, instant, params=None):
        options.register(instant)
        component.add(name, instant, params)

    component.add("UID", record.uid or "")
    if record.changed is not None and not options.method:
        component.add("DTSTAMP", _to_utc(record.changed))
    else:
        component.add("DTSTAMP", _now())
    if record.created is not None:
        component.add("CREATED", _to_utc(record.created))
    if record.changed is not None:
        component.add("LAST-MODIFIED", _to_utc(record.changed))

    start = record.start
    end = record.end if record.kind == "event" else None
    if record.allday:
        start = DateOnly(start.as_date()) if start is not None else None
        if end is not None:
            ## DTEND is exclusive
            end = DateOnly(end.as_date()).shift(timedelta(days=1))
    if start is not None:
        add_instant("DTSTART", start)
    if end is not None:
        add_instant("DTEND", end)
    if record.due is not None:
        add_instant("DUE", record.due)

    rid = recurrence_id or record.recurrence_date
    if rid is not None:
        if record.allday:
            rid = DateOnly(rid.as_date())
        add_instant(
            "RECURRENCE-ID", rid, {"RANGE": "THISANDFUTURE"} if record.thisandfuture else None
        )

    component.add("SUMMARY", record.title or "")
    if record.location:
        component.add("LOCATION", normalize_newlines(record.location))
    if record.description:
        component.add("DESCRIPTION", normalize_newlines(record.description))
    if record.sequence is not None:
        component.add("SEQUENCE", record.sequence)

    rule = record.recurrence
    if rule is not None and rid is None:
        if rule.freq:
            component.add(Property("RRULE", encode_rrule(rule, start)))
        for name, instants in (("EXDATE", rule.exdates), ("RDATE", rule.rdates)):
            for instant in instants:
                if record.allday:
                    instant = DateOnly(instant.as_date())
                add_instant(name, instant)

    if record.categories:
        component.add("CATEGORIES", record.categories)
    if record.free_busy:
        component.add("TRANSP", "TRANSPARENT" if record.free_busy == "free" else "OPAQUE")
        if "outlook" in (options.agent or "").lower() and record.free_busy in BUSYSTATUS_TO_ICAL:
            component.add("X-MICROSOFT-CDO-BUSYSTATUS", BUSYSTATUS_TO_ICAL[record.free_busy])
    if record.priority:
        component.add("PRIORITY", record.priority)

    if record.cancelled:
        component.add("STATUS", "CANCELLED")
    elif record.free_busy == "tentative":
        component.add("STATUS", "TENTATIVE")
    elif record.complete == 100:
        component.add("STATUS", "COMPLETED")
    elif record.status:
        component.add("STATUS", record.status.upper())

    if record.sensitivity:
        component.add("CLASS", record.sensitivity.upper())
    if record.complete is not None and record.kind == "task":
        component.add("PERCENT-COMPLETE", record.complete)
        if record.complete == 100 or (record.status or "").upper() == "COMPLETED":
            completed = record.changed if record.changed is not None else _now().shift(-timedelta(hours=1))
            component.add("COMPLETED", _to_utc(completed))

    if record.alarms:
        for alarm in record.alarms:
            component.add_component(encode_alarm(alarm, options))
    elif record.legacy_alarm:
        alarm = parse_legacy_alarm(record.legacy_alarm)
        if alarm is not None:
            component.add_component(encode_alarm(alarm, options))

    schedule_agent = record.custom_property("SCHEDULE-AGENT")
    organizer = record.organizer
    for attendee in record.attendees:
        if (attendee.role or "").upper() == "ORGANIZER":
            if organizer is None:
                organizer = attendee
            continue
        if attendee.email:
            component.add(encode_attendee("ATTENDEE", attendee, ATTENDEE_PARAMS, schedule_agent))
    if organizer is not None and organizer.email:
        component.add(encode_attendee("ORGANIZER", organizer, ORGANIZER_PARAMS, schedule_agent))

    if record.url:
        component.add(Property("URL", record.url))
    if record.parent_id:
        component.add("RELATED-TO", record.parent_id, {"RELTYPE": "PARENT"})
    if record.comment:
        component.add("COMMENT", normalize_newlines(record.comment))

    for attachment in record.attachments:
        prop = encode_attachment(attachment, options)
        if prop is None:
            log.warning(f"attachment {attachment.name!r} of {record.uid} dropped, no way to reference it")
            continue
        component.add(prop)
    for link in record.links:
        component.add(Property("ATTACH", link))

    for name, value in record.custom_properties:
        if name.upper() == "SCHEDULE-AGENT":
            continue
        component.add(name, value)

    components = [component]
    if rid is None:
        for exception in record.exceptions:
            exception_rid = exception.recurrence_date or exception.start
            if exception_rid is None:
                log.warning(f"skipping exception of {record.uid} without recurrence id or start")
                continue
            if exception.uid != record.uid:
                exception = replace(exception, uid=record.uid)
            if record.allday and not exception.allday:
                exception = replace(exception, allday=True)
            components.extend(encode_record(exception, options, exception_rid))
    return components
