"""
iCalendar component → EventRecord conversion.

Public API:
    decode_component(component, method=None) -> EventRecord
    decode_freebusy(component) -> FreeBusyRecord
    decode_rrule(prop) -> RecurrenceRule
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from datetime import timedelta
from typing import Optional

from calcodec.component import Component, Property
from calcodec.convert._maps import (
    ADDRESS_PARAMS,
    ATTENDEE_PARAMS,
    BUSYSTATUS_FROM_ICAL,
    MAPPED_X_PROPERTIES,
    ORGANIZER_PARAMS,
    RRULE_INT_PARTS,
)
from calcodec.instant import DateOnly, Instant
from calcodec.lib.durations import legacy_trigger
from calcodec.lib.error import ValidationError, weirdness
from calcodec.model import (
    AlarmRecord,
    Attachment,
    Attendee,
    EventRecord,
    FreeBusyRecord,
    RecurrenceRule,
)

log = logging.getLogger("calcodec")

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*:", re.IGNORECASE)

## All-day end dates are moved back by this much, DTEND is exclusive
ALLDAY_END_SHIFT = timedelta(hours=23)

_KINDS = {"VEVENT": "event", "VTODO": "task"}


def strip_scheme(address: str) -> str:
    """"mailto:jane@example.com" → "jane@example.com" """
    return _SCHEME_RE.sub("", address.strip())


def decode_attendee(prop: Property, keymap: dict = ATTENDEE_PARAMS) -> Attendee:
    attendee = Attendee(email=strip_scheme(prop.value))
    for attr, param in keymap.items():
        value = prop.param(param)
        if value is None:
            continue
        if attr == "rsvp":
            attendee.rsvp = value.upper() == "TRUE"
            continue
        if param in ADDRESS_PARAMS:
            value = ",".join(strip_scheme(x) for x in prop.param_list(param))
        setattr(attendee, attr, value)
    return attendee


def decode_rrule(prop: Property) -> RecurrenceRule:
    """RRULE → RecurrenceRule.  Raises ValueError for unparseable rules."""
    recur = prop.recur()

    def first(key):
        values = recur.get(key) or []
        return values[0] if values else None

    freq = first("FREQ")
    if not freq:
        raise ValueError(f"RRULE is missing required FREQ component: {prop.value!r}")
    rule = RecurrenceRule(
        freq=str(freq),
        interval=int(first("INTERVAL") or 1),
        count=int(first("COUNT")) if first("COUNT") is not None else None,
        until=Instant.coerce(first("UNTIL")) if first("UNTIL") is not None else None,
        byday=[str(x) for x in recur.get("BYDAY", [])],
        wkst=str(first("WKST") or "MO"),
    )
    for attr, part in RRULE_INT_PARTS.items():
        setattr(rule, attr, [int(x) for x in recur.get(part, [])])
    return rule


def decode_alarm(valarm: Component) -> Optional[AlarmRecord]:
    """VALARM → AlarmRecord.  Returns None for alarms that shall not
    trigger (ACTION:NONE) or can't be understood."""
    action_prop = valarm.get("ACTION")
    action = action_prop.text().strip().upper() if action_prop else "DISPLAY"
    if action == "NONE":
        return None

    alarm = AlarmRecord(action=action)
    trigger = valarm.get("TRIGGER")
    if trigger is None:
        weirdness("VALARM without TRIGGER", action)
        return None
    try:
        if trigger.param("VALUE", "").upper() == "DATE-TIME":
            alarm.trigger = trigger.instant()
        else:
            alarm.trigger = trigger.duration()
            alarm.related = (trigger.param("RELATED") or "START").upper()
    except ValueError:
        weirdness("unparseable alarm trigger", trigger.value)
        return None

    for name, attr in (("SUMMARY", "summary"), ("DESCRIPTION", "description")):
        prop = valarm.get(name)
        if prop is not None:
            setattr(alarm, attr, prop.text())
    duration = valarm.get("DURATION")
    repeat = valarm.get("REPEAT")
    try:
        if duration is not None:
            alarm.duration = duration.duration()
        if repeat is not None:
            alarm.repeat = repeat.integer()
    except ValueError:
        log.debug(f"ignoring broken DURATION/REPEAT in alarm: {duration!r} {repeat!r}")
    for prop in valarm.get_all("ATTENDEE"):
        alarm.attendees.append(strip_scheme(prop.value))
    attach = valarm.get("ATTACH")
    if attach is not None and attach.param("VALUE", "URI").upper() == "URI":
        alarm.uri = attach.value
    return alarm


def decode_attach(prop: Property, record: EventRecord) -> None:
    """ATTACH is either a link (URI value) or an embedded binary"""
    if prop.param("VALUE", "").upper() == "BINARY" or prop.param("ENCODING", "").upper() == "BASE64":
        try:
            data = base64.b64decode(prop.value, validate=False)
        except (binascii.Error, ValueError):
            weirdness("undecodable binary attachment", prop.param("X-LABEL"))
            return
        record.attachments.append(
            Attachment(
                name=prop.param("X-LABEL") or prop.param("X-APPLE-FILENAME"),
                mimetype=prop.param("FMTTYPE"),
                size=len(data),
                data=data,
            )
        )
        return
    link = prop.value.strip()
    ## links to our own attachment storage are not kept as links
    if link and ":attachment:" not in link:
        record.links.append(link)


def _parse_instant(prop: Property, uid: Optional[str]) -> Optional[Instant]:
    try:
        return prop.instant()
    except ValueError:
        weirdness(f"unparseable {prop.name} in {uid}", prop.value)
        return None


def decode_component(component: Component, method: Optional[str] = None) -> EventRecord:
    """Convert a VEVENT or VTODO component into an EventRecord.

    Raises ValidationError if the component has no UID, or is an event
    with only one of DTSTART/DTEND.
    """
    kind = _KINDS.get(component.name)
    if kind is None:
        raise ValidationError(f"cannot decode {component.name} into an event or task")

    uid_prop = component.get("UID")
    record = EventRecord(kind=kind, uid=uid_prop.text().strip() if uid_prop else None)

    for name, attr in (("CREATED", "created"), ("LAST-MODIFIED", "changed")):
        prop = component.get(name)
        if prop is not None:
            ## invalid timestamps are not worth failing over
            setattr(record, attr, _parse_instant(prop, record.uid))
    if record.changed is None and "DTSTAMP" in component:
        record.changed = _parse_instant(component.get("DTSTAMP"), record.uid)

    duration = None
    schedule_agent = None
    for prop in component.properties:
        name = prop.name
        if name == "SUMMARY":
            record.title = prop.text()
        elif name in ("DTSTART", "DTEND", "DUE"):
            setattr(record, {"DTSTART": "start", "DTEND": "end", "DUE": "due"}[name], _parse_instant(prop, record.uid))
        elif name == "DURATION":
            try:
                duration = prop.duration()
            except ValueError:
                weirdness(f"unparseable DURATION in {record.uid}", prop.value)
        elif name == "TRANSP":
            record.free_busy = "free" if prop.text().strip().upper() == "TRANSPARENT" else "busy"
        elif name == "STATUS":
            status = prop.text().strip().upper()
            if status == "TENTATIVE":
                record.free_busy = "tentative"
            elif status == "CANCELLED":
                record.cancelled = True
            elif status == "COMPLETED":
                record.complete = 100
            record.status = status
        elif name == "COMPLETED":
            if _parse_instant(prop, record.uid) is not None:
                record.status = "COMPLETED"
                record.complete = 100
        elif name == "PRIORITY":
            if prop.value.strip().isdigit():
                record.priority = prop.integer()
        elif name == "RRULE":
            try:
                rule = decode_rrule(prop)
            except ValueError as exc:
                weirdness(f"ignoring broken RRULE in {record.uid}", str(exc))
                continue
            if record.recurrence is not None:
                ## EXDATE/RDATE seen before the RRULE
                rule.exdates = record.recurrence.exdates
                rule.rdates = record.recurrence.rdates
            record.recurrence = rule
        elif name in ("EXDATE", "RDATE"):
            if record.recurrence is None:
                record.recurrence = RecurrenceRule()
            try:
                instants = prop.instants()
            except ValueError:
                weirdness(f"unparseable {name} in {record.uid}", prop.value)
                continue
            target = record.recurrence.exdates if name == "EXDATE" else record.recurrence.rdates
            target.extend(instants)
        elif name == "RECURRENCE-ID":
            record.recurrence_date = _parse_instant(prop, record.uid)
            record.thisandfuture = (
                (prop.param("RANGE") or "").upper() == "THISANDFUTURE"
                or "THISANDFUTURE" in prop.params
            )
        elif name == "RELATED-TO":
            reltype = (prop.param("RELTYPE") or "PARENT").upper()
            if reltype == "PARENT":
                record.parent_id = prop.text().strip()
        elif name in ("SEQUENCE", "PERCENT-COMPLETE"):
            try:
                value = prop.integer()
            except ValueError:
                weirdness(f"non-numeric {name} in {record.uid}", prop.value)
                continue
            if name == "SEQUENCE":
                record.sequence = value
            else:
                record.complete = value
        elif name in ("LOCATION", "DESCRIPTION", "URL", "COMMENT"):
            value = prop.value if name == "URL" else prop.text()
            setattr(record, name.lower(), value)
        elif name in ("CATEGORY", "CATEGORIES"):
            record.categories.extend(prop.texts())
        elif name in ("CLASS", "X-CALENDARSERVER-ACCESS"):
            record.sensitivity = prop.text().strip().lower()
        elif name == "X-MICROSOFT-CDO-BUSYSTATUS":
            status = prop.text().strip().upper()
            if status in BUSYSTATUS_FROM_ICAL:
                record.free_busy = BUSYSTATUS_FROM_ICAL[status]
        elif name == "ORGANIZER":
            organizer = decode_attendee(prop, ORGANIZER_PARAMS)
            organizer.role = "ORGANIZER"
            organizer.status = "ACCEPTED"
            record.organizer = organizer
            schedule_agent = prop.param("SCHEDULE-AGENT")
        elif name == "ATTENDEE":
            attendee = decode_attendee(prop)
            ## an ATTENDEE line for the organizer is redundant once ORGANIZER was seen
            if record.organizer is None or attendee.email != record.organizer.email:
                record.attendees.append(attendee)
        elif name == "ATTACH":
            decode_attach(prop, record)
        elif name.startswith("X-") and name not in MAPPED_X_PROPERTIES:
            record.custom_properties.append((name, prop.text()))

    if schedule_agent:
        record.custom_properties.append(("SCHEDULE-AGENT", schedule_agent.upper()))

    if record.end is None and duration is not None and record.start is not None:
        record.end = record.start.shift(duration)

    if kind == "event":
        record.allday = isinstance(record.start, DateOnly)
        if record.end is None and record.start is not None:
            ## RFC 5545: no DTEND and no DURATION means it ends when it starts
            record.end = record.start
        elif record.allday and isinstance(record.end, DateOnly):
            record.end = record.end.shift(-ALLDAY_END_SHIFT)
        if record.start is not None and record.end is not None and record.end < record.start:
            record.end = record.start
    else:
        record.allday = isinstance(record.start or record.due, DateOnly)

    if record.organizer is not None and kind == "event":
        ## events list the organizer among the attendees, unless already present
        if not any(x.email == record.organizer.email for x in record.attendees):
            record.attendees.insert(0, record.organizer)

    if (method or "").upper() == "CANCEL" and record.end is None and record.start is not None:
        record.end = record.start

    for valarm in component.subcomponents:
        if valarm.name != "VALARM":
            continue
        alarm = decode_alarm(valarm)
        if alarm is None:
            continue
        record.alarms.append(alarm)
        if record.legacy_alarm is None:
            record.legacy_alarm = f"{legacy_trigger(alarm.trigger)}:{alarm.action}"

    _validate(record)
    return record


def _validate(record: EventRecord) -> None:
    if not record.uid:
        raise ValidationError(f"{record.kind} without UID", uid=record.uid)
    if record.kind == "event" and (record.start is None) != (record.end is None):
        raise ValidationError(
            "an event needs both or none of start and end", uid=record.uid
        )


def decode_freebusy(component: Component) -> FreeBusyRecord:
    """VFREEBUSY → FreeBusyRecord"""
    uid = component.get("UID")
    record = FreeBusyRecord(uid=uid.text().strip() if uid else None)
    for name, attr in (("DTSTART", "start"), ("DTEND", "end")):
        prop = component.get(name)
        if prop is not None:
            setattr(record, attr, _parse_instant(prop, record.uid))
    organizer = component.get("ORGANIZER")
    if organizer is not None:
        record.organizer = decode_attendee(organizer, ORGANIZER_PARAMS)
    record.attendees = [decode_attendee(x) for x in component.get_all("ATTENDEE")]
    for prop in component.get_all("FREEBUSY"):
        fbtype = (prop.param("FBTYPE") or "BUSY").upper()
        try:
            periods = prop.periods()
        except ValueError:
            weirdness("unparseable FREEBUSY period", prop.value)
            continue
        record.periods.extend((start, end, fbtype) for start, end in periods)
    return record
