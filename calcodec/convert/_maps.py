"""
Fixed mappings between iCalendar parameters/values and the model.
"""

## Attendee field -> ATTENDEE parameter
ATTENDEE_PARAMS = {
    "name": "CN",
    "status": "PARTSTAT",
    "role": "ROLE",
    "cutype": "CUTYPE",
    "rsvp": "RSVP",
    "delegated_from": "DELEGATED-FROM",
    "delegated_to": "DELEGATED-TO",
    "schedule_status": "SCHEDULE-STATUS",
    "schedule_agent": "SCHEDULE-AGENT",
    "sent_by": "SENT-BY",
}

## ORGANIZER only knows a subset
ORGANIZER_PARAMS = {
    "name": "CN",
    "schedule_status": "SCHEDULE-STATUS",
    "schedule_agent": "SCHEDULE-AGENT",
    "sent_by": "SENT-BY",
}

## Parameters holding cal-addresses, the mailto: prefix is handled like on the value
ADDRESS_PARAMS = ("DELEGATED-FROM", "DELEGATED-TO", "SENT-BY")

_BUSYSTATUS_MAP = {
    "OOF": "outofoffice",
    "FREE": "free",
    "BUSY": "busy",
    "TENTATIVE": "tentative",
}

BUSYSTATUS_FROM_ICAL = _BUSYSTATUS_MAP
BUSYSTATUS_TO_ICAL = {v: k for k, v in _BUSYSTATUS_MAP.items()}

## RRULE parts holding integer lists, model attribute -> RRULE part
RRULE_INT_PARTS = {
    "bysecond": "BYSECOND",
    "byminute": "BYMINUTE",
    "byhour": "BYHOUR",
    "bymonthday": "BYMONTHDAY",
    "byyearday": "BYYEARDAY",
    "byweekno": "BYWEEKNO",
    "bymonth": "BYMONTH",
    "bysetpos": "BYSETPOS",
}

## Vendor properties that are mapped to model fields and must not end up
## among the custom properties
MAPPED_X_PROPERTIES = ("X-MICROSOFT-CDO-BUSYSTATUS", "X-CALENDARSERVER-ACCESS")
