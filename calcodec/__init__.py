#!/usr/bin/env python
import logging

__version__ = "0.1.0"

from .codec import CalendarCodec
from .importer import StreamingImporter
from .instant import DateOnly
from .instant import DateTime
from .instant import Instant
from .model import AlarmRecord
from .model import Attachment
from .model import Attendee
from .model import EventRecord
from .model import FreeBusyRecord
from .model import RecurrenceRule
from .model import TimeZoneTransition
from .recurrence import RecurrenceEngine
from .timezones import TimeZoneTransitionResolver

# Silence notification of no default logging handler
log = logging.getLogger("calcodec")


class NullHandler(logging.Handler):
    def emit(self, record) -> None:
        pass


log.addHandler(NullHandler())

__all__ = [
    "__version__",
    "AlarmRecord",
    "Attachment",
    "Attendee",
    "CalendarCodec",
    "DateOnly",
    "DateTime",
    "EventRecord",
    "FreeBusyRecord",
    "Instant",
    "RecurrenceEngine",
    "RecurrenceRule",
    "StreamingImporter",
    "TimeZoneTransition",
    "TimeZoneTransitionResolver",
]
