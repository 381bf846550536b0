"""
Conversion between iCalendar components and EventRecords.
"""

from .decode import decode_alarm
from .decode import decode_component
from .decode import decode_freebusy
from .decode import decode_rrule
from .encode import EncodeOptions
from .encode import encode_alarm
from .encode import encode_record
from .encode import encode_rrule

__all__ = [
    "EncodeOptions",
    "decode_alarm",
    "decode_component",
    "decode_freebusy",
    "decode_rrule",
    "encode_alarm",
    "encode_record",
    "encode_rrule",
]
