#!/usr/bin/env python
from unittest import TestCase

from calcodec.component import parse_calendar
from calcodec.lib import vcal
from calcodec.lib.python_utilities import to_normal_str
from calcodec.lib.vcal import fix

# example from http://www.rfc-editor.org/rfc/rfc5545.txt
ev = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Example Corp.//CalDAV Client//EN
BEGIN:VEVENT
UID:19970901T130000Z-123403@example.com
DTSTAMP:19970901T130000Z
DTSTART;VALUE=DATE:19971102
SUMMARY:Our Blissful Anniversary
TRANSP:TRANSPARENT
CLASS:CONFIDENTIAL
CATEGORIES:ANNIVERSARY,PERSONAL,SPECIAL OCCASION
RRULE:FREQ=YEARLY
END:VEVENT
END:VCALENDAR
"""


class TestVcal(TestCase):
    def assertSameICal(self, ical1, ical2):
        """helper method"""

        def normalize(s):
            s = to_normal_str(s).strip().split("\n")
            s.sort()
            return "\n".join(s)

        self.assertEqual(normalize(ical1), normalize(ical2))
        return ical2

    def test_valid_data_passes_unchanged(self):
        self.assertEqual(fix(ev), ev)
        self.assertSameICal(fix(ev.replace("\n", "\r\n")), ev)

    def test_completed_date(self):
        broken = ev.replace("RRULE:FREQ=YEARLY", "COMPLETED:19971103")
        fixed = fix(broken)
        self.assertIn("COMPLETED:19971103T120000Z", fixed)
        broken = ev.replace("RRULE:FREQ=YEARLY", "COMPLETED;VALUE=DATE:19971103")
        self.assertIn("COMPLETED:19971103T120000Z", fix(broken))

    def test_created_year_one(self):
        broken = ev.replace("RRULE:FREQ=YEARLY", "CREATED:00010101T000000Z")
        self.assertIn("CREATED:19700101T000000Z", fix(broken))

    def test_duplicate_dtstamp(self):
        broken = ev.replace(
            "SUMMARY:", "DTSTAMP:20240101T000000Z\nSUMMARY:"
        )
        fixed = fix(broken)
        self.assertEqual(fixed.count("DTSTAMP"), 1)
        self.assertIn("DTSTAMP:19970901T130000Z", fixed)

    def test_dtend_and_duration(self):
        broken = ev.replace(
            "SUMMARY:", "DTEND;VALUE=DATE:19971103\nDURATION:P1D\nSUMMARY:"
        )
        fixed = fix(broken)
        self.assertIn("DTEND;VALUE=DATE:19971103", fixed)
        self.assertNotIn("DURATION", fixed)

    def test_dropped_line_takes_continuation_along(self):
        broken = ev.replace(
            "SUMMARY:", "DTSTAMP:20240101T000000Z\n ;X-PARAM=folded\nSUMMARY:"
        )
        fixed = fix(broken)
        self.assertNotIn("folded", fixed)
        self.assertIn("SUMMARY:Our Blissful Anniversary", fixed)

    def test_each_component_counts_separately(self):
        data = ev.replace(
            "END:VEVENT",
            "BEGIN:VALARM\nACTION:AUDIO\nTRIGGER:-PT5M\nDURATION:PT1M\nREPEAT:2\nEND:VALARM\nEND:VEVENT",
        ).replace("SUMMARY:", "DURATION:P1D\nSUMMARY:")
        fixed = fix(data)
        self.assertEqual(fixed.count("DURATION"), 2)

    def test_trailing_whitespace(self):
        broken = ev.replace("SUMMARY:Our Blissful Anniversary", "SUMMARY:Our Blissful Anniversary \t")
        self.assertSameICal(fix(broken), ev)

    def test_fixed_data_parses(self):
        broken = (
            ev.replace("RRULE:FREQ=YEARLY", "COMPLETED:19971103\nCREATED:00010101T000000Z")
            .replace("SUMMARY:", "DTSTAMP:20240101T000000Z\nSUMMARY:")
        )
        calendar = parse_calendar(fix(broken))
        event = calendar.subcomponents[0]
        self.assertEqual(len(event.get_all("DTSTAMP")), 1)
        self.assertEqual(event.get("CREATED").value, "19700101T000000Z")

    def test_logging_is_ratelimited(self):
        before = vcal.fixup_error_loggings
        fix(ev.replace("RRULE:FREQ=YEARLY", "COMPLETED:19971103"))
        fix(ev)
        self.assertEqual(vcal.fixup_error_loggings, before + 1)
