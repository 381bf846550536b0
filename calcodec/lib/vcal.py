#!/usr/bin/env python
import difflib
import logging
import re

from calcodec.lib.python_utilities import to_normal_str

## Global counter.  Broken input tends to come in bulk, we don't want to be too verbose on the users
fixup_error_loggings = 0

## Fixups to the icalendar data to work around compatibility issues.


def fix(ical):
    """This function receives some ical text as it's given from some
    calendar producer, checks for breakages with the standard, and
    attempts to fix up known issues:

    1) COMPLETED MUST be a datetime in UTC according to the RFC, but
    sometimes a date is given.  An arbitrary time of day is added.

    2) CREATED timestamps in year 0001 make no sense, they are moved
    to the epoch.

    3) Some producers duplicate the DTSTAMP property - keep the first
    DTSTAMP encountered.

    4) Trailing white space is removed from all lines.

    5) Components with both DTEND (or DUE) and DURATION set are
    forbidden according to the RFC.  We keep whatever comes first.

    Lines are expected to be unfolded or folded, both work, as long as
    continuation lines start with white space.
    """
    ical = to_normal_str(ical)
    if not ical.endswith("\n"):
        ical = ical + "\n"

    ## 1) Add an arbitrary time if completed is given as date
    fixed = re.sub(
        r"^COMPLETED(?:;VALUE=DATE)?:(\d{8})$",
        r"COMPLETED:\g<1>T120000Z",
        ical,
        flags=re.MULTILINE,
    )

    ## 2) CREATED timestamps prior to epoch does not make sense
    fixed = re.sub(
        r"^CREATED:0001\d{4}T\d{6}Z?$",
        "CREATED:19700101T000000Z",
        fixed,
        flags=re.MULTILINE,
    )

    ## 4) trailing whitespace probably never makes sense
    fixed = re.sub(r"[ \t]+$", "", fixed, flags=re.MULTILINE)

    ## 3) and 5)
    fixed2 = (
        "\n".join(filter(LineFilterDiscardingDuplicates(), fixed.strip().split("\n")))
        + "\n"
    )

    if fixed2 != ical:
        ## Rate-limited logging, only powers of two (1, 2, 4, 8, ...) are
        ## logged as warnings.
        global fixup_error_loggings
        fixup_error_loggings += 1
        is_power_of_two = lambda n: not (n & (n - 1))
        if is_power_of_two(fixup_error_loggings):
            log = logging.getLogger("calcodec").warning
        else:
            log = logging.getLogger("calcodec").debug

        log_message = [
            "Ical data was modified to avoid compatibility issues",
            "(The calendar producer breaks the icalendar standard)",
            f"(error count: {fixup_error_loggings} - this error is ratelimited)",
        ]
        diff = list(
            difflib.unified_diff(ical.split("\n"), fixed2.split("\n"), lineterm="")
        )
        log("\n".join(log_message + diff))

    return fixed2


class LineFilterDiscardingDuplicates:
    """Needs to be a class because it keeps track of whether a certain
    group of date line was already encountered within a component.
    This must be called line by line in order on the complete text, at
    least comprising the complete component.
    """

    def __init__(self) -> None:
        self.stamped = 0
        self.ended = 0
        self.dropping = False

    def __call__(self, line):
        ## continuation lines follow the fate of the line they belong to
        if line[:1] in (" ", "\t"):
            return not self.dropping
        self.dropping = False

        if re.match("(BEGIN|END):V", line, re.IGNORECASE):
            self.stamped = 0
            self.ended = 0

        elif re.match("(DURATION|DTEND|DUE)[:;]", line, re.IGNORECASE):
            if self.ended:
                self.dropping = True
                return False
            self.ended += 1

        elif re.match("DTSTAMP[:;]", line, re.IGNORECASE):
            if self.stamped:
                self.dropping = True
                return False
            self.stamped += 1

        return True
