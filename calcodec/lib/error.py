#!/usr/bin/env python
import logging
import os
from typing import Any
from typing import Optional

from calcodec import __version__

## Environmental variables prepended with "PYTHON_CALCODEC" are used for debug purposes
## one of DEBUG_PDB, DEBUG, DEVELOPMENT, PRODUCTION
debugmode = os.environ.get("PYTHON_CALCODEC_DEBUGMODE")
if not debugmode:
    if "dev" in __version__ or __version__ == "(unknown)":
        debugmode = "DEVELOPMENT"
    else:
        debugmode = "PRODUCTION"

log = logging.getLogger("calcodec")
if debugmode.startswith("DEBUG"):
    log.setLevel(logging.DEBUG)
else:
    log.setLevel(logging.WARNING)


def weirdness(*reasons) -> None:
    reason = " : ".join([str(x) for x in reasons])
    log.warning(f"Deviation from expectations found: {reason}")
    if debugmode == "DEBUG_PDB":
        log.error(f"Dropping into debugger due to {reason}")
        import pdb

        pdb.set_trace()


def assert_(condition: object) -> None:
    try:
        assert condition
    except AssertionError:
        if debugmode == "PRODUCTION":
            log.error(
                "Deviation from expectations found.  %s" % ERR_FRAGMENT, exc_info=True
            )
        elif debugmode == "DEBUG_PDB":
            log.error("Deviation from expectations found.  Dropping into debugger")
            import pdb

            pdb.set_trace()
        else:
            raise


ERR_FRAGMENT: str = "Please consider raising an issue on the calcodec issue tracker, include this error, the traceback (if any) and the calendar data that triggered it"


class CalCodecError(Exception):
    uid: Optional[str] = None
    reason: str = "no reason"

    def __init__(self, reason: Optional[str] = None, uid: Optional[str] = None) -> None:
        if reason:
            self.reason = reason
        if uid:
            self.uid = uid
        super().__init__(self.reason)

    def __str__(self) -> str:
        return "%s for '%s', reason %s" % (
            self.__class__.__name__,
            self.uid,
            self.reason,
        )


class ParseError(CalCodecError):
    """
    The wire data could not be tokenized into a component tree.  The
    source property may hold the offending text block.
    """

    source: Optional[str] = None

    def __init__(
        self,
        reason: Optional[str] = None,
        uid: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        super().__init__(reason, uid)
        if source:
            self.source = source


class ValidationError(CalCodecError):
    """
    A component was parsed, but lacks mandatory data (uid) or has an
    inconsistent start/end combination.
    """

    pass


class ZoneNotFoundError(CalCodecError):
    zone_id: Optional[str] = None

    def __init__(self, zone_id: str, reason: Optional[str] = None) -> None:
        self.zone_id = zone_id
        super().__init__(reason or f"unknown timezone {zone_id!r}")


class RecurrenceConsistencyError(CalCodecError):
    """
    No occurrence satisfying the rule could be located.  The rule
    property holds the rule that was given.
    """

    rule: Any = None

    def __init__(self, rule: Any, reason: Optional[str] = None) -> None:
        self.rule = rule
        super().__init__(reason or f"no occurrence found for rule {rule!r}")
