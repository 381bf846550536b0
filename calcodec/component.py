"""
A generic, typed property-bag representation of iCalendar data.

A :class:`Component` (VCALENDAR, VEVENT, VALARM, ...) holds an ordered
list of :class:`Property` objects and an ordered list of child
components.  Property values are kept in their wire form and decoded on
demand through the typed accessors (``text()``, ``instant()``,
``duration()``, ...), so a property we don't understand survives a
decode/encode cycle untouched.

Tokenizing content lines (unfolding, parameter quoting) and folding on
output is left to the icalendar library; the tree is our own.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, Iterator, Optional, Union

from icalendar import vRecur, vText
from icalendar.parser import (
    Contentline,
    Contentlines,
    Parameters,
    split_on_unescaped_comma,
    unescape_backslash,
)

from calcodec.instant import DateOnly, Instant
from calcodec.lib.durations import duration_to_timedelta, timedelta_to_duration
from calcodec.lib.error import ParseError
from calcodec.lib.python_utilities import to_normal_str

log = logging.getLogger("calcodec")


class Property:
    """One content line: a name, its parameters and the raw value."""

    def __init__(self, name: str, value: str = "", params=None) -> None:
        self.name = name.upper()
        self.value = value
        self.params = params if isinstance(params, Parameters) else Parameters(params or {})

    ## Constructors for the typed values we write

    @classmethod
    def from_text(cls, name: str, text: str, params=None) -> "Property":
        return cls(name, vText(text).to_ical().decode("utf-8"), params)

    @classmethod
    def from_texts(cls, name: str, texts: Iterable[str], params=None) -> "Property":
        return cls(
            name, ",".join(vText(t).to_ical().decode("utf-8") for t in texts), params
        )

    @classmethod
    def from_instant(cls, name: str, instant: Instant, params=None) -> "Property":
        value, instant_params = instant.to_ical()
        merged = Parameters(params or {})
        merged.update(instant_params)
        return cls(name, value, merged)

    @classmethod
    def from_duration(cls, name: str, td: timedelta, params=None) -> "Property":
        return cls(name, timedelta_to_duration(td), params)

    ## Parameter access

    def param(self, key: str, default=None) -> Optional[str]:
        """A single parameter value.  Multi-valued parameters are joined
        with commas."""
        value = self.params.get(key)
        if value is None:
            return default
        if isinstance(value, (list, tuple)):
            return ",".join(str(x) for x in value)
        return str(value)

    def param_list(self, key: str) -> list[str]:
        value = self.params.get(key)
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(x) for x in value]
        return [x for x in str(value).split(",") if x]

    ## Typed value access

    def text(self) -> str:
        return unescape_backslash(self.value)

    def texts(self) -> list[str]:
        return [x.strip() for x in split_on_unescaped_comma(self.value) if x.strip()]

    def integer(self) -> int:
        return int(self.value.strip())

    def instant(self) -> Instant:
        return Instant.from_ical(self.value, self.params)

    def instants(self) -> list[Instant]:
        """All values of a multi-valued DATE/DATE-TIME property.  For
        VALUE=PERIOD the start of each period is returned."""
        if self.param("VALUE", "").upper() == "PERIOD":
            return [start for start, end in self.periods()]
        return [Instant.from_ical(x, self.params) for x in self.value.split(",") if x.strip()]

    def duration(self) -> timedelta:
        return duration_to_timedelta(self.value)

    def periods(self) -> list[tuple[Instant, Instant]]:
        """PERIOD values, either start/end or start/duration"""
        ret = []
        params = Parameters({k: v for k, v in self.params.items() if k != "VALUE"})
        for period in self.value.split(","):
            if not period.strip():
                continue
            start_text, _, end_text = period.strip().partition("/")
            start = Instant.from_ical(start_text, params)
            if end_text[:1] in ("P", "+", "-"):
                end = start.shift(duration_to_timedelta(end_text))
            elif end_text:
                end = Instant.from_ical(end_text, params)
            else:
                end = start
            ret.append((start, end))
        return ret

    def recur(self) -> vRecur:
        return vRecur.from_ical(self.value.strip())

    ## Serialization

    def to_ical(self) -> str:
        """The folded content line, without the trailing line break"""
        params = self.params.to_ical().decode("utf-8") if self.params else ""
        if params:
            line = f"{self.name};{params}:{self.value}"
        else:
            line = f"{self.name}:{self.value}"
        return Contentline(line).to_ical().decode("utf-8")

    def __repr__(self) -> str:
        return f"<Property {self.name} {dict(self.params)!r} {self.value!r}>"


class Component:
    """A BEGIN/END block with its properties and child components"""

    def __init__(
        self,
        name: str,
        properties: Optional[list[Property]] = None,
        subcomponents: Optional[list["Component"]] = None,
    ) -> None:
        self.name = name.upper()
        self.properties = properties if properties is not None else []
        self.subcomponents = subcomponents if subcomponents is not None else []

    def get(self, name: str) -> Optional[Property]:
        """The first property with the given name, or None"""
        name = name.upper()
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def get_all(self, name: str) -> list[Property]:
        name = name.upper()
        return [x for x in self.properties if x.name == name]

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def add(self, name_or_prop: Union[str, Property], value=None, params=None) -> Property:
        """Add a property.  A plain str value is treated as text and
        escaped, an Instant or timedelta is formatted accordingly; to add
        an already encoded value, pass a Property."""
        if isinstance(name_or_prop, Property):
            prop = name_or_prop
        elif isinstance(value, Instant):
            prop = Property.from_instant(name_or_prop, value, params)
        elif isinstance(value, timedelta):
            prop = Property.from_duration(name_or_prop, value, params)
        elif isinstance(value, (list, tuple)):
            prop = Property.from_texts(name_or_prop, value, params)
        elif isinstance(value, int) and not isinstance(value, bool):
            prop = Property(name_or_prop, str(value), params)
        else:
            prop = Property.from_text(name_or_prop, "" if value is None else str(value), params)
        self.properties.append(prop)
        return prop

    def add_component(self, component: "Component") -> None:
        self.subcomponents.append(component)

    def walk(self, name: Optional[str] = None) -> Iterator["Component"]:
        """Depth first iteration over self and all descendants, optionally
        only those with the given component name"""
        if name is None or self.name == name.upper():
            yield self
        for sub in self.subcomponents:
            yield from sub.walk(name)

    def to_lines(self) -> list[str]:
        lines = [f"BEGIN:{self.name}"]
        lines.extend(prop.to_ical() for prop in self.properties)
        for sub in self.subcomponents:
            lines.extend(sub.to_lines())
        lines.append(f"END:{self.name}")
        return lines

    def to_ical(self) -> str:
        return "\r\n".join(self.to_lines()) + "\r\n"

    def __repr__(self) -> str:
        uid = self.get("UID")
        return f"<Component {self.name}{' ' + uid.value if uid else ''}>"


def parse_components(data) -> list[Component]:
    """Parse iCalendar text (str or bytes) into the top level components.

    Raises ParseError on lines that can't be tokenized and on unbalanced
    BEGIN/END markers.
    """
    text = to_normal_str(data)
    try:
        lines = Contentlines.from_ical(text)
    except ValueError as exc:
        raise ParseError(f"could not split data into content lines: {exc}") from exc

    roots: list[Component] = []
    stack: list[Component] = []
    for line in lines:
        if not line.strip():
            continue
        try:
            name, params, value = line.raw_parts()
        except ValueError as exc:
            raise ParseError(str(exc), source=str(line)) from exc
        name = name.upper()
        if name == "BEGIN":
            stack.append(Component(value.strip()))
        elif name == "END":
            if not stack or stack[-1].name != value.strip().upper():
                raise ParseError(f"unexpected END:{value}", source=str(line))
            component = stack.pop()
            if stack:
                stack[-1].subcomponents.append(component)
            else:
                roots.append(component)
        elif not stack:
            raise ParseError(f"property {name} outside of any component", source=str(line))
        else:
            stack[-1].properties.append(Property(name, value, params))
    if stack:
        raise ParseError(f"missing END:{stack[-1].name}")
    return roots


def parse_calendar(data) -> Component:
    """Parse text expected to hold exactly one VCALENDAR"""
    roots = parse_components(data)
    calendars = [x for x in roots if x.name == "VCALENDAR"]
    if len(calendars) != 1:
        raise ParseError(f"expected one VCALENDAR, found {len(calendars)}")
    return calendars[0]
