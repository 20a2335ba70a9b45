#!/usr/bin/env python3
"""Calendar .ics invite generation."""

import datetime
import re
import uuid
from enum import Enum
from typing import Any, Callable, Mapping

import dateparser
from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta
from icalendar import vDatetime, vDuration
from loguru import logger

from ics_invite.settings import (
    ALARM_TRIGGER,
    CONTENT_TYPE,
    DATEPARSER_SETTINGS,
    TZID,
    VCALENDAR_HEADER,
    VTIMEZONE_BLOCK,
)


class EventField(str, Enum):
    """Event properties an invite accepts."""

    DESCRIPTION = "description"
    DTEND = "dtend"
    DTSTART = "dtstart"
    LOCATION = "location"
    SUMMARY = "summary"
    URL = "url"


DATE_FIELDS = {EventField.DTSTART, EventField.DTEND}

# Property names that carry parameters on the content line
PROPERTY_NAMES = {
    EventField.URL: "URL;VALUE=URI",
    EventField.DTSTART: f"DTSTART;TZID={TZID}",
    EventField.DTEND: f"DTEND;TZID={TZID}",
}

_LINE_BREAKS = re.compile(r"<br>|<br />|<br/>")
_TEXT_SPECIALS = re.compile(r"([,;])")
# One term of "now + 1 hour 30 minutes"; unsigned terms count forward
_OFFSET_TERM = re.compile(
    r"\s*(?P<sign>[+-]?)\s*(?P<amount>\d+)\s*"
    r"(?P<unit>second|sec|minute|min|hour|day|week|month|year)s?\b",
    re.IGNORECASE,
)
_OFFSET_UNITS = {
    "sec": "seconds",
    "second": "seconds",
    "min": "minutes",
    "minute": "minutes",
    "hour": "hours",
    "day": "days",
    "week": "weeks",
    "month": "months",
    "year": "years",
}
_RELATIVE_WEEKDAY = re.compile(
    r"^(?P<direction>next|last|previous)\s+"
    r"(?P<weekday>monday|tuesday|wednesday|thursday|friday|saturday|sunday)$",
    re.IGNORECASE,
)
_WEEKDAYS = {
    "monday": MO,
    "tuesday": TU,
    "wednesday": WE,
    "thursday": TH,
    "friday": FR,
    "saturday": SA,
    "sunday": SU,
}
# Bare day words resolve to midnight
_DAY_WORDS = {"midnight": 0, "today": 0, "tomorrow": 1, "yesterday": -1}


class DateParseError(ValueError):
    """Raised when a date field value cannot be read as a point in time."""

    def __init__(self, field: str, value: Any) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Cannot parse {field} value as a date: {value!r}")


def escape_text(value: Any) -> str:
    """
    Escape a free-text value for an iCalendar TEXT property.

    Backslashes already present in the input are left as they are.

    Args:
        value: Text to escape (None becomes an empty string)

    Returns:
        Escaped text safe to place after the property name
    """
    text = "" if value is None else str(value)
    text = text.replace("&nbsp;", " ")
    text = _LINE_BREAKS.sub(r"\\n", text)
    return _TEXT_SPECIALS.sub(r"\\\1", text)


def parse_timestamp(value: Any, now: datetime.datetime, field: str = "dtstamp") -> datetime.datetime:
    """
    Coerce a date field value into a datetime.

    Args:
        value: datetime, date, or natural-language text such as "now + 1 hour"
        now: Reference point for relative expressions
        field: Field name reported in errors

    Returns:
        The point in time the value designates

    Raises:
        DateParseError: If the value is not a date or cannot be parsed
    """
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time.min)
    if not isinstance(value, str):
        raise DateParseError(field, value)

    text = value.strip()
    parsed = _parse_relative(text, now, field)
    if parsed is None:
        parsed = dateparser.parse(text, settings={**DATEPARSER_SETTINGS, "RELATIVE_BASE": now})
    if parsed is None:
        raise DateParseError(field, value)
    return parsed


def _parse_relative(text: str, now: datetime.datetime, field: str) -> datetime.datetime | None:
    """Resolve offsets, "next/last <weekday>" and bare day words; None for anything else."""
    lowered = text.lower()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if lowered in _DAY_WORDS:
        return midnight + relativedelta(days=_DAY_WORDS[lowered])

    match = _RELATIVE_WEEKDAY.match(lowered)
    if match:
        weekday = _WEEKDAYS[match["weekday"]]
        if match["direction"] == "next":
            return midnight + relativedelta(days=+1, weekday=weekday(+1))
        return midnight + relativedelta(days=-1, weekday=weekday(-1))

    body = lowered[3:].lstrip() if lowered.startswith("now") else lowered
    if not lowered.startswith("now") and body[:1] not in ("+", "-"):
        return None

    offset = relativedelta()
    pos = 0
    while pos < len(body):
        term = _OFFSET_TERM.match(body, pos)
        if term is None:
            raise DateParseError(field, text)
        amount = int(term["amount"]) * (-1 if term["sign"] == "-" else 1)
        offset += relativedelta(**{_OFFSET_UNITS[term["unit"]]: amount})
        pos = term.end()
    return now + offset


def format_timestamp(dt: datetime.datetime) -> str:
    """Format a datetime as floating local time, e.g. 20240101T090000."""
    return vDatetime(dt.replace(tzinfo=None)).to_ical().decode("utf-8")


class EventDocumentBuilder:
    """
    Builds the .ics text for a single event invite.

    Usage:
        builder = EventDocumentBuilder({"summary": "Team sync", "dtstart": "now + 1 hour"})
        builder.set("dtend", "now + 2 hours")
        ics_content = builder.render()
    """

    content_type = CONTENT_TYPE

    def __init__(
        self,
        props: Mapping[str, Any] | None = None,
        *,
        clock: Callable[[], datetime.datetime] | None = None,
        uid_factory: Callable[[], str] | None = None,
    ) -> None:
        """
        Initialize the builder.

        Args:
            props: Initial field -> value mapping, same as calling set(props)
            clock: Returns the current time (default: datetime.datetime.now)
            uid_factory: Returns a fresh unique id for each render (default: UUID4)
        """
        self._clock = clock or datetime.datetime.now
        self._uid_factory = uid_factory or (lambda: str(uuid.uuid4()))
        self._properties: dict[EventField, str] = {}
        if props:
            self.set(props)

    @property
    def properties(self) -> dict[str, str]:
        """Stored (sanitized) values in insertion order."""
        return {field.value: value for field, value in self._properties.items()}

    def set(self, key: str | EventField | Mapping[str, Any], value: Any = None) -> None:
        """
        Set one property, or several from a mapping.

        Unknown field names are ignored. Setting a field again overwrites
        its previous value.

        Args:
            key: Field name, or a mapping of field names to values
            value: Value for the field (ignored when key is a mapping)

        Raises:
            DateParseError: If a dtstart/dtend value cannot be parsed; the
                field keeps its previous value
        """
        if isinstance(key, Mapping):
            for k, v in key.items():
                self.set(k, v)
            return

        try:
            field = EventField(key)
        except ValueError:
            logger.debug(f"Ignoring unknown event property {key!r}")
            return

        self._properties[field] = self._sanitize(field, value)
        logger.debug(f"Set event property {field.value}={self._properties[field]!r}")

    def _sanitize(self, field: EventField, value: Any) -> str:
        if field in DATE_FIELDS:
            try:
                dt = parse_timestamp(value, self._clock(), field.value)
            except DateParseError:
                logger.warning(f"Rejected {field.value} value {value!r}")
                raise
            return format_timestamp(dt)
        return escape_text(value)

    def _event_lines(self) -> list[str]:
        lines = []
        for field, value in self._properties.items():
            name = PROPERTY_NAMES.get(field, field.value.upper())
            lines.append(f"{name}:{value}")

        lines.append(f"DTSTAMP:{format_timestamp(self._clock())}")
        lines.append(f"UID:{self._uid_factory()}")
        return lines

    def _alarm_lines(self) -> list[str]:
        return [
            "BEGIN:VALARM",
            "ACTION:DISPLAY",
            f"DESCRIPTION:{self._properties.get(EventField.SUMMARY, '')}",
            f"TRIGGER:{vDuration(ALARM_TRIGGER).to_ical().decode('utf-8')}",
            "END:VALARM",
        ]

    def render(self) -> str:
        """
        Render the invite as .ics file content.

        Each call stamps a new DTSTAMP and UID.

        Returns:
            .ics content with lines joined by "\\n"
        """
        rows = [
            *VCALENDAR_HEADER,
            *VTIMEZONE_BLOCK,
            "BEGIN:VEVENT",
            *self._event_lines(),
            *self._alarm_lines(),
            "END:VEVENT",
            "END:VCALENDAR",
        ]
        logger.debug(f"Rendered invite with {len(rows)} lines")
        return "\n".join(rows)

    to_string = render

    def __str__(self) -> str:
        return self.render()
