"""Round-trip ISO-8601 timestamp handling.

Every timestamp crossing a boundary must carry an explicit offset. Nothing
here falls back to the server's local zone.
"""

from __future__ import annotations

import datetime as dt
import re
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from calsched.errors import TimeParseError, ValidationError

Zone = Union[ZoneInfo, dt.tzinfo]

_ROUND_TRIP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"T\d{2}:\d{2}:\d{2}(?:\.\d{1,6})?"
    r"(?:Z|[+-]\d{2}:\d{2}(?::\d{2})?)$"
)

RRULE_UNTIL_FORMAT = "%Y%m%dT%H%M%SZ"


def parse_timestamp(value: str, field: str = "timestamp") -> dt.datetime:
    """Parse a round-trip timestamp such as ``2024-03-09T09:00:00-08:00``.

    Raises:
        TimeParseError: If the value is not a string in the round-trip
            format or has no offset.
    """
    if not isinstance(value, str):
        raise TimeParseError(f"{field} must be a string, got {type(value).__name__}")
    text = value.strip()
    if not _ROUND_TRIP_RE.match(text):
        raise TimeParseError(
            f"{field} must be an ISO-8601 timestamp with an explicit offset: {value!r}"
        )
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError as exc:
        raise TimeParseError(f"{field} is not a valid timestamp: {value!r}") from exc
    if parsed.utcoffset() is None:
        raise TimeParseError(f"{field} has no offset: {value!r}")
    return parsed


def require_aware(value: dt.datetime, field: str = "timestamp") -> dt.datetime:
    """Reject naive datetimes."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise TimeParseError(f"{field} must carry an explicit offset")
    return value


def format_timestamp(value: dt.datetime) -> str:
    """Format an aware datetime without losing its offset."""
    require_aware(value)
    return value.isoformat()


def format_rrule_until(value: dt.datetime) -> str:
    """Format an UNTIL value as a UTC basic-format timestamp."""
    require_aware(value, "until")
    return value.astimezone(dt.UTC).strftime(RRULE_UNTIL_FORMAT)


def resolve_zone(name: str) -> ZoneInfo:
    """Look up an IANA zone by name."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: {name!r}") from exc


def to_zone(value: dt.datetime, zone: Optional[Zone], field: str = "timestamp") -> dt.datetime:
    """Attach ``zone`` to an instant whose offset already agrees with it.

    The offset written by the caller must be the zone's offset at that
    instant, otherwise the local time-of-day they meant would silently
    change.
    """
    require_aware(value, field)
    if zone is None:
        return value
    converted = value.astimezone(zone)
    if converted.utcoffset() != value.utcoffset():
        raise ValidationError(
            f"{field} offset {value.strftime('%z')} does not match "
            f"{zone} offset {converted.strftime('%z')} at that instant"
        )
    return converted


def localize(naive: dt.datetime, zone: Zone) -> dt.datetime:
    """Attach ``zone`` to a wall-clock time, normalizing DST gaps.

    Wall times inside a spring-forward gap move forward by the gap length;
    ambiguous fall-back times resolve to the earlier instant.
    """
    aware = naive.replace(tzinfo=zone, fold=0)
    return aware.astimezone(dt.UTC).astimezone(zone)
