"""
Database Utility Functions.

Timestamps are stored as naive UTC datetimes so that SQLite and
PostgreSQL compare them identically.
"""

from __future__ import annotations

from datetime import datetime, timezone

from src.core.errors import ParseError


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 / RFC 3339 timestamp into naive UTC.

    Accepts a trailing ``Z`` for UTC.

    Raises:
        ParseError: If the string is not a timestamp
    """
    text = (value or "").strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ParseError(f"invalid timestamp format '{value}': {e}") from e
    return to_naive_utc(parsed)


def format_timestamp(value: datetime) -> str:
    """Render a naive UTC datetime as RFC 3339 with microseconds."""
    return to_naive_utc(value).isoformat(timespec="microseconds") + "Z"
