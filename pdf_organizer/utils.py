"""Utility helpers shared across modules."""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import format_datetime, parsedate_to_datetime


def parse_iso_datetime(value: str) -> datetime:
    """Convert ISO strings (Graph uses a trailing Z) into aware UTC datetimes."""
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def ensure_utc(dt: datetime) -> datetime:
    """Force a datetime into UTC without altering instant."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def parse_rfc2822_date(value: str) -> datetime | None:
    """Parse a Date header, keeping its own offset. None when unparseable."""
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None


def rfc2822_from_iso(value: str) -> str:
    """Render a Graph timestamp the way a Date header would carry it."""
    return format_datetime(parse_iso_datetime(value))
