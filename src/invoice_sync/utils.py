"""
Utility functions shared across the sync layer.

Provides helpers for:
- Date parsing and day arithmetic on ISO dates
- Identifier generation and validation
- Timestamps in the store's format
"""

import re
import uuid
from datetime import date, datetime, timedelta, timezone

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def parse_date(date_str: str | None) -> date | None:
    """
    Parse a document date.

    Args:
        date_str: ISO date or timestamp ("2024-12-25", "2024-12-25T10:00:00Z")
                  or m/d/y ("12/25/2024").

    Returns:
        The calendar date, or None if the string cannot be parsed.
    """
    if date_str:
        date_str = date_str.strip()
    if not date_str:
        return None

    try:
        return date.fromisoformat(date_str[:10])
    except ValueError:
        pass

    try:
        return datetime.strptime(date_str, "%m/%d/%Y").date()
    except ValueError:
        pass

    return None


def days_between(start: str | None, end: str | None) -> int | None:
    """Return the whole days from start to end, or None if either is not a date."""
    start_date, end_date = parse_date(start), parse_date(end)
    if start_date is None or end_date is None:
        return None
    return (end_date - start_date).days


def add_days(start: str | None, days: int) -> str | None:
    """Return the ISO date ``days`` after start, or None if start is not a date."""
    start_date = parse_date(start)
    if start_date is None:
        return None
    return (start_date + timedelta(days=days)).isoformat()


def new_local_id() -> str:
    """Return an identifier for a record created while offline."""
    return str(uuid.uuid4())


def is_valid_uuid(value: str | None) -> bool:
    """Check that value is a canonical RFC 4122 UUID string."""
    return bool(value) and bool(_UUID_RE.match(value))


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO 8601 timestamp."""
    return datetime.now(timezone.utc).isoformat()
