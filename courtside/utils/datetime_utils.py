"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime, date, time
from typing import Optional, Union
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes read back from the database.

    SQLite drops timezone information on round-trip, PostgreSQL keeps it.
    Comparing the two kinds raises TypeError, so every expiry check goes
    through this helper.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """ISO 8601 string in UTC for API payloads, or None."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def parse_match_date(date_input: Union[str, date, datetime]) -> date:
    """
    Normalize a match date to a ``date``.

    Args:
        date_input: ISO string ("2026-01-21" or "2026-01-21T10:00:00Z"),
                    date or datetime

    Returns:
        The calendar date (time component discarded)

    Raises:
        ValueError: If the string is not an ISO date
    """
    if isinstance(date_input, datetime):
        return date_input.date()
    if isinstance(date_input, date):
        return date_input
    if not isinstance(date_input, str):
        raise ValueError(f"Expected string or date, got {type(date_input)}")

    date_str = date_input.strip().split("T")[0]
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid date '{date_input}', expected YYYY-MM-DD")


def minutes_since_midnight(value: time) -> int:
    """Convert a time of day to minutes since midnight."""
    return value.hour * 60 + value.minute


def windows_overlap(
    start1: time, end1: time, start2: time, end2: time, buffer_hours: float = 0
) -> bool:
    """
    Check whether two time windows on the same day overlap.

    The first window is widened by ``buffer_hours`` on both sides.
    Touching windows count as overlapping.
    """
    buffer_minutes = int(buffer_hours * 60)
    s1 = minutes_since_midnight(start1) - buffer_minutes
    e1 = minutes_since_midnight(end1) + buffer_minutes
    s2 = minutes_since_midnight(start2)
    e2 = minutes_since_midnight(end2)
    return s1 <= e2 and e1 >= s2
