# replenisher/utils/time_utils.py
"""
Centralized time utilities.

Every instant the service stores or compares is timezone-aware UTC.
Naive datetimes arriving from clients or drivers are interpreted as UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

# Constant for UTC timezone to avoid hardcoded timezone.utc references
UTC_TIMEZONE = timezone.utc


def utc_now() -> datetime:
    """
    Get the current timezone-aware UTC timestamp.

    Returns:
        Current UTC datetime object
    """
    return datetime.now(UTC_TIMEZONE)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC_TIMEZONE)
    return dt.astimezone(UTC_TIMEZONE)


def milliseconds_to_timedelta(milliseconds: int) -> timedelta:
    return timedelta(milliseconds=milliseconds)


def to_epoch_milliseconds(dt: datetime) -> int:
    """Epoch milliseconds of an instant, used to build occurrence job ids."""
    return int(ensure_utc(dt).timestamp() * 1000)
