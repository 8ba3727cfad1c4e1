# replenisher/utils/recurrence.py
"""
Recurrence clock.

Pure helpers that turn (interval, unit) into a period and compute when the
next payment of a replenishment is due. Month and year are fixed-length
(30 and 365 days); nothing here is calendar-aware.
"""

from datetime import datetime
from typing import Optional, Union

from ..constants import UNIT_MILLISECONDS
from ..enums import RecurrenceUnit
from .time_utils import ensure_utc, milliseconds_to_timedelta, utc_now


def to_milliseconds(interval: int, unit: Union[RecurrenceUnit, str]) -> int:
    """
    Convert a recurrence (interval, unit) pair to a period in milliseconds.

    Args:
        interval: Positive number of units between occurrences
        unit: Recurrence unit (day, week, month, year, custom)

    Returns:
        Period length in milliseconds

    Raises:
        ValueError: If interval is not a positive integer or unit is unknown
    """
    if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
        raise ValueError(f"Interval must be a positive integer, got {interval!r}")

    try:
        unit = RecurrenceUnit(unit)
    except ValueError as e:
        raise ValueError(f"Unknown recurrence unit: {unit!r}") from e

    return interval * UNIT_MILLISECONDS[unit]


def next_due_instant(
    last_payment_date: Optional[datetime],
    period_ms: int,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Compute the next payment instant from the last successful payment.

    When last + period is already in the past, the next occurrence is
    snapped to one period from now: at most one catch-up occurrence,
    missed periods are skipped rather than charged in a burst.

    Returns:
        None when there has been no payment yet, otherwise the next due instant
    """
    if last_payment_date is None:
        return None

    now = ensure_utc(now) if now is not None else utc_now()
    period = milliseconds_to_timedelta(period_ms)
    candidate = ensure_utc(last_payment_date) + period

    if candidate <= now:
        return now + period
    return candidate


def is_future(instant: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when the instant lies strictly after now."""
    if instant is None:
        return False
    now = ensure_utc(now) if now is not None else utc_now()
    return ensure_utc(instant) > now
