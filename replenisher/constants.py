# replenisher/constants.py
"""
Application constants.

Fixed values shared across the scheduler, worker and storage layers.
Anything an operator may want to tune lives in config.Settings instead.
"""

from typing import Dict

from .enums import RecurrenceUnit, ReplenishmentStatus

# =============================================================================
# RECURRENCE
# =============================================================================

MILLISECONDS_PER_SECOND = 1_000
MILLISECONDS_PER_DAY = 86_400_000

# Month and year are fixed-length (30 and 365 days), never calendar-aware.
UNIT_MILLISECONDS: Dict[RecurrenceUnit, int] = {
    RecurrenceUnit.DAY: MILLISECONDS_PER_DAY,
    RecurrenceUnit.WEEK: 7 * MILLISECONDS_PER_DAY,
    RecurrenceUnit.MONTH: 30 * MILLISECONDS_PER_DAY,
    RecurrenceUnit.YEAR: 365 * MILLISECONDS_PER_DAY,
    RecurrenceUnit.CUSTOM: MILLISECONDS_PER_SECOND,
}

MIN_INTERVAL = 1
MAX_INTERVAL = 31
MIN_TIMES = 1
MAX_TIMES = 48

# =============================================================================
# SCHEDULING
# =============================================================================

SCHEDULER_ID_PREFIX = "scheduler"
REPEAT_JOB_ID_PREFIX = "repeat"
SNAPSHOT_KEY_PREFIX = "orderData:"
DEFAULT_SHIPPING_METHOD = "next-day"

# Statuses that own a live engine schedule
SCHEDULABLE_STATUSES = (ReplenishmentStatus.SCHEDULED, ReplenishmentStatus.ACTIVE)

# Statuses that can never be updated or resumed
TERMINAL_STATUSES = (ReplenishmentStatus.FINISHED, ReplenishmentStatus.FAILED)

# =============================================================================
# HTTP
# =============================================================================

MANAGE_REPLENISHMENTS_PATH = "/subscriptions/replenishments"

USER_ID_HEADER = "X-User-Id"
ADMIN_KEY_HEADER = "X-Admin-Key"
CORRELATION_ID_HEADER = "X-Correlation-ID"

DEFAULT_UPDATE_RATE_LIMIT = 10
DEFAULT_TOGGLE_RATE_LIMIT = 5
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 60
