# replenisher/enums.py
"""
Application Enums - Centralized enum definitions.

This module contains all enum definitions so that constants, models and
services can share them without creating circular imports.
"""

from enum import Enum


# =============================================================================
# REPLENISHMENT DOMAIN
# =============================================================================


class RecurrenceUnit(str, Enum):
    """Calendar-free recurrence units. Month and year are fixed-length."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    CUSTOM = "custom"


class ReplenishmentStatus(str, Enum):
    """Lifecycle status of a replenishment. Must be: scheduled, active, finished, canceled, failed."""

    SCHEDULED = "scheduled"
    ACTIVE = "active"
    FINISHED = "finished"
    CANCELED = "canceled"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """Payment methods accepted for recurring orders."""

    CARD = "card"


class Currency(str, Enum):
    """Currencies accepted by the checkout service."""

    EUR = "eur"
    USD = "usd"


class NoticeKind(str, Enum):
    """Customer notices sent by the replenishment worker."""

    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"


class ReplenishmentEndReason(str, Enum):
    """Why a replenishment stopped after a successful payment."""

    EXPIRED = "expired"
    BUDGET_REACHED = "budget_reached"


class BackoffStrategy(str, Enum):
    """Delay growth between delivery attempts of a failed occurrence."""

    EXPONENTIAL = "exponential"
    FIXED = "fixed"


# =============================================================================
# WORKER SYSTEMS
# =============================================================================


class WorkerType(str, Enum):
    """Worker types for status reporting."""

    REPLENISHMENT_WORKER = "replenishment_worker"
    SCHEDULER_ENGINE = "scheduler_engine"


# =============================================================================
# LOGGING SYSTEM
# =============================================================================


class LogLevel(str, Enum):
    """Log level constants for centralized logging system."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogSource(str, Enum):
    """Log source constants for identifying log origins."""

    API = "api"
    WORKER = "worker"
    SYSTEM = "system"
    DATABASE = "database"
    SCHEDULER = "scheduler"
    MIDDLEWARE = "middleware"


class LogEmoji(str, Enum):
    """Type-safe emoji constants for log messages."""

    # Request/Response emojis
    INCOMING = "📥"
    OUTGOING = "📤"

    # Status emojis
    SUCCESS = "✅"
    FAILED = "❌"
    ERROR = "❌"
    WARNING = "⚠️"
    INFO = "ℹ️"
    DEBUG = "🐞"
    CANCELED = "🚫"

    # Work emojis
    PROCESSING = "🔄"
    PAUSED = "⏸️"
    RESUMED = "▶️"

    # System emojis
    SYSTEM = "⚙️"
    STARTUP = "🚀"
    SHUTDOWN = "🛑"
    CLEANUP = "🧹"

    # Database emojis
    DATABASE = "🗄️"
    STORAGE = "💾"

    # Worker emojis
    WORKER = "👷"
    SCHEDULER = "⏰"

    # Action emojis
    CREATE = "➕"
    UPDATE = "✏️"
    DELETE = "🗑️"
    RESTORE = "🔄"

    # Domain emojis
    PAYMENT = "💳"
    ORDER = "📦"
    PARTY = "🎉"


class LoggerName(str, Enum):
    """Logger name constants for categorizing log entries."""

    # API/Request loggers
    REQUEST_LOGGER = "request_logger"
    ERROR_HANDLER = "error_handler"
    MIDDLEWARE = "middleware"

    # Worker loggers
    REPLENISHMENT_WORKER = "replenishment_worker"
    SCHEDULER_ENGINE = "scheduler_engine"

    # Service loggers
    REPLENISHMENT_SCHEDULER = "replenishment_scheduler"
    REPLENISHMENT_SERVICE = "replenishment_service"
    SNAPSHOT_STORE = "snapshot_store"
    CHECKOUT_CLIENT = "checkout_client"
    NOTIFIER = "notifier"

    # System loggers
    SYSTEM = "system"
    DATABASE = "database"
