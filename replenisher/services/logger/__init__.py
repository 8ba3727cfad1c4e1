"""
Centralized Logger Service Module.

Usage:
    from replenisher.services.logger import get_service_logger
    from replenisher.enums import LoggerName, LogSource

    logger = get_service_logger(LoggerName.REPLENISHMENT_SCHEDULER, LogSource.SCHEDULER)
    logger.info("Replenishment created", extra_context={"replenishment_id": 7})
"""

# Re-export commonly used enums for convenience
from ...enums import LogEmoji, LoggerName, LogLevel, LogSource
from .logger_service import (
    get_service_logger,
    initialize_global_logger,
    is_logger_initialized,
)

__all__ = [
    "get_service_logger",
    "initialize_global_logger",
    "is_logger_initialized",
    # Enums
    "LogLevel",
    "LogSource",
    "LoggerName",
    "LogEmoji",
]
