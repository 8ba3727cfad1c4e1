# replenisher/services/logger/logger_service.py
"""
Logger Service - loguru-backed structured logging.

Every service obtains a pre-bound logger through get_service_logger(), so
each record carries the logger name, the source and the emoji used for
console display. Sinks are configured once by initialize_global_logger().
"""

import sys
from typing import Any, Dict, Optional

from loguru import logger

from ...enums import LogEmoji, LoggerName, LogLevel, LogSource

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[logger_name]}</cyan> | "
    "{extra[emoji]} <level>{message}</level>"
)

_DEFAULT_EXTRA = {
    "logger_name": LoggerName.SYSTEM.value,
    "source": LogSource.SYSTEM.value,
    "emoji": LogEmoji.INFO.value,
}

_initialized = False

logger.configure(extra=_DEFAULT_EXTRA)


def initialize_global_logger(
    level: LogLevel = LogLevel.INFO,
    log_file: Optional[str] = None,
    rotation: str = "10 MB",
    retention: str = "14 days",
    serialize_file: bool = True,
) -> None:
    """
    Configure loguru sinks for the whole process.

    Replaces loguru's default sink with a colored console sink and, when a
    log file is given, adds a rotating, compressed JSON file sink.

    Args:
        level: Minimum level for all sinks
        log_file: Optional path of the rotating log file
        rotation: loguru rotation condition (size or age)
        retention: loguru retention condition
        serialize_file: Write JSON records to the file sink
    """
    global _initialized

    logger.remove()
    logger.configure(extra=_DEFAULT_EXTRA)
    logger.add(
        sys.stderr,
        level=level.value,
        format=CONSOLE_FORMAT,
        colorize=True,
        backtrace=False,
        diagnose=False,
    )

    if log_file:
        logger.add(
            log_file,
            level=level.value,
            rotation=rotation,
            retention=retention,
            compression="gz",
            serialize=serialize_file,
            enqueue=True,
        )

    _initialized = True
    logger.bind(emoji=LogEmoji.STARTUP.value).info(
        f"Logging initialized at level {level.value}"
    )


def is_logger_initialized() -> bool:
    return _initialized


def get_service_logger(
    logger_name: LoggerName,
    source: LogSource = LogSource.SYSTEM,
    default_emoji: Optional[LogEmoji] = None,
):
    """
    Factory function to create a pre-configured logger for a specific service.

    Emoji priority system (highest to lowest):
    1. Direct: Emoji passed directly to log method call
    2. Instance-set: Default emoji set when creating the service logger
    3. Fallback: Default emoji based on log level

    Example:
        logger = get_service_logger(LoggerName.REPLENISHMENT_WORKER, LogSource.WORKER)
        logger.info("Occurrence processed", extra_context={"replenishment_id": 7})
        logger.error("Payment failed", exception=e, emoji=LogEmoji.PAYMENT)
    """

    bound = logger.bind(logger_name=logger_name.value, source=source.value)

    def _resolve_emoji(
        method_emoji: Optional[LogEmoji], fallback_emoji: LogEmoji
    ) -> str:
        if method_emoji is not None:
            return method_emoji.value
        if default_emoji is not None:
            return default_emoji.value
        return fallback_emoji.value

    def _target(emoji: str, context: Optional[Dict[str, Any]]):
        return bound.bind(emoji=emoji, context=context or {})

    class ServiceLogger:
        name = logger_name

        @staticmethod
        def error(
            message: str,
            exception: Optional[BaseException] = None,
            error_context: Optional[Dict[str, Any]] = None,
            emoji: Optional[LogEmoji] = None,
            **kwargs,
        ):
            """Log an error, attaching the traceback when an exception is given."""
            target = _target(_resolve_emoji(emoji, LogEmoji.ERROR), error_context)
            if exception is not None:
                target.opt(exception=exception).error(message)
            else:
                target.error(message)

        @staticmethod
        def warning(
            message: str,
            extra_context: Optional[Dict[str, Any]] = None,
            emoji: Optional[LogEmoji] = None,
            **kwargs,
        ):
            _target(_resolve_emoji(emoji, LogEmoji.WARNING), extra_context).warning(
                message
            )

        @staticmethod
        def info(
            message: str,
            extra_context: Optional[Dict[str, Any]] = None,
            emoji: Optional[LogEmoji] = None,
            **kwargs,
        ):
            _target(_resolve_emoji(emoji, LogEmoji.INFO), extra_context).info(message)

        @staticmethod
        def debug(
            message: str,
            extra_context: Optional[Dict[str, Any]] = None,
            emoji: Optional[LogEmoji] = None,
            **kwargs,
        ):
            _target(_resolve_emoji(emoji, LogEmoji.DEBUG), extra_context).debug(
                message
            )

    return ServiceLogger()
