# replenisher/middleware/request_logger.py
"""
Request logging middleware: one line per request with status and timing.
"""

import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..enums import LogEmoji, LoggerName, LogSource
from ..services.logger import get_service_logger

logger = get_service_logger(LoggerName.REQUEST_LOGGER, LogSource.MIDDLEWARE)

SLOW_REQUEST_SECONDS = 5.0


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status code and duration of every request."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.exclude_paths = {
            "/api/health",
            "/docs",
            "/redoc",
            "/openapi.json",
            "/favicon.ico",
        }

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        start_time = time.perf_counter()
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        logger.debug(
            f"{request.method} {request.url.path}",
            emoji=LogEmoji.INCOMING,
            extra_context={"correlation_id": correlation_id},
        )

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.warning(
                f"{request.method} {request.url.path} -> FAILED ({duration_ms}ms)",
                extra_context={"correlation_id": correlation_id},
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        message = (
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({duration_ms}ms)"
        )
        context = {"correlation_id": correlation_id, "duration_ms": duration_ms}

        if response.status_code >= 500:
            logger.error(message, error_context=context)
        elif response.status_code >= 400 or duration_ms > SLOW_REQUEST_SECONDS * 1000:
            logger.warning(message, extra_context=context)
        else:
            logger.info(message, emoji=LogEmoji.OUTGOING, extra_context=context)
        return response
