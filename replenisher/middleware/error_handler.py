# replenisher/middleware/error_handler.py
"""
Error handling middleware for the Replenisher API.

Assigns every request a correlation id and converts exceptions that escape
the routers into JSON error responses without leaking internals outside
development.
"""

import traceback
import uuid

import psycopg
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..config import settings
from ..constants import CORRELATION_ID_HEADER
from ..enums import LogEmoji, LoggerName, LogSource
from ..services.logger import get_service_logger
from ..utils.time_utils import utc_now

logger = get_service_logger(LoggerName.ERROR_HANDLER, LogSource.MIDDLEWARE)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Outermost middleware: correlation ids and last-resort error responses."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.debug_mode = settings.environment == "development"

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or str(
            uuid.uuid4()
        )
        request.state.correlation_id = correlation_id

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"Unhandled exception in {request.method} {request.url.path}",
                exception=exc,
                emoji=LogEmoji.ERROR,
                error_context={
                    "correlation_id": correlation_id,
                    "exception_type": type(exc).__name__,
                    "client_ip": getattr(request.client, "host", "unknown"),
                },
            )
            response = self._create_error_response(exc, correlation_id)

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response

    def _create_error_response(
        self, exc: Exception, correlation_id: str
    ) -> JSONResponse:
        if isinstance(exc, psycopg.OperationalError):
            status_code, error_type = 503, "database_unavailable"
            message = "Database connection or operation failed"
        elif isinstance(exc, psycopg.Error):
            status_code, error_type = 500, "database_error"
            message = "Database error occurred"
        else:
            status_code, error_type = 500, "internal_error"
            message = "An internal server error occurred"

        error = {
            "type": error_type,
            "message": message,
            "correlation_id": correlation_id,
            "timestamp": utc_now().isoformat(),
        }
        # Exception details in development only
        if self.debug_mode:
            error["exception_type"] = type(exc).__name__
            error["exception_message"] = str(exc)
            error["traceback"] = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )

        return JSONResponse(status_code=status_code, content={"error": error})
