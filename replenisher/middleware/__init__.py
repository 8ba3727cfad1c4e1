"""
Middleware package for the Replenisher API.

Provides correlation ids with centralized error handling, request logging,
and per-caller rate limiting of mutating endpoints.
"""

from .error_handler import ErrorHandlerMiddleware
from .rate_limiter import (
    SlidingWindowRateLimiter,
    rate_limit,
    rate_limiter,
    toggle_rate_limit,
    update_rate_limit,
)
from .request_logger import RequestLoggerMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "RequestLoggerMiddleware",
    "SlidingWindowRateLimiter",
    "rate_limit",
    "rate_limiter",
    "toggle_rate_limit",
    "update_rate_limit",
]
