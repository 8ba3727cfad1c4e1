# replenisher/middleware/rate_limiter.py
"""
Rate limiting for mutating replenishment endpoints.

A sliding window per caller and action: each user gets its own budget of
update and toggle-cancel calls, so one client flooding toggle-cancel cannot
churn engine schedules for everyone else.
"""

import asyncio
import time
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, Optional, Tuple

from fastapi import HTTPException, Request, Response, status

from ..config import settings
from ..constants import USER_ID_HEADER
from ..enums import LogEmoji, LoggerName, LogSource
from ..services.logger import get_service_logger

logger = get_service_logger(LoggerName.MIDDLEWARE, LogSource.MIDDLEWARE)


class SlidingWindowRateLimiter:
    """Tracks request timestamps per key and rejects calls over the limit."""

    def __init__(self) -> None:
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def is_allowed(
        self, key: str, max_requests: int, window_seconds: int
    ) -> Tuple[bool, Dict[str, Any]]:
        """
        Record a call for key when it fits inside the window.

        Returns:
            Tuple of (is_allowed, rate_limit_info)
        """
        now = time.monotonic()
        window_start = now - window_seconds

        async with self._lock:
            timestamps = self._requests[key]
            while timestamps and timestamps[0] <= window_start:
                timestamps.popleft()

            current = len(timestamps)
            allowed = current < max_requests
            if allowed:
                timestamps.append(now)

            retry_after = (
                0 if allowed else max(1, int(timestamps[0] + window_seconds - now))
            )
            info = {
                "limit": max_requests,
                "remaining": max(0, max_requests - current - (1 if allowed else 0)),
                "window_seconds": window_seconds,
                "retry_after": retry_after,
            }

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for {key}: {current}/{max_requests} "
                f"in {window_seconds}s",
                emoji=LogEmoji.WARNING,
            )
        return allowed, info

    async def cleanup_old_entries(self, max_age_seconds: int = 3600) -> int:
        """Drop keys with no calls in the last max_age_seconds."""
        cutoff = time.monotonic() - max_age_seconds
        async with self._lock:
            stale = [
                key
                for key, timestamps in self._requests.items()
                if not timestamps or timestamps[-1] < cutoff
            ]
            for key in stale:
                del self._requests[key]

        if stale:
            logger.debug(
                f"Rate limiter cleaned up {len(stale)} idle keys", emoji=LogEmoji.CLEANUP
            )
        return len(stale)

    def reset(self) -> None:
        self._requests.clear()


# Global rate limiter instance
rate_limiter = SlidingWindowRateLimiter()


def _client_key(request: Request) -> str:
    user_id = request.headers.get(USER_ID_HEADER)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def rate_limit(
    action: str,
    max_requests: Callable[[], int],
    window_seconds: Optional[Callable[[], int]] = None,
    limiter: Optional[SlidingWindowRateLimiter] = None,
):
    """
    Build a FastAPI dependency enforcing a per-caller limit on one action.

    Limits are read from callables so settings changes (and test overrides)
    apply without rebuilding the router.
    """
    window = window_seconds or (lambda: settings.rate_limit_window_seconds)

    async def dependency(request: Request, response: Response) -> None:
        active_limiter = limiter or rate_limiter
        allowed, info = await active_limiter.is_allowed(
            f"{_client_key(request)}:{action}", max_requests(), window()
        )
        response.headers["X-RateLimit-Limit"] = str(info["limit"])
        response.headers["X-RateLimit-Remaining"] = str(info["remaining"])

        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=(
                    f"Too many requests. Maximum {info['limit']} {action} calls "
                    f"per {info['window_seconds']} seconds."
                ),
                headers={"Retry-After": str(info["retry_after"])},
            )

    return dependency


update_rate_limit = rate_limit("update", lambda: settings.update_rate_limit)
toggle_rate_limit = rate_limit("toggle-cancel", lambda: settings.toggle_rate_limit)
