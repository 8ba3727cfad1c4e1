# replenisher/utils/router_helpers.py
"""
Router Helper Functions

Shared decorator for FastAPI routers that turns domain exceptions into
HTTP responses.
"""

from functools import wraps
from typing import Callable

from fastapi import HTTPException, status

from ..enums import LoggerName, LogSource
from ..exceptions import (
    ConcurrentModificationError,
    InvalidStateTransitionError,
    ReplenishmentNotFoundError,
    ScheduleExhaustedError,
    UserNotFoundError,
)
from ..services.logger import get_service_logger

logger = get_service_logger(LoggerName.SYSTEM, LogSource.API)


def handle_exceptions(operation_name: str):
    """
    Decorator for standardized exception handling in router endpoints.

    Args:
        operation_name: Human-readable description of the operation for error messages

    Usage:
        @handle_exceptions("create replenishment")
        async def create_replenishment():
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except (UserNotFoundError, ReplenishmentNotFoundError) as e:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
            except (InvalidStateTransitionError, ScheduleExhaustedError, ValueError) as e:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
                )
            except ConcurrentModificationError as e:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
            except Exception as e:
                logger.error(f"Error {operation_name}: {e}", exception=e)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=f"Failed to {operation_name}",
                )

        return wrapper

    return decorator
