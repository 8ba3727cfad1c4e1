"""
Database Operation Exceptions

Database operations raise these (never log); the service layer catches
them, logs and decides what to do.

Usage:
    try:
        await cur.execute(query, params)
    except psycopg.Error as e:
        raise ReplenishmentOperationError(
            "Failed to retrieve replenishment",
            operation="get_replenishment_by_id",
        ) from e
"""

from typing import Any, Dict, Optional

from ..exceptions import ReplenisherError


class DatabaseOperationError(ReplenisherError):
    """Base exception for all database operation failures."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}

    def __str__(self):
        if self.operation:
            return f"{self.operation}: {super().__str__()}"
        return super().__str__()


class ReplenishmentOperationError(DatabaseOperationError):
    """Replenishment-specific database operation errors."""

    pass


class CustomerOperationError(DatabaseOperationError):
    """Customer lookup database operation errors."""

    pass
