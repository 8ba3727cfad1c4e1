"""
Database layer: connection pool core plus per-entity operations classes.
"""

from .core import AsyncDatabase, AsyncDatabaseCore, async_db
from .customer_operations import CustomerOperations
from .exceptions import (
    CustomerOperationError,
    DatabaseOperationError,
    ReplenishmentOperationError,
)
from .replenishment_operations import ReplenishmentOperations

__all__ = [
    "AsyncDatabase",
    "AsyncDatabaseCore",
    "async_db",
    "CustomerOperations",
    "ReplenishmentOperations",
    "DatabaseOperationError",
    "ReplenishmentOperationError",
    "CustomerOperationError",
]
