# replenisher/database/customer_operations.py
"""
Customer Operations - read-only lookup of the platform's customers table.
"""

from typing import Optional

import psycopg

from ..models.customer_model import Customer
from .core import AsyncDatabase
from .exceptions import CustomerOperationError


class CustomerOperations:
    """Async customer lookups."""

    def __init__(self, db: AsyncDatabase) -> None:
        self.db = db

    async def find_customer_by_user_id(self, user_id: int) -> Optional[Customer]:
        """Return the customer record of an authenticated user, if any."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT id, user_id FROM customers WHERE user_id = %(user_id)s",
                        {"user_id": user_id},
                    )
                    row = await cur.fetchone()
                    return Customer.model_validate(dict(row)) if row else None

        except psycopg.Error as e:
            raise CustomerOperationError(
                "Failed to look up customer",
                operation="find_customer_by_user_id",
                details={"user_id": user_id},
            ) from e

    async def get_customer_by_id(self, customer_id: int) -> Optional[Customer]:
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT id, user_id FROM customers WHERE id = %(id)s",
                        {"id": customer_id},
                    )
                    row = await cur.fetchone()
                    return Customer.model_validate(dict(row)) if row else None

        except psycopg.Error as e:
            raise CustomerOperationError(
                "Failed to look up customer",
                operation="get_customer_by_id",
                details={"customer_id": customer_id},
            ) from e
