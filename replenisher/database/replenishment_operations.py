# replenisher/database/replenishment_operations.py
"""
Replenishment Operations - Database layer for recurring order replenishments.

Rows in the replenishments table are the durable source of truth for a
recurring order. Every update that sets last_payment_date also writes a
replenishment_payments audit row inside the same transaction, and updates
can carry an expected version for optimistic concurrency control.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

import psycopg

from ..constants import SCHEDULABLE_STATUSES
from ..exceptions import ConcurrentModificationError, ReplenishmentNotFoundError
from ..models.replenishment_model import (
    Replenishment,
    ReplenishmentCreate,
    ReplenishmentFilters,
    ReplenishmentPayment,
    ReplenishmentUpdate,
)
from ..utils.time_utils import utc_now
from .core import AsyncDatabase
from .exceptions import ReplenishmentOperationError


class ReplenishmentQueryBuilder:
    """Centralized query builder for replenishment operations.

    Indexes (see schema.sql):
    - CREATE UNIQUE INDEX idx_replenishments_scheduler_id ON replenishments(scheduler_id);
    - CREATE INDEX idx_replenishments_customer_id ON replenishments(customer_id);
    - CREATE INDEX idx_replenishments_status ON replenishments(status);
    - CREATE INDEX idx_replenishment_payments_replenishment ON replenishment_payments(replenishment_id, payment_date DESC);
    """

    UPDATABLE_COLUMNS = (
        "next_job_id",
        "order_id",
        "start_date",
        "last_payment_date",
        "next_payment_date",
        "unit",
        "interval",
        "end_date",
        "times",
        "executions",
        "status",
    )

    @staticmethod
    def get_base_fields():
        """Get standard fields for replenishment queries."""
        return """
            id, scheduler_id, next_job_id, customer_id, order_id, start_date,
            last_payment_date, next_payment_date, unit, "interval", end_date,
            times, executions, status, version, created_at, updated_at
        """

    @staticmethod
    def build_insert_query():
        return """
            INSERT INTO replenishments (
                scheduler_id, customer_id, start_date, next_payment_date,
                unit, "interval", end_date, times, status
            ) VALUES (
                %(scheduler_id)s, %(customer_id)s, %(start_date)s, %(next_payment_date)s,
                %(unit)s, %(interval)s, %(end_date)s, %(times)s, %(status)s
            )
            RETURNING *
        """

    @staticmethod
    def build_filtered_query(where_conditions: List[str]):
        """Build filtered query for replenishments."""
        fields = ReplenishmentQueryBuilder.get_base_fields()
        where_clause = (
            " WHERE " + " AND ".join(where_conditions) if where_conditions else ""
        )
        return f"""
            SELECT {fields}
            FROM replenishments
            {where_clause}
            ORDER BY created_at DESC, id DESC
        """

    @staticmethod
    def build_update_query(columns: List[str], check_version: bool):
        """Build a partial update that bumps the version counter."""
        assignments = [f'"{column}" = %({column})s' for column in columns]
        assignments.append("version = version + 1")
        assignments.append("updated_at = %(updated_at)s")
        version_clause = " AND version = %(expected_version)s" if check_version else ""
        return f"""
            UPDATE replenishments
            SET {", ".join(assignments)}
            WHERE id = %(id)s{version_clause}
            RETURNING *
        """

    @staticmethod
    def build_payment_insert_query():
        return """
            INSERT INTO replenishment_payments (replenishment_id, payment_date)
            VALUES (%(replenishment_id)s, %(payment_date)s)
        """

    @staticmethod
    def build_payments_query():
        return """
            SELECT id, replenishment_id, payment_date
            FROM replenishment_payments
            WHERE replenishment_id = ANY(%(replenishment_ids)s)
            ORDER BY payment_date DESC, id DESC
        """


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class ReplenishmentOperations:
    """
    Async database operations for replenishments and their payment audit rows.
    """

    def __init__(self, db: AsyncDatabase) -> None:
        """Initialize with async database instance."""
        self.db = db

    @staticmethod
    def _row_to_replenishment(row: Dict[str, Any]) -> Replenishment:
        return Replenishment.model_validate(dict(row))

    async def create_replenishment(self, data: ReplenishmentCreate) -> Replenishment:
        """
        Insert a new replenishment row.

        Args:
            data: Row values; executions starts at 0 and version at 1

        Returns:
            The created Replenishment
        """
        try:
            query = ReplenishmentQueryBuilder.build_insert_query()
            params = {key: _db_value(value) for key, value in data.model_dump().items()}

            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    row = await cur.fetchone()
                    if not row:
                        raise ReplenishmentOperationError(
                            "Insert returned no row",
                            operation="create_replenishment",
                        )
                    return self._row_to_replenishment(row)

        except psycopg.Error as e:
            raise ReplenishmentOperationError(
                "Failed to create replenishment",
                operation="create_replenishment",
                details={"scheduler_id": data.scheduler_id},
            ) from e

    async def get_replenishment_by_id(
        self, replenishment_id: int
    ) -> Optional[Replenishment]:
        try:
            fields = ReplenishmentQueryBuilder.get_base_fields()
            query = f"SELECT {fields} FROM replenishments WHERE id = %(id)s"

            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, {"id": replenishment_id})
                    row = await cur.fetchone()
                    return self._row_to_replenishment(row) if row else None

        except psycopg.Error as e:
            raise ReplenishmentOperationError(
                "Failed to retrieve replenishment",
                operation="get_replenishment_by_id",
                details={"replenishment_id": replenishment_id},
            ) from e

    async def get_customer_replenishment(
        self, customer_id: int, replenishment_id: int
    ) -> Optional[Replenishment]:
        """Get a replenishment only if it belongs to the given customer."""
        try:
            query = ReplenishmentQueryBuilder.build_filtered_query(
                ["id = %(id)s", "customer_id = %(customer_id)s"]
            )

            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        query, {"id": replenishment_id, "customer_id": customer_id}
                    )
                    row = await cur.fetchone()
                    return self._row_to_replenishment(row) if row else None

        except psycopg.Error as e:
            raise ReplenishmentOperationError(
                "Failed to retrieve customer replenishment",
                operation="get_customer_replenishment",
                details={
                    "customer_id": customer_id,
                    "replenishment_id": replenishment_id,
                },
            ) from e

    async def get_replenishments(
        self, filters: Optional[ReplenishmentFilters] = None
    ) -> List[Replenishment]:
        """Get replenishments matching the given filters (all when None)."""
        try:
            conditions = []
            params: Dict[str, Any] = {}

            if filters:
                for field, value in filters.model_dump(exclude_none=True).items():
                    conditions.append(f'"{field}" = %({field})s')
                    params[field] = _db_value(value)

            query = ReplenishmentQueryBuilder.build_filtered_query(conditions)

            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    rows = await cur.fetchall()
                    return [self._row_to_replenishment(row) for row in rows]

        except psycopg.Error as e:
            raise ReplenishmentOperationError(
                "Failed to list replenishments",
                operation="get_replenishments",
            ) from e

    async def get_replenishments_by_customer(
        self, customer_id: int
    ) -> List[Replenishment]:
        return await self.get_replenishments(
            ReplenishmentFilters(customer_id=customer_id)
        )

    async def get_schedulable_replenishments(self) -> List[Replenishment]:
        """Rows that should own a live engine schedule (scheduled or active)."""
        try:
            query = ReplenishmentQueryBuilder.build_filtered_query(
                ["status = ANY(%(statuses)s)"]
            )

            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        query,
                        {"statuses": [status.value for status in SCHEDULABLE_STATUSES]},
                    )
                    rows = await cur.fetchall()
                    return [self._row_to_replenishment(row) for row in rows]

        except psycopg.Error as e:
            raise ReplenishmentOperationError(
                "Failed to list schedulable replenishments",
                operation="get_schedulable_replenishments",
            ) from e

    async def update_replenishment(
        self,
        replenishment_id: int,
        update: ReplenishmentUpdate,
        expected_version: Optional[int] = None,
    ) -> Replenishment:
        """
        Apply a partial update to a replenishment.

        When the update sets last_payment_date, a payment audit row is
        inserted in the same transaction.

        Args:
            replenishment_id: Row to update
            update: Fields to write; only explicitly set fields are applied
            expected_version: Reject the write unless the row is still at this version

        Returns:
            The updated Replenishment

        Raises:
            ReplenishmentNotFoundError: If the row does not exist
            ConcurrentModificationError: If the version check fails
        """
        values = {
            key: _db_value(value)
            for key, value in update.model_dump(exclude_unset=True).items()
            if key in ReplenishmentQueryBuilder.UPDATABLE_COLUMNS
        }
        check_version = expected_version is not None
        query = ReplenishmentQueryBuilder.build_update_query(
            list(values.keys()), check_version
        )
        params = {
            **values,
            "id": replenishment_id,
            "updated_at": utc_now(),
            "expected_version": expected_version,
        }

        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    row = await cur.fetchone()

                    if not row:
                        await cur.execute(
                            "SELECT 1 FROM replenishments WHERE id = %(id)s",
                            {"id": replenishment_id},
                        )
                        if await cur.fetchone():
                            raise ConcurrentModificationError(
                                replenishment_id, expected_version or 0
                            )
                        raise ReplenishmentNotFoundError(replenishment_id)

                    if values.get("last_payment_date") is not None:
                        await cur.execute(
                            ReplenishmentQueryBuilder.build_payment_insert_query(),
                            {
                                "replenishment_id": replenishment_id,
                                "payment_date": values["last_payment_date"],
                            },
                        )

                    return self._row_to_replenishment(row)

        except psycopg.Error as e:
            raise ReplenishmentOperationError(
                "Failed to update replenishment",
                operation="update_replenishment",
                details={
                    "replenishment_id": replenishment_id,
                    "fields": list(values.keys()),
                },
            ) from e

    async def delete_replenishment(self, replenishment_id: int) -> bool:
        """Delete a replenishment; payment audit rows cascade."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "DELETE FROM replenishments WHERE id = %(id)s",
                        {"id": replenishment_id},
                    )
                    return cur.rowcount > 0

        except psycopg.Error as e:
            raise ReplenishmentOperationError(
                "Failed to delete replenishment",
                operation="delete_replenishment",
                details={"replenishment_id": replenishment_id},
            ) from e

    async def get_payments_for_replenishments(
        self, replenishment_ids: List[int]
    ) -> Dict[int, List[ReplenishmentPayment]]:
        """Payment audit rows grouped by replenishment id, newest first."""
        grouped: Dict[int, List[ReplenishmentPayment]] = {
            replenishment_id: [] for replenishment_id in replenishment_ids
        }
        if not replenishment_ids:
            return grouped

        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        ReplenishmentQueryBuilder.build_payments_query(),
                        {"replenishment_ids": list(replenishment_ids)},
                    )
                    rows = await cur.fetchall()

            for row in rows:
                payment = ReplenishmentPayment.model_validate(dict(row))
                grouped.setdefault(payment.replenishment_id, []).append(payment)
            return grouped

        except psycopg.Error as e:
            raise ReplenishmentOperationError(
                "Failed to retrieve replenishment payments",
                operation="get_payments_for_replenishments",
            ) from e

    async def get_payments(self, replenishment_id: int) -> List[ReplenishmentPayment]:
        grouped = await self.get_payments_for_replenishments([replenishment_id])
        return grouped[replenishment_id]
