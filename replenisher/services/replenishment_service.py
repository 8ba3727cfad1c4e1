# replenisher/services/replenishment_service.py
"""
Replenishment Service - read-only queries for customers and admins.

Results are projected to ReplenishmentResponse, which never exposes the
internal scheduling keys (scheduler_id, next_job_id) or the customer id.
"""

from typing import List, Optional

from ..database.customer_operations import CustomerOperations
from ..database.replenishment_operations import ReplenishmentOperations
from ..enums import LoggerName, LogSource
from ..exceptions import ReplenishmentNotFoundError, UserNotFoundError
from ..models.customer_model import Customer
from ..models.replenishment_model import (
    Replenishment,
    ReplenishmentFilters,
    ReplenishmentListResponse,
    ReplenishmentResponse,
)
from .logger import get_service_logger

logger = get_service_logger(LoggerName.REPLENISHMENT_SERVICE, LogSource.API)


class ReplenishmentService:
    """Query facade over replenishments and their payment history."""

    def __init__(
        self,
        replenishment_ops: ReplenishmentOperations,
        customer_ops: CustomerOperations,
    ) -> None:
        self.replenishment_ops = replenishment_ops
        self.customer_ops = customer_ops

    async def _get_customer(self, user_id: int) -> Customer:
        customer = await self.customer_ops.find_customer_by_user_id(user_id)
        if customer is None:
            raise UserNotFoundError(user_id)
        return customer

    async def _project(
        self, replenishments: List[Replenishment]
    ) -> List[ReplenishmentResponse]:
        payments = await self.replenishment_ops.get_payments_for_replenishments(
            [replenishment.id for replenishment in replenishments]
        )
        return [
            ReplenishmentResponse.from_replenishment(
                replenishment, payments.get(replenishment.id, [])
            )
            for replenishment in replenishments
        ]

    async def to_response(self, replenishment: Replenishment) -> ReplenishmentResponse:
        """Project a single row, e.g. one just returned by the scheduler."""
        projected = await self._project([replenishment])
        return projected[0]

    async def get_customer_replenishments(
        self, user_id: int
    ) -> ReplenishmentListResponse:
        """All replenishments of the calling user with their payments."""
        customer = await self._get_customer(user_id)
        replenishments = await self.replenishment_ops.get_replenishments_by_customer(
            customer.id
        )
        projected = await self._project(replenishments)
        return ReplenishmentListResponse(total=len(projected), replenishments=projected)

    async def get_replenishment_by_id(
        self, user_id: int, replenishment_id: int
    ) -> ReplenishmentResponse:
        """
        One replenishment of the calling user.

        Raises:
            UserNotFoundError: The user has no customer record
            ReplenishmentNotFoundError: Missing, or owned by another customer
        """
        customer = await self._get_customer(user_id)
        replenishment = await self.replenishment_ops.get_customer_replenishment(
            customer.id, replenishment_id
        )
        if replenishment is None:
            raise ReplenishmentNotFoundError(replenishment_id)

        projected = await self._project([replenishment])
        return projected[0]

    async def get_all_replenishments(
        self, filters: Optional[ReplenishmentFilters] = None
    ) -> ReplenishmentListResponse:
        """Admin listing; unset filters are ignored."""
        replenishments = await self.replenishment_ops.get_replenishments(filters)
        projected = await self._project(replenishments)
        logger.debug(
            f"Listed {len(projected)} replenishments",
            extra_context={
                "filters": filters.model_dump(exclude_none=True) if filters else {}
            },
        )
        return ReplenishmentListResponse(total=len(projected), replenishments=projected)
