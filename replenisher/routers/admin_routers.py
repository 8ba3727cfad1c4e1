# replenisher/routers/admin_routers.py
"""
Administrative replenishment endpoints, guarded by the admin key header.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies import ReplenishmentServiceDep, require_admin
from ..enums import RecurrenceUnit, ReplenishmentStatus
from ..models.replenishment_model import (
    ReplenishmentFilters,
    ReplenishmentListResponse,
)
from ..utils.router_helpers import handle_exceptions

router = APIRouter(tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/admin/replenishments", response_model=ReplenishmentListResponse)
@handle_exceptions("fetch all replenishments")
async def get_all_replenishments(
    replenishment_service: ReplenishmentServiceDep,
    customer_id: Optional[int] = Query(None, ge=1, description="Filter by customer"),
    unit: Optional[RecurrenceUnit] = Query(None, description="Filter by unit"),
    interval: Optional[int] = Query(None, ge=1, description="Filter by interval"),
    status: Optional[ReplenishmentStatus] = Query(None, description="Filter by status"),
):
    filters = ReplenishmentFilters(
        customer_id=customer_id, unit=unit, interval=interval, status=status
    )
    return await replenishment_service.get_all_replenishments(filters)
