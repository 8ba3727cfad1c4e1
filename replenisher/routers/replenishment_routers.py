# replenisher/routers/replenishment_routers.py
"""
Customer-facing replenishment HTTP endpoints.

Role: Recurring order management for the authenticated customer
Responsibilities: create, list, read, update, toggle-cancel and delete
Interactions: ReplenishmentScheduler for lifecycle changes,
              ReplenishmentService for read projections
"""

from fastapi import APIRouter, Depends, Path, Response, status

from ..dependencies import (
    CurrentUserIdDep,
    ReplenishmentSchedulerDep,
    ReplenishmentServiceDep,
)
from ..middleware.rate_limiter import toggle_rate_limit, update_rate_limit
from ..models.replenishment_model import (
    ReplenishmentListResponse,
    ReplenishmentRequest,
    ReplenishmentResponse,
)
from ..utils.router_helpers import handle_exceptions

router = APIRouter(tags=["replenishments"])


def valid_replenishment_id(
    replenishment_id: int = Path(..., ge=1, description="Replenishment ID"),
) -> int:
    return replenishment_id


@router.post(
    "/replenishments",
    response_model=ReplenishmentResponse,
    status_code=status.HTTP_201_CREATED,
)
@handle_exceptions("create replenishment")
async def create_replenishment(
    payload: ReplenishmentRequest,
    user_id: CurrentUserIdDep,
    scheduler: ReplenishmentSchedulerDep,
    replenishment_service: ReplenishmentServiceDep,
):
    """
    Create a recurring order for the caller.

    With `starting` the replenishment is scheduled and first charges then;
    without it, it is active and first charges one period from now.
    """
    replenishment = await scheduler.create(
        user_id,
        payload.data,
        payload.interval,
        payload.unit,
        starting=payload.starting,
        expiry=payload.expiry,
        times=payload.times,
    )
    return await replenishment_service.to_response(replenishment)


@router.get("/replenishments", response_model=ReplenishmentListResponse)
@handle_exceptions("fetch replenishments")
async def get_replenishments(
    user_id: CurrentUserIdDep, replenishment_service: ReplenishmentServiceDep
):
    return await replenishment_service.get_customer_replenishments(user_id)


@router.get(
    "/replenishments/{replenishment_id}", response_model=ReplenishmentResponse
)
@handle_exceptions("fetch replenishment")
async def get_replenishment(
    user_id: CurrentUserIdDep,
    replenishment_service: ReplenishmentServiceDep,
    replenishment_id: int = Depends(valid_replenishment_id),
):
    return await replenishment_service.get_replenishment_by_id(
        user_id, replenishment_id
    )


@router.put(
    "/replenishments/{replenishment_id}",
    response_model=ReplenishmentResponse,
    dependencies=[Depends(update_rate_limit)],
)
@handle_exceptions("update replenishment")
async def update_replenishment(
    payload: ReplenishmentRequest,
    user_id: CurrentUserIdDep,
    scheduler: ReplenishmentSchedulerDep,
    replenishment_service: ReplenishmentServiceDep,
    replenishment_id: int = Depends(valid_replenishment_id),
):
    """
    Replace order contents and recurrence.

    A scheduled replenishment must be given a new `starting`; an active one
    must not. Finished, failed and canceled replenishments cannot be updated.
    """
    replenishment = await scheduler.update(
        user_id,
        replenishment_id,
        payload.data,
        payload.interval,
        payload.unit,
        starting=payload.starting,
        expiry=payload.expiry,
        times=payload.times,
    )
    return await replenishment_service.to_response(replenishment)


@router.put(
    "/replenishments/{replenishment_id}/toggle-cancel",
    response_model=ReplenishmentResponse,
    dependencies=[Depends(toggle_rate_limit)],
)
@handle_exceptions("toggle replenishment cancel status")
async def toggle_cancel_replenishment(
    user_id: CurrentUserIdDep,
    scheduler: ReplenishmentSchedulerDep,
    replenishment_service: ReplenishmentServiceDep,
    replenishment_id: int = Depends(valid_replenishment_id),
):
    """Cancel a scheduled or active replenishment, or resume a canceled one."""
    replenishment = await scheduler.toggle_cancel_status(user_id, replenishment_id)
    return await replenishment_service.to_response(replenishment)


@router.delete(
    "/replenishments/{replenishment_id}", status_code=status.HTTP_204_NO_CONTENT
)
@handle_exceptions("delete replenishment")
async def delete_replenishment(
    user_id: CurrentUserIdDep,
    scheduler: ReplenishmentSchedulerDep,
    replenishment_id: int = Depends(valid_replenishment_id),
):
    await scheduler.remove(user_id, replenishment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
