# replenisher/models/scheduling_model.py
"""
Scheduling Models - what flows between the scheduler, the job scheduler
engine and the worker.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..constants import DEFAULT_SHIPPING_METHOD
from ..enums import Currency, PaymentMethod
from .replenishment_model import OrderItem, OrderSnapshot


class ScheduleOptions(BaseModel):
    """Recurring schedule descriptor handed to the engine."""

    every_ms: int = Field(..., gt=0, description="Period between occurrences")
    start_date: Optional[datetime] = Field(
        None, description="First occurrence; defaults to one period from now"
    )
    end_date: Optional[datetime] = Field(
        None, description="No occurrence fires after this instant"
    )
    limit: Optional[int] = Field(
        None, ge=1, description="Occurrences after which the schedule is removed"
    )


class ReplenishmentJobPayload(BaseModel):
    """Data delivered with every occurrence of a replenishment schedule."""

    order_items: List[OrderItem]
    payment_method: PaymentMethod
    shipping_country: str
    payment_method_id: Optional[str] = None
    currency: Optional[Currency] = None
    shipping_method: str = DEFAULT_SHIPPING_METHOD
    user_id: int
    period: int = Field(..., gt=0, description="Period in milliseconds")
    replenishment_id: int
    baseline_executions: int = Field(
        default=0,
        ge=0,
        description="Row executions when this schedule definition was installed",
    )

    @classmethod
    def build(
        cls,
        snapshot: OrderSnapshot,
        user_id: int,
        period: int,
        replenishment_id: int,
        baseline_executions: int = 0,
        shipping_method: str = DEFAULT_SHIPPING_METHOD,
    ) -> "ReplenishmentJobPayload":
        return cls(
            **snapshot.model_dump(),
            shipping_method=shipping_method,
            user_id=user_id,
            period=period,
            replenishment_id=replenishment_id,
            baseline_executions=baseline_executions,
        )


class ScheduledJobRef(BaseModel):
    """Identity of the next pending occurrence of a schedule."""

    job_id: str
    next_run_time: datetime


class Occurrence(BaseModel):
    """One firing of a schedule as seen by the handler."""

    job_id: str
    schedule_id: str
    sequence: int = Field(..., ge=1, description="1-based occurrence number")
    generation: int = Field(
        default=0, ge=0, description="Schedule definition the occurrence belongs to"
    )
    attempt: int = Field(default=1, ge=1)
    scheduled_for: datetime
    payload: ReplenishmentJobPayload


class OrderResult(BaseModel):
    """Outcome reported by the payment-and-order collaborator."""

    order_id: int
    payment_reference: Optional[str] = None
