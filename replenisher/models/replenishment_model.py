# replenisher/models/replenishment_model.py
"""
Replenishment Models - Pydantic models for recurring order replenishment.

Covers the HTTP request body, the relational row, the payment audit row,
the outward projection returned to customers and the order snapshot kept
in the snapshot store between occurrences.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..constants import MAX_INTERVAL, MAX_TIMES, MIN_INTERVAL, MIN_TIMES
from ..enums import Currency, PaymentMethod, RecurrenceUnit, ReplenishmentStatus
from ..utils.time_utils import ensure_utc


class OrderItem(BaseModel):
    """One line item of a recurring order."""

    product_id: int = Field(..., ge=1, description="Catalog product id")
    quantity: int = Field(..., ge=1, description="Units per occurrence")


class ReplenishmentOrderData(BaseModel):
    """Order contents supplied by the customer on create and update."""

    order_items: List[OrderItem] = Field(..., min_length=1)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CARD)
    shipping_country: str = Field(..., min_length=2, max_length=64)
    payment_method_id: Optional[str] = Field(
        None, description="Saved payment method reference at the gateway"
    )
    currency: Currency = Field(default=Currency.EUR)


class OrderSnapshot(BaseModel):
    """
    Order contents frozen for the next pending occurrence.

    Stored in the snapshot store under the key recorded as the row's
    next_job_id. Currency and payment method id are optional because a
    resumed replenishment may carry an older snapshot.
    """

    order_items: List[OrderItem] = Field(..., min_length=1)
    payment_method: PaymentMethod
    shipping_country: str
    payment_method_id: Optional[str] = None
    currency: Optional[Currency] = None

    @classmethod
    def from_order_data(cls, data: ReplenishmentOrderData) -> "OrderSnapshot":
        return cls(**data.model_dump())


class ReplenishmentRequest(BaseModel):
    """Request body for creating or updating a replenishment."""

    data: ReplenishmentOrderData
    interval: int = Field(..., ge=MIN_INTERVAL, le=MAX_INTERVAL)
    unit: RecurrenceUnit
    starting: Optional[datetime] = Field(
        None, description="First payment instant; makes the replenishment scheduled"
    )
    expiry: Optional[datetime] = Field(
        None, description="No occurrence fires after this instant"
    )
    times: Optional[int] = Field(
        None, ge=MIN_TIMES, le=MAX_TIMES, description="Maximum number of payments"
    )

    @field_validator("starting", "expiry")
    @classmethod
    def normalize_instant(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def validate_window(self) -> "ReplenishmentRequest":
        if self.starting and self.expiry and self.expiry <= self.starting:
            raise ValueError("expiry must be after starting")
        return self


class ReplenishmentBase(BaseModel):
    """Recurrence parameters shared by row models."""

    customer_id: int
    unit: RecurrenceUnit
    interval: int = Field(..., ge=1)
    start_date: datetime
    end_date: Optional[datetime] = None
    times: Optional[int] = Field(None, ge=1)
    status: ReplenishmentStatus


class ReplenishmentCreate(ReplenishmentBase):
    """Model for inserting a new replenishment row."""

    scheduler_id: str
    next_payment_date: Optional[datetime] = None


class ReplenishmentUpdate(BaseModel):
    """
    Partial update of a replenishment row.

    Only fields that were explicitly set are written, so None clears a
    column while an omitted field leaves it untouched. Setting
    last_payment_date also records a payment audit row.
    """

    next_job_id: Optional[str] = None
    order_id: Optional[int] = None
    start_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    next_payment_date: Optional[datetime] = None
    unit: Optional[RecurrenceUnit] = None
    interval: Optional[int] = Field(None, ge=1)
    end_date: Optional[datetime] = None
    times: Optional[int] = Field(None, ge=1)
    executions: Optional[int] = Field(None, ge=0)
    status: Optional[ReplenishmentStatus] = None


class Replenishment(ReplenishmentBase):
    """Complete replenishment model with all database fields."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    scheduler_id: str
    next_job_id: Optional[str] = None
    order_id: Optional[int] = None
    last_payment_date: Optional[datetime] = None
    next_payment_date: Optional[datetime] = None
    executions: int = 0
    version: int = 1
    created_at: datetime
    updated_at: datetime

    @property
    def remaining_times(self) -> Optional[int]:
        """Payments left before the cap is reached, None when uncapped."""
        if self.times is None:
            return None
        return max(self.times - self.executions, 0)


class ReplenishmentPayment(BaseModel):
    """Payment audit row written whenever last_payment_date advances."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    replenishment_id: int
    payment_date: datetime


class ReplenishmentPaymentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_date: datetime


class ReplenishmentResponse(BaseModel):
    """Customer-facing projection. Internal scheduling keys are never exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: Optional[int] = None
    start_date: datetime
    last_payment_date: Optional[datetime] = None
    next_payment_date: Optional[datetime] = None
    unit: RecurrenceUnit
    interval: int
    end_date: Optional[datetime] = None
    times: Optional[int] = None
    executions: int
    status: ReplenishmentStatus
    payments: List[ReplenishmentPaymentSummary] = Field(default_factory=list)
    payment_count: int = 0

    @classmethod
    def from_replenishment(
        cls,
        replenishment: Replenishment,
        payments: Optional[List[ReplenishmentPayment]] = None,
    ) -> "ReplenishmentResponse":
        payments = payments or []
        return cls(
            **replenishment.model_dump(
                include={
                    "id",
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
                }
            ),
            payments=[
                ReplenishmentPaymentSummary(payment_date=p.payment_date)
                for p in payments
            ],
            payment_count=len(payments),
        )


class ReplenishmentListResponse(BaseModel):
    total: int
    replenishments: List[ReplenishmentResponse]


class ReplenishmentFilters(BaseModel):
    """Admin listing filters. Unset filters are ignored."""

    customer_id: Optional[int] = None
    unit: Optional[RecurrenceUnit] = None
    interval: Optional[int] = Field(None, ge=1)
    status: Optional[ReplenishmentStatus] = None
