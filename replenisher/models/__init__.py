"""
Replenisher Pydantic Models Package

Request/response validation, relational row models and the scheduling
messages exchanged between the scheduler, the engine and the worker.

Model Organization:
    - replenishment_model: request body, row, payment audit row, projection
    - scheduling_model: schedule descriptor, job payload, occurrence
    - customer_model: read-only customer record
    - retry_policy_model: delivery retry policy
"""

from .customer_model import Customer
from .replenishment_model import (
    OrderItem,
    OrderSnapshot,
    Replenishment,
    ReplenishmentCreate,
    ReplenishmentFilters,
    ReplenishmentListResponse,
    ReplenishmentOrderData,
    ReplenishmentPayment,
    ReplenishmentPaymentSummary,
    ReplenishmentRequest,
    ReplenishmentResponse,
    ReplenishmentUpdate,
)
from .retry_policy_model import RetryPolicy
from .scheduling_model import (
    Occurrence,
    OrderResult,
    ReplenishmentJobPayload,
    ScheduledJobRef,
    ScheduleOptions,
)

__all__ = [
    "Customer",
    "OrderItem",
    "OrderSnapshot",
    "Replenishment",
    "ReplenishmentCreate",
    "ReplenishmentFilters",
    "ReplenishmentListResponse",
    "ReplenishmentOrderData",
    "ReplenishmentPayment",
    "ReplenishmentPaymentSummary",
    "ReplenishmentRequest",
    "ReplenishmentResponse",
    "ReplenishmentUpdate",
    "RetryPolicy",
    "Occurrence",
    "OrderResult",
    "ReplenishmentJobPayload",
    "ScheduledJobRef",
    "ScheduleOptions",
]
