# replenisher/models/notification_model.py
"""
Notification Models - customer notices about replenishment payments.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..enums import NoticeKind, ReplenishmentEndReason


class ReplenishmentNotice(BaseModel):
    """A payment outcome to be delivered to the customer."""

    kind: NoticeKind
    user_id: int
    replenishment_id: int
    order_id: Optional[int] = None
    next_payment_date: Optional[datetime] = Field(
        None, description="When the following payment is due; unset once it stops"
    )
    end_reason: Optional[ReplenishmentEndReason] = None
    end_date: Optional[datetime] = None
    times: Optional[int] = None
    manage_link: str
