# replenisher/services/checkout_client.py
"""
Checkout client - the payment-and-order collaborator.

The checkout service charges the customer's saved card and creates the
order in one call. This module only defines how the worker talks to it.
"""

import asyncio
from functools import partial
from typing import Optional, Protocol

import requests

from ..config import settings
from ..enums import LogEmoji, LoggerName, LogSource
from ..exceptions import PaymentError
from ..models.scheduling_model import OrderResult, ReplenishmentJobPayload
from .logger import get_service_logger

logger = get_service_logger(LoggerName.CHECKOUT_CLIENT, LogSource.WORKER)


class PaymentOrderProcessor(Protocol):
    """Anything that can charge a customer and create the order."""

    async def process_payment_and_create_order(
        self, user_id: int, payload: ReplenishmentJobPayload, idempotency_key: str
    ) -> OrderResult: ...


class HttpPaymentOrderClient:
    """PaymentOrderProcessor backed by the checkout service's HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url or settings.checkout_service_url
        self.timeout = timeout or settings.checkout_timeout_seconds
        self.session = session or requests.Session()

    def _post_order(
        self, user_id: int, payload: ReplenishmentJobPayload, idempotency_key: str
    ) -> OrderResult:
        body = {"user_id": user_id, **payload.model_dump(mode="json")}
        try:
            response = self.session.post(
                self.base_url,
                json=body,
                headers={"Idempotency-Key": idempotency_key},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise PaymentError(f"Checkout service unreachable: {e}") from e

        if response.status_code >= 400:
            raise PaymentError(
                f"Checkout service rejected replenishment "
                f"{payload.replenishment_id}: HTTP {response.status_code} {response.text[:200]}"
            )

        try:
            return OrderResult.model_validate(response.json())
        except ValueError as e:
            raise PaymentError(f"Unexpected checkout response: {e}") from e

    async def process_payment_and_create_order(
        self, user_id: int, payload: ReplenishmentJobPayload, idempotency_key: str
    ) -> OrderResult:
        """
        Charge the customer and create the order.

        The blocking HTTP call runs in the default executor.

        Raises:
            PaymentError: On transport errors, non-2xx responses or bad bodies
        """
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None, partial(self._post_order, user_id, payload, idempotency_key)
        )
        logger.info(
            f"Order {result.order_id} created for replenishment {payload.replenishment_id}",
            emoji=LogEmoji.PAYMENT,
        )
        return result

    def close(self) -> None:
        self.session.close()
