"""
Unit tests for the HTTP payment-and-order client.
"""

from unittest.mock import Mock

import pytest
import requests

from replenisher.exceptions import PaymentError
from replenisher.services.checkout_client import HttpPaymentOrderClient


def _response(status_code=200, body=None):
    response = Mock()
    response.status_code = status_code
    response.text = "error body"
    response.json.return_value = body if body is not None else {}
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(session):
    return HttpPaymentOrderClient(
        base_url="http://checkout.test/orders", timeout=3, session=session
    )


@pytest.mark.unit
class TestHttpPaymentOrderClient:
    @pytest.mark.asyncio
    async def test_posts_payload_with_idempotency_key(self, client, session, job_payload):
        session.post.return_value = _response(
            body={"order_id": 555, "payment_reference": "pi_1"}
        )

        result = await client.process_payment_and_create_order(
            42, job_payload, idempotency_key="repeat:scheduler-a:1"
        )

        assert result.order_id == 555
        args, kwargs = session.post.call_args
        assert args[0] == "http://checkout.test/orders"
        assert kwargs["headers"] == {"Idempotency-Key": "repeat:scheduler-a:1"}
        assert kwargs["timeout"] == 3
        assert kwargs["json"]["user_id"] == 42
        assert kwargs["json"]["shipping_method"] == "next-day"
        assert kwargs["json"]["order_items"] == [{"product_id": 11, "quantity": 2}]

    @pytest.mark.asyncio
    async def test_error_status_raises(self, client, session, job_payload):
        session.post.return_value = _response(status_code=402)
        with pytest.raises(PaymentError, match="HTTP 402"):
            await client.process_payment_and_create_order(42, job_payload, "k")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, client, session, job_payload):
        session.post.side_effect = requests.exceptions.ConnectTimeout("timeout")
        with pytest.raises(PaymentError, match="unreachable"):
            await client.process_payment_and_create_order(42, job_payload, "k")

    @pytest.mark.asyncio
    async def test_unexpected_body_raises(self, client, session, job_payload):
        session.post.return_value = _response(body={"status": "ok"})
        with pytest.raises(PaymentError, match="Unexpected checkout response"):
            await client.process_payment_and_create_order(42, job_payload, "k")
