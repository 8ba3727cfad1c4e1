# tests/conftest.py
"""
Pytest configuration and shared fixtures for Replenisher tests.

The relational store, Redis and the checkout service are replaced by
in-memory doubles; the job scheduler engine is the real one wrapping an
APScheduler instance that is never started, so tests drive occurrences
explicitly through engine._run_occurrence().
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from redis.exceptions import RedisError

from replenisher.enums import (
    BackoffStrategy,
    Currency,
    PaymentMethod,
    RecurrenceUnit,
    ReplenishmentStatus,
)
from replenisher.exceptions import (
    ConcurrentModificationError,
    NotificationError,
    PaymentError,
    ReplenishmentNotFoundError,
)
from replenisher.models.customer_model import Customer
from replenisher.models.notification_model import ReplenishmentNotice
from replenisher.models.replenishment_model import (
    OrderItem,
    OrderSnapshot,
    Replenishment,
    ReplenishmentCreate,
    ReplenishmentFilters,
    ReplenishmentOrderData,
    ReplenishmentPayment,
    ReplenishmentUpdate,
)
from replenisher.models.retry_policy_model import RetryPolicy
from replenisher.models.scheduling_model import OrderResult, ReplenishmentJobPayload
from replenisher.services.replenishment_scheduler import ReplenishmentScheduler
from replenisher.services.replenishment_service import ReplenishmentService
from replenisher.services.scheduling.job_scheduler_engine import JobSchedulerEngine
from replenisher.services.snapshot_store import SnapshotStore
from replenisher.utils.time_utils import utc_now
from replenisher.workers.replenishment_worker import ReplenishmentWorker

USER_ID = 42
CUSTOMER_ID = 7
OTHER_USER_ID = 43
OTHER_CUSTOMER_ID = 8


class InMemoryReplenishmentOperations:
    """Dict-backed stand-in for ReplenishmentOperations with the same contract."""

    def __init__(self) -> None:
        self.rows: Dict[int, Replenishment] = {}
        self.payments: List[ReplenishmentPayment] = []
        self._next_id = 1
        self._next_payment_id = 1

    async def create_replenishment(self, data: ReplenishmentCreate) -> Replenishment:
        now = utc_now()
        row = Replenishment(
            **data.model_dump(),
            id=self._next_id,
            executions=0,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.rows[row.id] = row
        self._next_id += 1
        return row.model_copy(deep=True)

    async def get_replenishment_by_id(
        self, replenishment_id: int
    ) -> Optional[Replenishment]:
        row = self.rows.get(replenishment_id)
        return row.model_copy(deep=True) if row else None

    async def get_customer_replenishment(
        self, customer_id: int, replenishment_id: int
    ) -> Optional[Replenishment]:
        row = self.rows.get(replenishment_id)
        if row is None or row.customer_id != customer_id:
            return None
        return row.model_copy(deep=True)

    async def get_replenishments(
        self, filters: Optional[ReplenishmentFilters] = None
    ) -> List[Replenishment]:
        criteria = filters.model_dump(exclude_none=True) if filters else {}
        matches = [
            row.model_copy(deep=True)
            for row in self.rows.values()
            if all(getattr(row, field) == value for field, value in criteria.items())
        ]
        return sorted(matches, key=lambda row: row.id, reverse=True)

    async def get_replenishments_by_customer(
        self, customer_id: int
    ) -> List[Replenishment]:
        return await self.get_replenishments(
            ReplenishmentFilters(customer_id=customer_id)
        )

    async def get_schedulable_replenishments(self) -> List[Replenishment]:
        return [
            row.model_copy(deep=True)
            for row in self.rows.values()
            if row.status
            in (ReplenishmentStatus.SCHEDULED, ReplenishmentStatus.ACTIVE)
        ]

    async def update_replenishment(
        self,
        replenishment_id: int,
        update: ReplenishmentUpdate,
        expected_version: Optional[int] = None,
    ) -> Replenishment:
        row = self.rows.get(replenishment_id)
        if row is None:
            raise ReplenishmentNotFoundError(replenishment_id)
        if expected_version is not None and row.version != expected_version:
            raise ConcurrentModificationError(replenishment_id, expected_version)

        changes = update.model_dump(exclude_unset=True)
        updated = row.model_copy(
            update={**changes, "version": row.version + 1, "updated_at": utc_now()},
            deep=True,
        )
        self.rows[replenishment_id] = updated

        if changes.get("last_payment_date") is not None:
            self.payments.append(
                ReplenishmentPayment(
                    id=self._next_payment_id,
                    replenishment_id=replenishment_id,
                    payment_date=changes["last_payment_date"],
                )
            )
            self._next_payment_id += 1
        return updated.model_copy(deep=True)

    async def delete_replenishment(self, replenishment_id: int) -> bool:
        self.payments = [
            payment
            for payment in self.payments
            if payment.replenishment_id != replenishment_id
        ]
        return self.rows.pop(replenishment_id, None) is not None

    async def get_payments_for_replenishments(
        self, replenishment_ids: List[int]
    ) -> Dict[int, List[ReplenishmentPayment]]:
        grouped: Dict[int, List[ReplenishmentPayment]] = {
            replenishment_id: [] for replenishment_id in replenishment_ids
        }
        for payment in sorted(
            self.payments, key=lambda p: (p.payment_date, p.id), reverse=True
        ):
            if payment.replenishment_id in grouped:
                grouped[payment.replenishment_id].append(payment)
        return grouped

    async def get_payments(self, replenishment_id: int) -> List[ReplenishmentPayment]:
        grouped = await self.get_payments_for_replenishments([replenishment_id])
        return grouped[replenishment_id]

    def bump_version(self, replenishment_id: int) -> None:
        """Simulate a write by another process."""
        row = self.rows[replenishment_id]
        self.rows[replenishment_id] = row.model_copy(update={"version": row.version + 1})


class FakeCustomerOperations:
    def __init__(self, customers: Optional[List[Customer]] = None) -> None:
        self.customers = {customer.user_id: customer for customer in customers or []}

    async def find_customer_by_user_id(self, user_id: int) -> Optional[Customer]:
        return self.customers.get(user_id)

    async def get_customer_by_id(self, customer_id: int) -> Optional[Customer]:
        for customer in self.customers.values():
            if customer.id == customer_id:
                return customer
        return None


class FakeRedis:
    """The slice of redis.asyncio.Redis the snapshot store uses, over a dict."""

    def __init__(self) -> None:
        self.data: Dict[str, Dict[str, str]] = {}
        self.fail_writes = False
        self.closed = False

    async def ping(self) -> bool:
        return True

    async def hset(self, key: str, mapping: Dict[str, str]) -> int:
        if self.fail_writes:
            raise RedisError("write refused")
        self.data.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def hgetall(self, key: str) -> Dict[str, str]:
        return dict(self.data.get(key, {}))

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if key in self.data)

    async def aclose(self) -> None:
        self.closed = True


class FakePaymentProcessor:
    """Records charges; fails the first `failures` calls when configured."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls: List[Dict[str, Any]] = []
        self.before_charge = None
        self._next_order_id = 1000

    async def process_payment_and_create_order(
        self, user_id: int, payload: ReplenishmentJobPayload, idempotency_key: str
    ) -> OrderResult:
        self.calls.append(
            {"user_id": user_id, "payload": payload, "idempotency_key": idempotency_key}
        )
        if self.before_charge is not None:
            await self.before_charge()
        if self.failures:
            self.failures -= 1
            raise PaymentError("card declined")
        self._next_order_id += 1
        return OrderResult(order_id=self._next_order_id)


class FakeNotifier:
    """Collects notices; raises NotificationError when `fail` is set."""

    def __init__(self) -> None:
        self.notices: List[ReplenishmentNotice] = []
        self.fail = False

    async def send(self, notice: ReplenishmentNotice) -> None:
        if self.fail:
            raise NotificationError("notification service down")
        self.notices.append(notice)


@pytest.fixture
def now() -> datetime:
    return utc_now()


@pytest.fixture
def order_data() -> ReplenishmentOrderData:
    return ReplenishmentOrderData(
        order_items=[OrderItem(product_id=11, quantity=2)],
        payment_method=PaymentMethod.CARD,
        shipping_country="DE",
        payment_method_id="pm_123",
        currency=Currency.EUR,
    )


@pytest.fixture
def order_snapshot(order_data) -> OrderSnapshot:
    return OrderSnapshot.from_order_data(order_data)


@pytest.fixture
def job_payload(order_snapshot) -> ReplenishmentJobPayload:
    return ReplenishmentJobPayload.build(
        order_snapshot,
        user_id=USER_ID,
        period=86_400_000,
        replenishment_id=1,
    )


@pytest.fixture
def replenishment_factory():
    """Build Replenishment rows with sensible defaults."""

    def factory(**overrides) -> Replenishment:
        now = utc_now()
        defaults = {
            "id": 1,
            "scheduler_id": "scheduler-test",
            "next_job_id": "orderData:repeat:scheduler-test:1",
            "customer_id": CUSTOMER_ID,
            "start_date": now,
            "unit": RecurrenceUnit.DAY,
            "interval": 1,
            "status": ReplenishmentStatus.ACTIVE,
            "next_payment_date": now + timedelta(days=1),
            "executions": 0,
            "version": 1,
            "created_at": now,
            "updated_at": now,
        }
        defaults.update(overrides)
        return Replenishment(**defaults)

    return factory


@pytest.fixture
def replenishment_ops() -> InMemoryReplenishmentOperations:
    return InMemoryReplenishmentOperations()


@pytest.fixture
def customer_ops() -> FakeCustomerOperations:
    return FakeCustomerOperations(
        [
            Customer(id=CUSTOMER_ID, user_id=USER_ID),
            Customer(id=OTHER_CUSTOMER_ID, user_id=OTHER_USER_ID),
        ]
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def snapshot_store(fake_redis) -> SnapshotStore:
    return SnapshotStore(client=fake_redis)


@pytest.fixture
def sleep_mock() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(
        attempts=3, backoff_strategy=BackoffStrategy.EXPONENTIAL, base_delay_ms=5000
    )


@pytest.fixture
def engine(retry_policy, sleep_mock) -> JobSchedulerEngine:
    """Real engine over an APScheduler instance that is never started."""
    return JobSchedulerEngine(
        retry_policy=retry_policy,
        scheduler=AsyncIOScheduler(timezone=timezone.utc),
        sleep=sleep_mock,
    )


@pytest.fixture
def payment_processor() -> FakePaymentProcessor:
    return FakePaymentProcessor()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def scheduler(
    replenishment_ops, customer_ops, snapshot_store, engine
) -> ReplenishmentScheduler:
    return ReplenishmentScheduler(
        replenishment_ops=replenishment_ops,
        customer_ops=customer_ops,
        snapshot_store=snapshot_store,
        engine=engine,
        shipping_method="next-day",
        resume_currency=Currency.EUR,
    )


@pytest.fixture
def worker(
    replenishment_ops, snapshot_store, engine, payment_processor, notifier
) -> ReplenishmentWorker:
    worker = ReplenishmentWorker(
        replenishment_ops=replenishment_ops,
        snapshot_store=snapshot_store,
        engine=engine,
        payment_processor=payment_processor,
        notifier=notifier,
    )
    # What worker.initialize() does, without needing an event loop
    engine.register_handler(worker.process_occurrence, worker.handle_exhausted)
    return worker


@pytest.fixture
def replenishment_service(replenishment_ops, customer_ops) -> ReplenishmentService:
    return ReplenishmentService(replenishment_ops, customer_ops)


@pytest.fixture
def mock_async_db():
    """
    Mock async database for testing database operations.

    Returns:
        tuple: (db_mock, connection_mock, cursor_mock)
    """
    db = Mock()
    conn = AsyncMock()
    cursor = AsyncMock()

    db.get_connection.return_value.__aenter__ = AsyncMock(return_value=conn)
    db.get_connection.return_value.__aexit__ = AsyncMock(return_value=None)
    conn.cursor = Mock()
    conn.cursor.return_value.__aenter__ = AsyncMock(return_value=cursor)
    conn.cursor.return_value.__aexit__ = AsyncMock(return_value=None)

    return db, conn, cursor


def future(days: int = 1, now: Optional[datetime] = None) -> datetime:
    return (now or utc_now()) + timedelta(days=days)
