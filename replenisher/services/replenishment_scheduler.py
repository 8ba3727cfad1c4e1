# replenisher/services/replenishment_scheduler.py
"""
Replenishment Scheduler - lifecycle orchestration of recurring orders.

Keeps three independently failing stores in step:

- the replenishments row (durable recurrence intent and bookkeeping)
- the job scheduler engine's recurring schedule, keyed by scheduler_id
- the snapshot store entry of the next pending occurrence, keyed by next_job_id

Writes happen in the order engine, snapshot, row. Any failure aborts the
operation with an error; create additionally removes the row it inserted
so no replenishment is left without a live schedule.
"""

import time
import uuid
from datetime import datetime
from typing import Optional

from ..config import settings
from ..constants import SCHEDULABLE_STATUSES, SCHEDULER_ID_PREFIX, TERMINAL_STATUSES
from ..database.customer_operations import CustomerOperations
from ..database.replenishment_operations import ReplenishmentOperations
from ..enums import (
    Currency,
    LogEmoji,
    LoggerName,
    LogSource,
    RecurrenceUnit,
    ReplenishmentStatus,
)
from ..exceptions import (
    InvalidStateTransitionError,
    ReplenisherError,
    ReplenishmentNotFoundError,
    ScheduleExhaustedError,
    SnapshotMissingError,
    UserNotFoundError,
)
from ..models.customer_model import Customer
from ..models.replenishment_model import (
    OrderSnapshot,
    Replenishment,
    ReplenishmentCreate,
    ReplenishmentOrderData,
    ReplenishmentUpdate,
)
from ..models.scheduling_model import (
    ReplenishmentJobPayload,
    ScheduledJobRef,
    ScheduleOptions,
)
from ..utils.recurrence import is_future, next_due_instant, to_milliseconds
from ..utils.time_utils import utc_now
from .logger import get_service_logger
from .scheduling.job_scheduler_engine import JobSchedulerEngine
from .snapshot_store import SnapshotStore

logger = get_service_logger(LoggerName.REPLENISHMENT_SCHEDULER, LogSource.SCHEDULER)

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_scheduler_id() -> str:
    """Globally unique, time-prefixed schedule id: scheduler-{base36 ms}{random}."""
    return (
        f"{SCHEDULER_ID_PREFIX}-{_to_base36(time.time_ns() // 1_000_000)}"
        f"{uuid.uuid4().hex[:12]}"
    )


class ReplenishmentScheduler:
    """
    Create, update, toggle-cancel and remove recurring replenishments.

    All public operations take the caller's user id and enforce ownership
    through the customer record.
    """

    def __init__(
        self,
        replenishment_ops: ReplenishmentOperations,
        customer_ops: CustomerOperations,
        snapshot_store: SnapshotStore,
        engine: JobSchedulerEngine,
        shipping_method: Optional[str] = None,
        resume_currency: Optional[Currency] = None,
    ) -> None:
        self.replenishment_ops = replenishment_ops
        self.customer_ops = customer_ops
        self.snapshot_store = snapshot_store
        self.engine = engine
        self.shipping_method = shipping_method or settings.default_shipping_method
        self.resume_currency = resume_currency or settings.resume_currency

    # Lookups

    async def _get_customer(self, user_id: int) -> Customer:
        customer = await self.customer_ops.find_customer_by_user_id(user_id)
        if customer is None:
            raise UserNotFoundError(user_id)
        return customer

    async def _get_owned_replenishment(
        self, customer: Customer, replenishment_id: int
    ) -> Replenishment:
        replenishment = await self.replenishment_ops.get_customer_replenishment(
            customer.id, replenishment_id
        )
        if replenishment is None:
            raise ReplenishmentNotFoundError(replenishment_id)
        return replenishment

    # Engine

    def _install_schedule(
        self,
        replenishment: Replenishment,
        snapshot: OrderSnapshot,
        user_id: int,
        every_ms: int,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        limit: Optional[int],
    ) -> ScheduledJobRef:
        payload = ReplenishmentJobPayload.build(
            snapshot,
            user_id=user_id,
            period=every_ms,
            replenishment_id=replenishment.id,
            baseline_executions=replenishment.executions,
            shipping_method=self.shipping_method,
        )
        options = ScheduleOptions(
            every_ms=every_ms, start_date=start_date, end_date=end_date, limit=limit
        )
        ref = self.engine.upsert_schedule(replenishment.scheduler_id, options, payload)
        if ref is None:
            raise ScheduleExhaustedError(
                f"Engine returned no job for replenishment {replenishment.id} "
                f"(schedule {replenishment.scheduler_id})"
            )
        return ref

    # Operations

    async def create(
        self,
        user_id: int,
        data: ReplenishmentOrderData,
        interval: int,
        unit: RecurrenceUnit,
        starting: Optional[datetime] = None,
        expiry: Optional[datetime] = None,
        times: Optional[int] = None,
    ) -> Replenishment:
        """
        Create a recurring replenishment for the calling user.

        Status is scheduled when a starting instant is given (the first
        payment happens then) and active otherwise (the first payment is
        due one period from now).

        Raises:
            UserNotFoundError: The user has no customer record
            ValueError: Invalid recurrence, or a starting or expiry instant
                in the past
            SchedulingError: The engine did not produce a live schedule
        """
        customer = await self._get_customer(user_id)
        every_ms = to_milliseconds(interval, unit)
        if starting is not None and not is_future(starting):
            raise ValueError("starting must be in the future")
        if expiry is not None and not is_future(expiry):
            raise ValueError("expiry must be in the future")

        status = (
            ReplenishmentStatus.SCHEDULED if starting else ReplenishmentStatus.ACTIVE
        )
        replenishment = await self.replenishment_ops.create_replenishment(
            ReplenishmentCreate(
                scheduler_id=generate_scheduler_id(),
                customer_id=customer.id,
                start_date=starting or utc_now(),
                unit=unit,
                interval=interval,
                end_date=expiry,
                times=times,
                status=status,
            )
        )

        snapshot = OrderSnapshot.from_order_data(data)
        snapshot_key: Optional[str] = None
        try:
            ref = self._install_schedule(
                replenishment,
                snapshot,
                user_id,
                every_ms,
                start_date=starting if status == ReplenishmentStatus.SCHEDULED else None,
                end_date=expiry,
                limit=times,
            )
            snapshot_key = await self.snapshot_store.put(ref.job_id, snapshot)
            replenishment = await self.replenishment_ops.update_replenishment(
                replenishment.id,
                ReplenishmentUpdate(
                    next_job_id=snapshot_key, next_payment_date=ref.next_run_time
                ),
                expected_version=replenishment.version,
            )
        except Exception:
            await self._discard_partial_create(replenishment, snapshot_key)
            raise

        logger.info(
            f"Created replenishment {replenishment.id} ({status.value}) "
            f"every {interval} {unit.value}",
            emoji=LogEmoji.CREATE,
            extra_context={
                "replenishment_id": replenishment.id,
                "scheduler_id": replenishment.scheduler_id,
                "next_job_id": snapshot_key,
            },
        )
        return replenishment

    async def _discard_partial_create(
        self, replenishment: Replenishment, snapshot_key: Optional[str]
    ) -> None:
        """Undo whatever a failed create managed to write."""
        self.engine.remove_schedule(replenishment.scheduler_id)
        try:
            await self.snapshot_store.delete(snapshot_key)
            await self.replenishment_ops.delete_replenishment(replenishment.id)
        except ReplenisherError as cleanup_error:
            logger.error(
                f"Failed to discard partially created replenishment {replenishment.id}",
                exception=cleanup_error,
                error_context={"scheduler_id": replenishment.scheduler_id},
            )

    async def update(
        self,
        user_id: int,
        replenishment_id: int,
        data: ReplenishmentOrderData,
        interval: int,
        unit: RecurrenceUnit,
        starting: Optional[datetime] = None,
        expiry: Optional[datetime] = None,
        times: Optional[int] = None,
    ) -> Replenishment:
        """
        Replace the order contents and recurrence of a live replenishment.

        Raises:
            InvalidStateTransitionError: finished, failed or canceled rows;
                scheduled rows without a new start; active rows with one
            ValueError: A starting or expiry instant in the past
            ConcurrentModificationError: The row changed while updating
        """
        customer = await self._get_customer(user_id)
        replenishment = await self._get_owned_replenishment(customer, replenishment_id)
        status = replenishment.status

        if status in TERMINAL_STATUSES:
            raise InvalidStateTransitionError(
                f"Cannot update a {status.value} replenishment"
            )
        if status == ReplenishmentStatus.CANCELED:
            raise InvalidStateTransitionError(
                "Cannot update a canceled replenishment; resume it first"
            )
        if status == ReplenishmentStatus.SCHEDULED and starting is None:
            raise InvalidStateTransitionError(
                "A scheduled replenishment requires a new starting date"
            )
        if status == ReplenishmentStatus.ACTIVE and starting is not None:
            raise InvalidStateTransitionError(
                "An active replenishment cannot be given a starting date"
            )
        if starting is not None and not is_future(starting):
            raise ValueError("starting must be in the future")
        if expiry is not None and not is_future(expiry):
            raise ValueError("expiry must be in the future")

        every_ms = to_milliseconds(interval, unit)

        # A cap already used up is dropped rather than rejected
        remaining: Optional[int] = None
        if times is not None and times > replenishment.executions:
            remaining = times - replenishment.executions
        else:
            times = None

        next_payment_date = next_due_instant(replenishment.last_payment_date, every_ms)
        end_date = expiry or replenishment.end_date
        snapshot = OrderSnapshot.from_order_data(data)

        ref = self._install_schedule(
            replenishment,
            snapshot,
            user_id,
            every_ms,
            start_date=starting if status == ReplenishmentStatus.SCHEDULED else next_payment_date,
            end_date=end_date,
            limit=remaining,
        )
        snapshot_key = await self.snapshot_store.rotate(
            replenishment.next_job_id, ref.job_id, snapshot
        )

        changes = ReplenishmentUpdate(
            next_job_id=snapshot_key,
            next_payment_date=next_payment_date or ref.next_run_time,
            unit=unit,
            interval=interval,
            end_date=end_date,
            times=times,
        )
        if starting is not None:
            changes.start_date = starting

        updated = await self.replenishment_ops.update_replenishment(
            replenishment.id, changes, expected_version=replenishment.version
        )

        logger.info(
            f"Updated replenishment {updated.id}",
            emoji=LogEmoji.UPDATE,
            extra_context={"replenishment_id": updated.id, "next_job_id": snapshot_key},
        )
        return updated

    async def toggle_cancel_status(
        self, user_id: int, replenishment_id: int
    ) -> Replenishment:
        """
        Cancel a live replenishment, or resume a canceled one.

        Canceling keeps the snapshot: it is the only record of the order
        contents needed to resume later.

        Raises:
            InvalidStateTransitionError: finished or failed rows
            SnapshotMissingError: A canceled row has no readable snapshot
        """
        customer = await self._get_customer(user_id)
        replenishment = await self._get_owned_replenishment(customer, replenishment_id)

        if replenishment.status in SCHEDULABLE_STATUSES:
            return await self._cancel(replenishment)
        if replenishment.status == ReplenishmentStatus.CANCELED:
            return await self._resume(replenishment, user_id)

        raise InvalidStateTransitionError(
            f"Cannot cancel or resume a {replenishment.status.value} replenishment"
        )

    async def _cancel(self, replenishment: Replenishment) -> Replenishment:
        self.engine.remove_schedule(replenishment.scheduler_id)
        canceled = await self.replenishment_ops.update_replenishment(
            replenishment.id,
            ReplenishmentUpdate(
                status=ReplenishmentStatus.CANCELED, next_payment_date=None
            ),
            expected_version=replenishment.version,
        )
        logger.info(
            f"Canceled replenishment {canceled.id}",
            emoji=LogEmoji.PAUSED,
            extra_context={"replenishment_id": canceled.id},
        )
        return canceled

    async def _reschedule_from_snapshot(
        self,
        replenishment: Replenishment,
        user_id: int,
        preferred_start: Optional[datetime] = None,
    ) -> tuple[ScheduledJobRef, str, Optional[datetime], ReplenishmentStatus]:
        """
        Reinstall a schedule from the retained snapshot of a replenishment.

        An active replenishment restarts from preferred_start when that is
        still in the future, otherwise from the catch-up instant.

        Returns:
            (engine ref, new snapshot key, next payment date, resulting status)
        """
        if not replenishment.next_job_id:
            raise SnapshotMissingError(replenishment.id, None)

        snapshot = await self.snapshot_store.get(replenishment.next_job_id)
        if snapshot is None:
            raise SnapshotMissingError(replenishment.id, replenishment.next_job_id)
        if snapshot.currency is None:
            snapshot = snapshot.model_copy(update={"currency": self.resume_currency})

        every_ms = to_milliseconds(replenishment.interval, replenishment.unit)
        next_payment_date = next_due_instant(replenishment.last_payment_date, every_ms)
        if is_future(preferred_start):
            next_payment_date = preferred_start
        status = (
            ReplenishmentStatus.SCHEDULED
            if is_future(replenishment.start_date)
            else ReplenishmentStatus.ACTIVE
        )

        ref = self._install_schedule(
            replenishment,
            snapshot,
            user_id,
            every_ms,
            start_date=(
                replenishment.start_date
                if status == ReplenishmentStatus.SCHEDULED
                else next_payment_date
            ),
            end_date=replenishment.end_date,
            limit=replenishment.remaining_times,
        )
        snapshot_key = await self.snapshot_store.rotate(
            replenishment.next_job_id, ref.job_id, snapshot
        )
        return ref, snapshot_key, next_payment_date or ref.next_run_time, status

    async def _resume(self, replenishment: Replenishment, user_id: int) -> Replenishment:
        if replenishment.remaining_times == 0:
            raise InvalidStateTransitionError(
                f"Replenishment {replenishment.id} has no payments left to resume"
            )

        try:
            ref, snapshot_key, next_payment_date, status = (
                await self._reschedule_from_snapshot(replenishment, user_id)
            )
        except ScheduleExhaustedError as e:
            raise InvalidStateTransitionError(
                f"Replenishment {replenishment.id} has passed its end date"
            ) from e
        resumed = await self.replenishment_ops.update_replenishment(
            replenishment.id,
            ReplenishmentUpdate(
                status=status,
                next_job_id=snapshot_key,
                next_payment_date=next_payment_date,
            ),
            expected_version=replenishment.version,
        )
        logger.info(
            f"Resumed replenishment {resumed.id} as {status.value}",
            emoji=LogEmoji.RESUMED,
            extra_context={"replenishment_id": resumed.id, "next_job_id": ref.job_id},
        )
        return resumed

    async def remove(self, user_id: int, replenishment_id: int) -> None:
        """Hard-delete a replenishment together with its schedule and snapshot."""
        customer = await self._get_customer(user_id)
        replenishment = await self._get_owned_replenishment(customer, replenishment_id)

        self.engine.remove_schedule(replenishment.scheduler_id)
        await self.snapshot_store.delete(replenishment.next_job_id)
        await self.replenishment_ops.delete_replenishment(replenishment.id)

        logger.info(
            f"Removed replenishment {replenishment.id}",
            emoji=LogEmoji.DELETE,
            extra_context={"scheduler_id": replenishment.scheduler_id},
        )

    async def restore_schedules(self) -> int:
        """
        Rebuild engine schedules for every scheduled or active replenishment.

        Called once at startup because the engine keeps schedules in memory.
        Rows whose budget is used up, or that ran past their end date while
        the process was down, are finished instead. Rows whose snapshot is
        missing are reported and left alone.

        Returns:
            Number of schedules restored
        """
        replenishments = await self.replenishment_ops.get_schedulable_replenishments()
        restored = 0

        for replenishment in replenishments:
            if self.engine.has_schedule(replenishment.scheduler_id):
                continue
            try:
                if await self._restore_one(replenishment):
                    restored += 1
            except ReplenisherError as e:
                logger.error(
                    f"Could not restore schedule for replenishment {replenishment.id}",
                    exception=e,
                    error_context={"scheduler_id": replenishment.scheduler_id},
                )

        logger.info(
            f"Restored {restored} of {len(replenishments)} replenishment schedules",
            emoji=LogEmoji.RESTORE,
        )
        return restored

    async def _restore_one(self, replenishment: Replenishment) -> bool:
        """Reinstall one schedule; False when the row was finished instead."""
        if replenishment.remaining_times == 0 or (
            replenishment.end_date is not None and not is_future(replenishment.end_date)
        ):
            await self._finish_unscheduled(replenishment)
            return False

        customer = await self.customer_ops.get_customer_by_id(replenishment.customer_id)
        if customer is None:
            raise UserNotFoundError(replenishment.customer_id)

        try:
            _, snapshot_key, next_payment_date, _ = (
                await self._reschedule_from_snapshot(
                    replenishment,
                    customer.user_id,
                    preferred_start=replenishment.next_payment_date,
                )
            )
        except ScheduleExhaustedError:
            await self._finish_unscheduled(replenishment)
            return False

        await self.replenishment_ops.update_replenishment(
            replenishment.id,
            ReplenishmentUpdate(
                next_job_id=snapshot_key, next_payment_date=next_payment_date
            ),
            expected_version=replenishment.version,
        )
        return True

    async def _finish_unscheduled(self, replenishment: Replenishment) -> None:
        """Finish a row whose recurrence ended while no schedule was live."""
        await self.snapshot_store.delete(replenishment.next_job_id)
        await self.replenishment_ops.update_replenishment(
            replenishment.id,
            ReplenishmentUpdate(
                status=ReplenishmentStatus.FINISHED,
                next_payment_date=None,
                next_job_id=None,
            ),
            expected_version=replenishment.version,
        )
        logger.info(
            f"Replenishment {replenishment.id} ended while no schedule was live; "
            "marked finished",
            emoji=LogEmoji.PARTY,
            extra_context={
                "end_date": str(replenishment.end_date),
                "executions": replenishment.executions,
            },
        )
