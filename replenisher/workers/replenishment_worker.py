"""
Replenishment worker - executes due occurrences of recurring orders.

Registered with the job scheduler engine as the occurrence handler and the
retry-exhaustion callback. Delivery is at-least-once, so processing an
occurrence must be safe to repeat: before charging, the worker checks
whether the occurrence has already been recorded on the row.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from ..config import settings
from ..constants import MANAGE_REPLENISHMENTS_PATH, SCHEDULABLE_STATUSES
from ..database.replenishment_operations import ReplenishmentOperations
from ..enums import (
    LogEmoji,
    LoggerName,
    LogSource,
    NoticeKind,
    ReplenishmentEndReason,
    ReplenishmentStatus,
    WorkerType,
)
from ..exceptions import ConcurrentModificationError, NotificationError, OrphanedJobError
from ..models.notification_model import ReplenishmentNotice
from ..models.replenishment_model import OrderSnapshot, Replenishment, ReplenishmentUpdate
from ..models.scheduling_model import Occurrence, OrderResult
from ..services.checkout_client import PaymentOrderProcessor
from ..services.logger import get_service_logger
from ..services.notification_client import (
    HttpReplenishmentNotifier,
    ReplenishmentNotifier,
)
from ..services.scheduling.job_scheduler_engine import JobSchedulerEngine
from ..services.snapshot_store import SnapshotStore
from ..utils.recurrence import next_due_instant
from ..utils.time_utils import utc_now
from .base_worker import BaseWorker

logger = get_service_logger(LoggerName.REPLENISHMENT_WORKER, LogSource.WORKER)

# Re-reads allowed when a user edit races the payment bookkeeping write
MAX_RECORD_ATTEMPTS = 3


class ReplenishmentWorker(BaseWorker):
    """
    Charges the customer for each due occurrence and advances the row.

    Success path: payment and order via the checkout collaborator, then
    last_payment_date/executions/order_id on the row (which also writes the
    payment audit row), then either finish (budget or end date reached) or
    move the snapshot to the next pending occurrence.
    """

    def __init__(
        self,
        replenishment_ops: ReplenishmentOperations,
        snapshot_store: SnapshotStore,
        engine: JobSchedulerEngine,
        payment_processor: PaymentOrderProcessor,
        notifier: Optional[ReplenishmentNotifier] = None,
    ) -> None:
        super().__init__("ReplenishmentWorker")
        self.replenishment_ops = replenishment_ops
        self.snapshot_store = snapshot_store
        self.engine = engine
        self.payment_processor = payment_processor
        self.notifier = notifier or HttpReplenishmentNotifier()
        self.processed_count = 0
        self.skipped_count = 0
        self.failed_count = 0

    async def initialize(self) -> None:
        self.engine.register_handler(self.process_occurrence, self.handle_exhausted)
        logger.info("Replenishment worker registered with engine", emoji=LogEmoji.WORKER)

    async def cleanup(self) -> None:
        logger.info("Replenishment worker stopped", emoji=LogEmoji.SHUTDOWN)

    async def _load(self, replenishment_id: int) -> Replenishment:
        replenishment = await self.replenishment_ops.get_replenishment_by_id(
            replenishment_id
        )
        if replenishment is None:
            raise OrphanedJobError(
                f"Occurrence fired for missing replenishment {replenishment_id}"
            )
        return replenishment

    @staticmethod
    def _already_recorded(replenishment: Replenishment, occurrence: Occurrence) -> bool:
        """True when the row's executions already account for this occurrence."""
        expected_prior = (
            occurrence.payload.baseline_executions + occurrence.sequence - 1
        )
        return replenishment.executions > expected_prior

    def _skip_reason(
        self, replenishment: Replenishment, occurrence: Occurrence
    ) -> Optional[str]:
        if replenishment.status not in SCHEDULABLE_STATUSES:
            return f"status is {replenishment.status.value}"
        if self._already_recorded(replenishment, occurrence):
            return "occurrence already recorded"
        if (
            replenishment.times is not None
            and replenishment.executions >= replenishment.times
        ):
            return "payment budget already used"
        return None

    async def process_occurrence(self, occurrence: Occurrence) -> None:
        """
        Handle one delivery attempt of a due occurrence.

        Raises:
            OrphanedJobError: The replenishment no longer exists
            PaymentError: The charge failed; the engine retries the occurrence
        """
        payload = occurrence.payload
        replenishment = await self._load(payload.replenishment_id)

        skip_reason = self._skip_reason(replenishment, occurrence)
        if skip_reason:
            self.skipped_count += 1
            logger.info(
                f"Skipping occurrence {occurrence.job_id}: {skip_reason}",
                extra_context={"replenishment_id": replenishment.id},
            )
            return

        logger.debug(
            f"Processing occurrence {occurrence.job_id} (attempt {occurrence.attempt})",
            emoji=LogEmoji.PROCESSING,
        )
        result = await self.payment_processor.process_payment_and_create_order(
            payload.user_id, payload, idempotency_key=occurrence.job_id
        )

        updated = await self._record_payment(occurrence, result, utc_now())
        self.processed_count += 1
        await self._notify(self._payment_notice(updated, occurrence, result))

    async def _record_payment(
        self, occurrence: Occurrence, result: OrderResult, paid_at: datetime
    ) -> Replenishment:
        """Write the payment bookkeeping, re-reading the row on a version conflict."""
        attempt = 1
        while True:
            replenishment = await self._load(occurrence.payload.replenishment_id)
            try:
                return await self._apply_payment(
                    replenishment, occurrence, result, paid_at
                )
            except ConcurrentModificationError:
                if attempt >= MAX_RECORD_ATTEMPTS:
                    raise
                attempt += 1
                logger.warning(
                    f"Replenishment {replenishment.id} changed while recording "
                    f"occurrence {occurrence.job_id}; retrying"
                )

    async def _apply_payment(
        self,
        replenishment: Replenishment,
        occurrence: Occurrence,
        result: OrderResult,
        paid_at: datetime,
    ) -> Replenishment:
        executions = replenishment.executions + 1
        changes = ReplenishmentUpdate(
            last_payment_date=paid_at,
            executions=executions,
            order_id=result.order_id,
        )

        # Canceled while charging: record the payment, leave scheduling alone
        if replenishment.status not in SCHEDULABLE_STATUSES:
            return await self.replenishment_ops.update_replenishment(
                replenishment.id, changes, expected_version=replenishment.version
            )

        budget_reached = (
            replenishment.times is not None and executions >= replenishment.times
        )

        # The schedule was replaced (update or resume) after this occurrence
        # fired; the replacement owns the snapshot and the next payment date
        current_generation = self.engine.get_generation(occurrence.schedule_id)
        superseded = (
            current_generation is not None
            and current_generation != occurrence.generation
        )
        if superseded and not budget_reached:
            updated = await self.replenishment_ops.update_replenishment(
                replenishment.id, changes, expected_version=replenishment.version
            )
            self.engine.advance_baseline(occurrence.schedule_id, current_generation)
            logger.info(
                f"Recorded payment {executions} for replenishment {updated.id} "
                f"against a replaced schedule",
                emoji=LogEmoji.PAYMENT,
                extra_context={"job_id": occurrence.job_id},
            )
            return updated

        payload = occurrence.payload
        next_payment_date = next_due_instant(paid_at, payload.period, now=paid_at)
        next_job_id = self.engine.get_next_job_id(occurrence.schedule_id)

        past_end = (
            replenishment.end_date is not None
            and next_payment_date is not None
            and next_payment_date > replenishment.end_date
        )

        if budget_reached or past_end or next_job_id is None:
            self.engine.remove_schedule(occurrence.schedule_id)
            await self.snapshot_store.delete(replenishment.next_job_id)
            changes.status = ReplenishmentStatus.FINISHED
            changes.next_payment_date = None
            changes.next_job_id = None
            updated = await self.replenishment_ops.update_replenishment(
                replenishment.id, changes, expected_version=replenishment.version
            )
            logger.info(
                f"Replenishment {updated.id} finished after {executions} payments",
                emoji=LogEmoji.PARTY,
            )
            return updated

        snapshot = OrderSnapshot(
            **payload.model_dump(
                include={
                    "order_items",
                    "payment_method",
                    "shipping_country",
                    "payment_method_id",
                    "currency",
                }
            )
        )
        snapshot_key = await self.snapshot_store.rotate(
            replenishment.next_job_id, next_job_id, snapshot
        )
        changes.status = ReplenishmentStatus.ACTIVE
        changes.next_payment_date = next_payment_date
        changes.next_job_id = snapshot_key
        updated = await self.replenishment_ops.update_replenishment(
            replenishment.id, changes, expected_version=replenishment.version
        )
        logger.info(
            f"Recorded payment {executions} for replenishment {updated.id}, "
            f"order {result.order_id}",
            emoji=LogEmoji.PAYMENT,
            extra_context={"next_job_id": snapshot_key},
        )
        return updated

    async def handle_exhausted(
        self, occurrence: Occurrence, error: BaseException
    ) -> None:
        """
        Terminal failure of an occurrence after the retry budget is spent.

        The replenishment is marked failed and its schedule and snapshot are
        torn down. A failed replenishment never resumes on its own.
        """
        self.failed_count += 1
        self.engine.remove_schedule(occurrence.schedule_id)

        replenishment = await self.replenishment_ops.get_replenishment_by_id(
            occurrence.payload.replenishment_id
        )
        if replenishment is None:
            logger.warning(
                f"Exhausted occurrence {occurrence.job_id} has no replenishment; "
                "schedule removed"
            )
            return
        if replenishment.status not in SCHEDULABLE_STATUSES:
            logger.warning(
                f"Exhausted occurrence {occurrence.job_id} ignored: replenishment "
                f"{replenishment.id} is {replenishment.status.value}"
            )
            return

        await self.snapshot_store.delete(replenishment.next_job_id)
        failed = await self.replenishment_ops.update_replenishment(
            replenishment.id,
            ReplenishmentUpdate(
                status=ReplenishmentStatus.FAILED,
                next_payment_date=None,
                next_job_id=None,
            ),
        )
        logger.error(
            f"Replenishment {replenishment.id} failed: {error}",
            emoji=LogEmoji.PAYMENT,
            error_context={
                "replenishment_id": replenishment.id,
                "job_id": occurrence.job_id,
                "attempts": occurrence.attempt,
            },
        )
        await self._notify(
            ReplenishmentNotice(
                kind=NoticeKind.PAYMENT_FAILED,
                user_id=occurrence.payload.user_id,
                replenishment_id=failed.id,
                end_date=failed.end_date,
                times=failed.times,
                manage_link=self._manage_link(),
            )
        )

    @staticmethod
    def _manage_link() -> str:
        return settings.client_url.rstrip("/") + MANAGE_REPLENISHMENTS_PATH

    def _payment_notice(
        self, replenishment: Replenishment, occurrence: Occurrence, result: OrderResult
    ) -> ReplenishmentNotice:
        end_reason = None
        if replenishment.status == ReplenishmentStatus.FINISHED:
            if (
                replenishment.times is not None
                and replenishment.executions >= replenishment.times
            ):
                end_reason = ReplenishmentEndReason.BUDGET_REACHED
            else:
                end_reason = ReplenishmentEndReason.EXPIRED

        return ReplenishmentNotice(
            kind=NoticeKind.PAYMENT_SUCCEEDED,
            user_id=occurrence.payload.user_id,
            replenishment_id=replenishment.id,
            order_id=result.order_id,
            next_payment_date=replenishment.next_payment_date,
            end_reason=end_reason,
            end_date=replenishment.end_date,
            times=replenishment.times,
            manage_link=self._manage_link(),
        )

    async def _notify(self, notice: ReplenishmentNotice) -> None:
        """Deliver a notice; a notification outage never fails the occurrence."""
        try:
            await self.notifier.send(notice)
        except NotificationError as e:
            logger.warning(
                f"Could not notify user {notice.user_id} about replenishment "
                f"{notice.replenishment_id}: {e}",
                extra_context={"kind": notice.kind.value},
            )

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(
            {
                "worker_type": WorkerType.REPLENISHMENT_WORKER.value,
                "processed_occurrences": self.processed_count,
                "skipped_occurrences": self.skipped_count,
                "failed_replenishments": self.failed_count,
                "engine": self.engine.get_status(),
            }
        )
        return status

    def get_health(self) -> Dict[str, Any]:
        engine_health = self.engine.get_health()
        return {
            "healthy": self.running and engine_health["healthy"],
            "name": self.name,
            "engine": engine_health,
        }
