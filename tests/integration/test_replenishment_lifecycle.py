"""
Replenishment lifecycle integration tests.

Runs the scheduler, engine, worker and snapshot store together over the
in-memory row store and fake Redis. Occurrences are fired by hand through the
engine so no wall-clock waiting is involved.
"""

from datetime import timedelta, timezone

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from replenisher.enums import Currency, RecurrenceUnit, ReplenishmentStatus
from replenisher.services.replenishment_scheduler import ReplenishmentScheduler
from replenisher.services.scheduling.job_scheduler_engine import JobSchedulerEngine
from replenisher.workers.replenishment_worker import ReplenishmentWorker
from tests.conftest import USER_ID, future


async def _fire(engine, schedule_id):
    state = engine.schedule_states[schedule_id]
    await engine._run_occurrence(schedule_id, state.generation)


@pytest.mark.integration
class TestReplenishmentLifecycle:
    @pytest.mark.asyncio
    async def test_runs_to_completion(
        self,
        worker,
        scheduler,
        engine,
        order_data,
        replenishment_ops,
        snapshot_store,
        payment_processor,
        fake_redis,
    ):
        replenishment = await scheduler.create(
            USER_ID, order_data, 1, RecurrenceUnit.WEEK, times=3
        )

        for _ in range(3):
            await _fire(engine, replenishment.scheduler_id)

        row = replenishment_ops.rows[replenishment.id]
        assert row.status == ReplenishmentStatus.FINISHED
        assert row.executions == 3
        assert row.next_job_id is None
        assert row.next_payment_date is None
        assert not engine.has_schedule(replenishment.scheduler_id)
        assert fake_redis.data == {}
        assert len(payment_processor.calls) == 3
        assert len(replenishment_ops.payments) == 3

        keys = [call["idempotency_key"] for call in payment_processor.calls]
        assert len(set(keys)) == 3

    @pytest.mark.asyncio
    async def test_cancel_and_resume_mid_run(
        self, worker, scheduler, engine, order_data, replenishment_ops, snapshot_store
    ):
        replenishment = await scheduler.create(
            USER_ID, order_data, 1, RecurrenceUnit.DAY, times=3
        )
        await _fire(engine, replenishment.scheduler_id)

        canceled = await scheduler.toggle_cancel_status(USER_ID, replenishment.id)
        assert canceled.status == ReplenishmentStatus.CANCELED
        assert not engine.has_schedule(replenishment.scheduler_id)
        assert await snapshot_store.exists(canceled.next_job_id)

        resumed = await scheduler.toggle_cancel_status(USER_ID, replenishment.id)
        assert resumed.status == ReplenishmentStatus.ACTIVE
        assert engine.has_schedule(replenishment.scheduler_id)

        # The resumed schedule only covers the two remaining payments
        await _fire(engine, replenishment.scheduler_id)
        await _fire(engine, replenishment.scheduler_id)

        row = replenishment_ops.rows[replenishment.id]
        assert row.status == ReplenishmentStatus.FINISHED
        assert row.executions == 3

    @pytest.mark.asyncio
    async def test_update_keeps_counting_payments(
        self, worker, scheduler, engine, order_data, replenishment_ops, payment_processor
    ):
        replenishment = await scheduler.create(
            USER_ID, order_data, 1, RecurrenceUnit.DAY, times=2
        )
        await _fire(engine, replenishment.scheduler_id)

        new_data = order_data.model_copy(update={"shipping_country": "FR"})
        updated = await scheduler.update(
            USER_ID, replenishment.id, new_data, 2, RecurrenceUnit.WEEK, times=3
        )
        assert updated.executions == 1
        assert updated.unit == RecurrenceUnit.WEEK

        await _fire(engine, replenishment.scheduler_id)
        await _fire(engine, replenishment.scheduler_id)

        row = replenishment_ops.rows[replenishment.id]
        assert row.status == ReplenishmentStatus.FINISHED
        assert row.executions == 3
        assert payment_processor.calls[-1]["payload"].shipping_country == "FR"

    @pytest.mark.asyncio
    async def test_schedules_survive_restart(
        self,
        worker,
        scheduler,
        engine,
        order_data,
        replenishment_ops,
        customer_ops,
        snapshot_store,
        payment_processor,
        sleep_mock,
        retry_policy,
    ):
        replenishment = await scheduler.create(
            USER_ID, order_data, 1, RecurrenceUnit.DAY, starting=future(days=2)
        )

        # A fresh process: new engine, scheduler and worker over the same stores
        restarted_engine = JobSchedulerEngine(
            retry_policy=retry_policy,
            scheduler=AsyncIOScheduler(timezone=timezone.utc),
            sleep=sleep_mock,
        )
        restarted_scheduler = ReplenishmentScheduler(
            replenishment_ops=replenishment_ops,
            customer_ops=customer_ops,
            snapshot_store=snapshot_store,
            engine=restarted_engine,
            shipping_method="next-day",
            resume_currency=Currency.EUR,
        )
        restarted_worker = ReplenishmentWorker(
            replenishment_ops=replenishment_ops,
            snapshot_store=snapshot_store,
            engine=restarted_engine,
            payment_processor=payment_processor,
        )
        restarted_engine.register_handler(
            restarted_worker.process_occurrence, restarted_worker.handle_exhausted
        )

        assert await restarted_scheduler.restore_schedules() == 1
        assert restarted_engine.has_schedule(replenishment.scheduler_id)
        assert await restarted_scheduler.restore_schedules() == 0

        row = replenishment_ops.rows[replenishment.id]
        assert row.next_payment_date == replenishment.start_date
        assert await snapshot_store.exists(row.next_job_id)

        await _fire(restarted_engine, replenishment.scheduler_id)

        row = replenishment_ops.rows[replenishment.id]
        assert row.executions == 1
        assert row.status == ReplenishmentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_payment_failures_mark_failed(
        self, worker, scheduler, engine, order_data, replenishment_ops, fake_redis,
        payment_processor, sleep_mock,
    ):
        payment_processor.failures = 10
        replenishment = await scheduler.create(
            USER_ID, order_data, 1, RecurrenceUnit.MONTH, expiry=future(days=365)
        )

        await _fire(engine, replenishment.scheduler_id)

        row = replenishment_ops.rows[replenishment.id]
        assert row.status == ReplenishmentStatus.FAILED
        assert row.executions == 0
        assert not engine.has_schedule(replenishment.scheduler_id)
        assert fake_redis.data == {}
        assert sleep_mock.await_count == 2
