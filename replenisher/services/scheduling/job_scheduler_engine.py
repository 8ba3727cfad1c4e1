# replenisher/services/scheduling/job_scheduler_engine.py
"""
Job Scheduler Engine - recurring schedules with durable-style semantics on
top of APScheduler.

APScheduler remains the execution engine (interval triggers, misfire
handling, one running instance per job). This wrapper adds what recurring
payments need on top of it:

- upsert semantics keyed by schedule id, returning the id of the next
  pending occurrence (repeat:{schedule_id}:{epoch_ms})
- an occurrence limit after which the schedule removes itself
- per-occurrence delivery with a configurable retry policy and an
  exhaustion callback once the retry budget is spent
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ...constants import REPEAT_JOB_ID_PREFIX
from ...enums import LogEmoji, LoggerName, LogSource, WorkerType
from ...models.retry_policy_model import RetryPolicy
from ...models.scheduling_model import (
    Occurrence,
    ReplenishmentJobPayload,
    ScheduledJobRef,
    ScheduleOptions,
)
from ...utils.time_utils import (
    UTC_TIMEZONE,
    ensure_utc,
    milliseconds_to_timedelta,
    to_epoch_milliseconds,
    utc_now,
)
from ..logger import get_service_logger

logger = get_service_logger(LoggerName.SCHEDULER_ENGINE, LogSource.SCHEDULER)

OccurrenceHandler = Callable[[Occurrence], Awaitable[Any]]
ExhaustedHandler = Callable[[Occurrence, BaseException], Awaitable[Any]]


def build_occurrence_job_id(schedule_id: str, run_time: datetime) -> str:
    """Job id of the occurrence of a schedule due at run_time."""
    return f"{REPEAT_JOB_ID_PREFIX}:{schedule_id}:{to_epoch_milliseconds(run_time)}"


@dataclass
class ScheduleState:
    """Engine-side bookkeeping for one installed schedule definition."""

    schedule_id: str
    options: ScheduleOptions
    payload: ReplenishmentJobPayload
    trigger: IntervalTrigger
    generation: int
    next_run_time: Optional[datetime]
    fired: int = 0


class JobSchedulerEngine:
    """
    Recurring job engine for replenishment payments.

    Usage:
        engine = JobSchedulerEngine(settings.retry_policy)
        engine.register_handler(worker.process_occurrence, worker.handle_exhausted)
        engine.start()
        ref = engine.upsert_schedule("scheduler-abc", options, payload)
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        misfire_grace_seconds: int = 300,
        queue_name: str = "payments-queue",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.retry_policy = retry_policy or RetryPolicy()
        self.scheduler = scheduler or AsyncIOScheduler(timezone=UTC_TIMEZONE)
        self.misfire_grace_seconds = misfire_grace_seconds
        self.queue_name = queue_name
        self.job_registry: Dict[str, Job] = {}
        self.schedule_states: Dict[str, ScheduleState] = {}
        self._handler: Optional[OccurrenceHandler] = None
        self._exhausted_handler: Optional[ExhaustedHandler] = None
        self._sleep = sleep
        self._generation = 0
        self._delivered = 0
        self._exhausted = 0

    # Lifecycle

    def register_handler(
        self,
        handler: OccurrenceHandler,
        on_exhausted: Optional[ExhaustedHandler] = None,
    ) -> None:
        """Register the occurrence handler and the retry-exhaustion callback."""
        self._handler = handler
        self._exhausted_handler = on_exhausted

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info(
                f"Job scheduler engine started for queue {self.queue_name}",
                emoji=LogEmoji.STARTUP,
            )

    def shutdown(self, wait: bool = False) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Job scheduler engine stopped", emoji=LogEmoji.SHUTDOWN)

    # Schedules

    def _build_trigger(self, options: ScheduleOptions) -> IntervalTrigger:
        period = milliseconds_to_timedelta(options.every_ms)
        return IntervalTrigger(
            seconds=period.total_seconds(),
            start_date=ensure_utc(options.start_date),
            end_date=ensure_utc(options.end_date),
            timezone=UTC_TIMEZONE,
        )

    def upsert_schedule(
        self,
        schedule_id: str,
        options: ScheduleOptions,
        payload: ReplenishmentJobPayload,
    ) -> Optional[ScheduledJobRef]:
        """
        Install or replace the recurring schedule under schedule_id.

        With no start date the first occurrence is due one period from now.

        Returns:
            Reference to the next pending occurrence, or None when the
            trigger has no future occurrence (e.g. end date already passed)
        """
        trigger = self._build_trigger(options)
        first_run = trigger.get_next_fire_time(None, utc_now())

        if first_run is None:
            self.remove_schedule(schedule_id)
            logger.warning(
                f"Schedule {schedule_id} has no future occurrence; not installed",
                extra_context={"end_date": str(options.end_date)},
            )
            return None

        self._generation += 1
        state = ScheduleState(
            schedule_id=schedule_id,
            options=options,
            payload=payload,
            trigger=trigger,
            generation=self._generation,
            next_run_time=first_run,
        )

        # replace_existing does not dedupe jobs queued before start()
        if schedule_id in self.job_registry:
            try:
                self.scheduler.remove_job(schedule_id)
            except JobLookupError:
                pass

        job = self.scheduler.add_job(
            func=self._run_occurrence,
            trigger=trigger,
            id=schedule_id,
            name=f"{self.queue_name}:{schedule_id}",
            args=[schedule_id, state.generation],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_seconds,
        )
        self.job_registry[schedule_id] = job
        self.schedule_states[schedule_id] = state

        job_id = build_occurrence_job_id(schedule_id, first_run)
        logger.debug(
            f"Upserted schedule {schedule_id}, next occurrence {job_id}",
            emoji=LogEmoji.SCHEDULER,
            extra_context={"every_ms": options.every_ms, "limit": options.limit},
        )
        return ScheduledJobRef(job_id=job_id, next_run_time=first_run)

    def remove_schedule(self, schedule_id: str) -> bool:
        """Remove a schedule. Removing an unknown schedule is not an error."""
        removed = False
        if schedule_id in self.job_registry:
            try:
                self.scheduler.remove_job(schedule_id)
            except JobLookupError:
                # APScheduler already dropped the job after its trigger ended
                pass
            del self.job_registry[schedule_id]
            removed = True

        state = self.schedule_states.get(schedule_id)
        if state is not None:
            state.next_run_time = None

        if removed:
            logger.debug(f"Removed schedule {schedule_id}", emoji=LogEmoji.DELETE)
        return removed

    def has_schedule(self, schedule_id: str) -> bool:
        return schedule_id in self.job_registry

    def get_next_run_time(self, schedule_id: str) -> Optional[datetime]:
        if schedule_id not in self.job_registry:
            return None

        # Tracked here rather than read from the APScheduler job: pending
        # jobs (scheduler not started) carry no computed run time
        state = self.schedule_states.get(schedule_id)
        return state.next_run_time if state else None

    def get_next_job_id(self, schedule_id: str) -> Optional[str]:
        """Id of the next pending occurrence, None when nothing is pending."""
        next_run_time = self.get_next_run_time(schedule_id)
        if next_run_time is None:
            return None
        return build_occurrence_job_id(schedule_id, next_run_time)

    # Delivery

    async def _run_occurrence(self, schedule_id: str, generation: int) -> None:
        """APScheduler entry point for one firing of a schedule."""
        state = self.schedule_states.get(schedule_id)
        if state is None or state.generation != generation:
            logger.warning(f"Ignoring stale firing of schedule {schedule_id}")
            return

        now = utc_now()
        scheduled_for = state.next_run_time or now
        state.fired += 1
        state.next_run_time = self._following_run_time(state, scheduled_for, now)

        if state.options.limit is not None and state.fired >= state.options.limit:
            self.remove_schedule(schedule_id)
        elif state.next_run_time is None:
            self.job_registry.pop(schedule_id, None)

        occurrence = Occurrence(
            job_id=build_occurrence_job_id(schedule_id, scheduled_for),
            schedule_id=schedule_id,
            sequence=state.fired,
            generation=state.generation,
            scheduled_for=scheduled_for,
            payload=state.payload,
        )
        await self.deliver(occurrence)

    def _following_run_time(
        self, state: ScheduleState, scheduled_for: datetime, now: datetime
    ) -> Optional[datetime]:
        """Next run after the firing due at scheduled_for."""
        if self.scheduler.running:
            # APScheduler advances the job before the coroutine runs
            job = self.scheduler.get_job(state.schedule_id)
            return job.next_run_time if job is not None else None

        # Coalesced: runs missed while stalled collapse into this one
        next_run = state.trigger.get_next_fire_time(scheduled_for, now)
        while next_run is not None and next_run <= now:
            next_run = state.trigger.get_next_fire_time(next_run, now)
        return next_run

    def get_generation(self, schedule_id: str) -> Optional[int]:
        """Generation of the schedule definition currently installed under schedule_id."""
        state = self.schedule_states.get(schedule_id)
        return state.generation if state else None

    def advance_baseline(self, schedule_id: str, generation: int) -> None:
        """
        Account for a payment recorded outside the given schedule definition.

        Used when an occurrence of a replaced definition is recorded after
        the replacement was installed: the replacement's baseline was taken
        before that payment landed.
        """
        state = self.schedule_states.get(schedule_id)
        if state is None or state.generation != generation:
            return
        baseline = state.payload.baseline_executions + 1
        state.payload = state.payload.model_copy(
            update={"baseline_executions": baseline}
        )
        logger.debug(
            f"Advanced baseline of schedule {schedule_id} to {baseline}",
            emoji=LogEmoji.SCHEDULER,
        )

    async def deliver(self, occurrence: Occurrence) -> bool:
        """
        Deliver one occurrence to the handler under the retry policy.

        Returns:
            True when the handler succeeded, False when retries were exhausted
        """
        if self._handler is None:
            raise RuntimeError("No occurrence handler registered")

        policy = self.retry_policy
        last_error: Optional[BaseException] = None
        attempt_occurrence = occurrence

        for attempt in range(1, policy.attempts + 1):
            attempt_occurrence = occurrence.model_copy(update={"attempt": attempt})
            try:
                await self._handler(attempt_occurrence)
                self._delivered += 1
                return True
            except Exception as e:
                last_error = e
                if attempt < policy.attempts:
                    delay = policy.delay_seconds(attempt)
                    logger.warning(
                        f"Occurrence {occurrence.job_id} attempt {attempt}/"
                        f"{policy.attempts} failed: {e}; retrying in {delay:.1f}s",
                        emoji=LogEmoji.PROCESSING,
                    )
                    await self._sleep(delay)

        self._exhausted += 1
        logger.error(
            f"Occurrence {occurrence.job_id} failed after {policy.attempts} attempts",
            exception=last_error,
            error_context={"schedule_id": occurrence.schedule_id},
        )
        if self._exhausted_handler is not None and last_error is not None:
            await self._exhausted_handler(attempt_occurrence, last_error)
        return False

    # Status

    def get_status(self) -> Dict[str, Any]:
        return {
            "worker_type": WorkerType.SCHEDULER_ENGINE.value,
            "queue_name": self.queue_name,
            "scheduler_running": self.running,
            "job_registry_size": len(self.job_registry),
            "schedule_ids": list(self.job_registry.keys()),
            "delivered_occurrences": self._delivered,
            "exhausted_occurrences": self._exhausted,
            "retry_policy": self.retry_policy.model_dump(mode="json"),
        }

    def get_health(self) -> Dict[str, Any]:
        return {
            "healthy": self.running and self._handler is not None,
            "scheduler_running": self.running,
            "handler_registered": self._handler is not None,
        }
