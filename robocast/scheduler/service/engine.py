"""Schedule engine: ties the trigger registry, executor and stores together.

The engine is the only entry point callers use to change jobs. Every
mutation runs under one asyncio lock, and startup reconciliation holds the
same lock, so no add/cancel/reschedule can interleave with the rebuild of
the registry. Firings never take the lock.
"""
import asyncio
from datetime import datetime
from typing import Callable

from loguru import logger

from ..errors import InvalidScheduleError, PersistenceError, SchedulerError
from ..executor import Dispatcher, ExecutionOrchestrator
from ..models import Job, JobCreate
from ..registry import TriggerRegistry
from ..schedule import utcnow, validate_schedule
from ..triggers import APSchedulerTrigger, Trigger
from ..types import (
    ActiveJob,
    EngineStatus,
    ExecutionRecord,
    MessagePayload,
    OneTimeSchedule,
    Schedule,
)
from .store import ExecutionHistory, JobStore

logger = logger.bind(module="scheduler.engine")


class ScheduleEngine:
    """Owns live triggers for persisted jobs and exposes the mutation API."""

    def __init__(
        self,
        store: JobStore,
        history: ExecutionHistory,
        dispatcher: Dispatcher,
        trigger: Trigger | None = None,
        clock: Callable[[], datetime] = utcnow,
        failure_warning_threshold: int = 5,
    ):
        """Initialize the engine.

        Args:
            store: Durable job rows
            history: Execution record log
            dispatcher: Delivers payloads to targets
            trigger: Timer/cron backend (APScheduler by default)
            clock: Source of the current time
            failure_warning_threshold: Failures in 24h above which the
                health check logs a warning
        """
        self.store = store
        self.history = history
        self.dispatcher = dispatcher
        self.registry = TriggerRegistry(trigger or APSchedulerTrigger(), clock=clock)
        self.executor = ExecutionOrchestrator(
            self.registry, store, history, dispatcher, clock=clock
        )
        self.failure_warning_threshold = failure_warning_threshold
        self._clock = clock
        self._lock = asyncio.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # ============== Lifecycle ==============

    async def start(self) -> int:
        """Open the stores, start the trigger backend and re-arm active jobs.

        Returns:
            Number of jobs armed
        """
        async with self._lock:
            if self._running:
                return len(self.registry)

            await self.store.initialize()
            await self.history.initialize()
            self.registry.trigger.start()
            self._running = True

            armed = await self._reconcile()
            logger.info(f"Initialized {armed} scheduled jobs")
            return armed

    async def stop(self) -> None:
        async with self._lock:
            if not self._running:
                return
            cleared = self.registry.clear()
            self.registry.trigger.shutdown()
            await self.store.close()
            await self.history.close()
            self._running = False
            logger.info(f"Scheduler stopped, {cleared} triggers released")

    async def _reconcile(self) -> int:
        """Arm every active job. Overdue one-time jobs fire immediately."""
        armed = 0
        for job in await self.store.load_active_jobs():
            self.registry.disarm(job.id)
            try:
                self.registry.arm(job, self.executor.fire)
                armed += 1
            except SchedulerError as e:
                logger.error(f"Could not re-arm job {job.id}: {e}")
        return armed

    # ============== Mutation API ==============

    async def add(self, request: JobCreate) -> Job:
        """Persist a new active job and arm it.

        Raises:
            InvalidScheduleError: cron malformed or time not in the future
        """
        validate_schedule(request.schedule, self._clock())
        async with self._lock:
            job = await self.store.create(request)
            self.registry.arm(job, self.executor.fire)
        logger.info(f"Added scheduled job {job.id} for target {job.target}")
        return job

    async def cancel(self, job_id: str) -> bool:
        """Mark a job inactive, then disarm it.

        Returns:
            False if the job was already inactive

        Raises:
            NotFoundError: unknown job id
            PersistenceError: the row could not be updated; the trigger is
                left live
        """
        async with self._lock:
            job = await self.store.get(job_id)
            if not job.active:
                self.registry.disarm(job_id)
                return False
            await self.store.update(job_id, active=False)
            self.registry.disarm(job_id)
        logger.info(f"Cancelled scheduled job {job_id}")
        return True

    async def reschedule(self, job_id: str, schedule: Schedule) -> Job:
        """Replace a job's schedule, switching kind if needed, and re-arm it.

        The old trigger is disarmed before the new one is armed, so the two
        are never live together.

        Raises:
            NotFoundError: unknown job id
            InvalidScheduleError: the new schedule is rejected; the old
                trigger is left untouched
            PersistenceError: the row could not be updated; the old trigger
                is restored
        """
        async with self._lock:
            return await self._apply_update(job_id, schedule=schedule)

    async def update_payload(self, job_id: str, payload: MessagePayload) -> Job:
        """Replace a job's message content.

        An active job is re-armed so the next firing carries the new payload.
        """
        async with self._lock:
            return await self._apply_update(job_id, payload=payload)

    async def update_job(
        self,
        job_id: str,
        payload: MessagePayload | None = None,
        schedule: Schedule | None = None,
    ) -> Job:
        """Change the payload, the schedule or both in one step.

        The schedule is validated before anything is written, and both
        fields are stored by a single update.
        """
        async with self._lock:
            return await self._apply_update(job_id, payload=payload, schedule=schedule)

    async def _apply_update(
        self,
        job_id: str,
        payload: MessagePayload | None = None,
        schedule: Schedule | None = None,
    ) -> Job:
        """Write the changed fields and bring the trigger in line. Caller holds the lock."""
        current = await self.store.get(job_id)
        if schedule is not None:
            validate_schedule(schedule, self._clock())

        fields: dict = {}
        if payload is not None:
            fields["payload"] = payload
        if schedule is None:
            if not fields:
                return current
            job = await self.store.update(job_id, **fields)
            self._rearm_for_payload(job)
            logger.info(f"Updated payload of job {job_id}")
            return job

        fields["schedule"] = schedule
        fields["active"] = True
        was_armed = self.registry.disarm(job_id)
        try:
            job = await self.store.update(job_id, **fields)
        except PersistenceError:
            if was_armed:
                # Keep the row and the registry agreeing on the old schedule
                self.registry.arm(current, self.executor.fire)
            raise
        self.registry.arm(job, self.executor.fire)
        logger.info(f"Rescheduled job {job_id}")
        return job

    def _rearm_for_payload(self, job: Job) -> None:
        if not job.active or job.id not in self.registry:
            return
        schedule = job.schedule
        if isinstance(schedule, OneTimeSchedule) and schedule.at <= self._clock():
            # The single firing is already under way
            return
        self.registry.disarm(job.id)
        try:
            self.registry.arm(job, self.executor.fire)
        except InvalidScheduleError as e:
            logger.error(f"Could not re-arm job {job.id} after payload update: {e}")

    # ============== Queries ==============

    async def get_job(self, job_id: str) -> Job:
        return await self.store.get(job_id)

    async def list_jobs(
        self,
        target: str | None = None,
        active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        return await self.store.list_jobs(
            target=target, active=active, limit=limit, offset=offset
        )

    def count_active(self) -> int:
        """Number of jobs with a live trigger."""
        return len(self.registry)

    def list_active(self) -> list[ActiveJob]:
        """Jobs with a live trigger, with when and how each was armed."""
        return [
            ActiveJob(
                job_id=h.job_id,
                kind=h.kind,
                armed_at=h.armed_at,
                run_at=h.run_at,
                expression=h.expression,
                immediate=h.immediate,
            )
            for h in self.registry.handles()
        ]

    async def get_history(
        self,
        job_id: str | None = None,
        target: str | None = None,
        limit: int = 10,
    ) -> list[ExecutionRecord]:
        return await self.history.get_records(job_id=job_id, target=target, limit=limit)

    async def get_failed(self, hours: float = 24) -> list[ExecutionRecord]:
        return await self.history.get_failed(hours=hours)

    async def health_check(self) -> EngineStatus:
        """Snapshot of trigger count, dispatcher targets and recent failures."""
        failures = await self.get_failed(hours=24)
        status = EngineStatus(
            running=self._running,
            active_triggers=self.count_active(),
            dispatcher_targets=self.dispatcher.target_count(),
            recent_failures=len(failures),
            checked_at=self._clock(),
        )
        if status.recent_failures > self.failure_warning_threshold:
            logger.warning(
                f"High failure rate: {status.recent_failures} failed posts in last 24 hours"
            )
        return status
