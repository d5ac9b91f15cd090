"""Trigger registry: the live mapping from job id to its armed trigger.

At most one trigger exists per job id. Arming an id that is already armed
raises AlreadyArmedError; callers disarm first. Every arming gets a fresh
token, and firing callbacks receive that token together with a snapshot of
the job, so a firing that started before a reschedule can tell that it no
longer owns the job's trigger.
"""
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from uuid import uuid4

from loguru import logger

from .errors import AlreadyArmedError, InvalidScheduleError
from .models import Job
from .schedule import utcnow, validate_cron_expression
from .triggers import FireCallback, Trigger
from .types import OneTimeSchedule, RecurringSchedule, ScheduleKind

logger = logger.bind(module="scheduler.registry")


@dataclass(frozen=True)
class TriggerHandle:
    """A live trigger for one job."""
    job_id: str
    kind: ScheduleKind
    token: str
    armed_at: datetime
    run_at: datetime | None = None   # one-time jobs only
    expression: str | None = None    # recurring jobs only
    immediate: bool = False          # overdue one-time job fired without a timer
    key: str = ""                    # id of the job inside the trigger backend


class TriggerRegistry:
    """Owns armed triggers for the lifetime of the process.

    Thread-safety: every arm/disarm runs under one lock. None of them awaits
    or performs I/O, so holding the lock is always short.
    """

    def __init__(
        self,
        trigger: Trigger,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._trigger = trigger
        self._clock = clock
        self._handles: dict[str, TriggerHandle] = {}
        self._lock = threading.Lock()

    @property
    def trigger(self) -> Trigger:
        return self._trigger

    def arm(self, job: Job, on_fire: FireCallback) -> TriggerHandle:
        """Arm a trigger for `job` that calls `on_fire(snapshot, token)`.

        Raises:
            AlreadyArmedError: a trigger is already live for this job id
            InvalidScheduleError: the recurring expression is malformed
        """
        schedule = job.schedule
        with self._lock:
            if job.id in self._handles:
                raise AlreadyArmedError(job.id)

            token = uuid4().hex
            key = f"{job.id}:{token}"
            now = self._clock()
            args = (job.snapshot(), token)

            if isinstance(schedule, RecurringSchedule):
                if not validate_cron_expression(schedule.expression):
                    raise InvalidScheduleError(
                        f"Invalid cron expression: {schedule.expression!r}"
                    )
                self._trigger.arm_cron(key, schedule.expression, on_fire, args)
                handle = TriggerHandle(
                    job_id=job.id,
                    kind=ScheduleKind.RECURRING,
                    token=token,
                    armed_at=now,
                    expression=schedule.expression,
                    key=key,
                )
                logger.info(f"Armed recurring job {job.id} with cron: {schedule.expression}")

            elif isinstance(schedule, OneTimeSchedule):
                delay = (schedule.at - now).total_seconds()
                if delay <= 0:
                    logger.info(
                        f"Job {job.id} is past due by {-delay:.1f}s, firing immediately"
                    )
                    self._trigger.fire_now(key, on_fire, args)
                else:
                    self._trigger.arm_once(key, schedule.at, on_fire, args)
                    logger.info(f"Armed one-time job {job.id} for {schedule.at.isoformat()}")
                handle = TriggerHandle(
                    job_id=job.id,
                    kind=ScheduleKind.ONE_TIME,
                    token=token,
                    armed_at=now,
                    run_at=schedule.at,
                    immediate=delay <= 0,
                    key=key,
                )

            else:
                raise InvalidScheduleError(f"Job {job.id} has no usable schedule")

            self._handles[job.id] = handle
            return handle

    def disarm(self, job_id: str) -> bool:
        """Remove the live trigger for `job_id`, if any.

        Returns:
            True if a trigger was armed, False if the job had none
        """
        with self._lock:
            handle = self._handles.pop(job_id, None)
            if handle is None:
                return False
            self._trigger.disarm(handle.key)
        logger.info(f"Disarmed trigger for job {job_id}")
        return True

    def release(self, job_id: str, token: str) -> bool:
        """Disarm `job_id` only if its live trigger was armed with `token`."""
        with self._lock:
            handle = self._handles.get(job_id)
            if handle is None or handle.token != token:
                return False
            del self._handles[job_id]
            self._trigger.disarm(handle.key)
        logger.debug(f"Released trigger for job {job_id}")
        return True

    def is_current(self, job_id: str, token: str) -> bool:
        with self._lock:
            handle = self._handles.get(job_id)
            return handle is not None and handle.token == token

    def get(self, job_id: str) -> TriggerHandle | None:
        with self._lock:
            return self._handles.get(job_id)

    def handles(self) -> list[TriggerHandle]:
        with self._lock:
            return list(self._handles.values())

    def clear(self) -> int:
        """Disarm everything. Returns the number of triggers removed."""
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            for handle in handles:
                self._trigger.disarm(handle.key)
        return len(handles)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
