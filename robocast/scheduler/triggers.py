"""Trigger capability: arms single-shot and cron callbacks.

The registry only talks to the `Trigger` protocol. `APSchedulerTrigger`
implements it on top of APScheduler's AsyncIOScheduler, so callbacks run as
tasks on the service's event loop.
"""
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.date import DateTrigger
from loguru import logger

from .schedule import next_cron_tick

logger = logger.bind(module="scheduler.triggers")

FireCallback = Callable[..., Awaitable[None]]

# Cron ticks that run late by more than this are dropped by APScheduler
CRON_MISFIRE_GRACE_SECONDS = 30


class Trigger(Protocol):
    """Timer/cron backend used by the trigger registry."""

    def start(self) -> None:
        ...

    def shutdown(self) -> None:
        ...

    def arm_once(
        self,
        key: str,
        run_at: datetime,
        callback: FireCallback,
        args: tuple[Any, ...] = (),
    ) -> None:
        """Call `callback(*args)` once at `run_at`."""
        ...

    def fire_now(
        self,
        key: str,
        callback: FireCallback,
        args: tuple[Any, ...] = (),
    ) -> None:
        """Call `callback(*args)` as soon as possible, without a timer."""
        ...

    def arm_cron(
        self,
        key: str,
        expression: str,
        callback: FireCallback,
        args: tuple[Any, ...] = (),
    ) -> None:
        """Call `callback(*args)` on every tick of `expression` (UTC)."""
        ...

    def disarm(self, key: str) -> bool:
        """Remove the trigger armed under `key`. Returns False if none was armed."""
        ...


class CronExpressionTrigger(BaseTrigger):
    """APScheduler trigger driven by a standard 5-field cron expression.

    Uses croniter so weekday numbering follows crontab (0 = Sunday), and
    always evaluates in UTC.
    """

    def __init__(self, expression: str):
        self.expression = expression

    def get_next_fire_time(
        self,
        previous_fire_time: datetime | None,
        now: datetime,
    ) -> datetime:
        return next_cron_tick(self.expression, previous_fire_time or now)

    def __str__(self) -> str:
        return f"cron[{self.expression}]"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} (expression={self.expression!r}, timezone='UTC')>"


class APSchedulerTrigger:
    """Trigger backed by an AsyncIOScheduler running in UTC."""

    def __init__(self, scheduler: AsyncIOScheduler | None = None):
        self._scheduler = scheduler or AsyncIOScheduler(
            timezone=timezone.utc,
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
            },
        )

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("APScheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("APScheduler stopped")

    def arm_once(
        self,
        key: str,
        run_at: datetime,
        callback: FireCallback,
        args: tuple[Any, ...] = (),
    ) -> None:
        # No grace limit: a run date that slipped into the past still fires
        self._scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=run_at, timezone=timezone.utc),
            args=list(args),
            id=key,
            misfire_grace_time=None,
        )

    def fire_now(
        self,
        key: str,
        callback: FireCallback,
        args: tuple[Any, ...] = (),
    ) -> None:
        # Without a trigger APScheduler runs the job once, right away
        self._scheduler.add_job(
            callback,
            args=list(args),
            id=key,
            misfire_grace_time=None,
        )

    def arm_cron(
        self,
        key: str,
        expression: str,
        callback: FireCallback,
        args: tuple[Any, ...] = (),
    ) -> None:
        self._scheduler.add_job(
            callback,
            trigger=CronExpressionTrigger(expression),
            args=list(args),
            id=key,
            misfire_grace_time=CRON_MISFIRE_GRACE_SECONDS,
        )

    def disarm(self, key: str) -> bool:
        try:
            self._scheduler.remove_job(key)
        except JobLookupError:
            # Single-shot jobs remove themselves once they have run
            return False
        return True

    def next_fire_time(self, key: str) -> datetime | None:
        job = self._scheduler.get_job(key)
        if job is None:
            return None
        return job.next_run_time
