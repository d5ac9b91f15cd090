"""Execution orchestrator: runs one firing of a scheduled job.

A firing delivers the job's payload through the dispatcher, appends an
execution record whatever the outcome, stamps `last_executed` on the job,
and retires one-time jobs. Nothing raised inside a firing escapes it.
"""
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Protocol

from loguru import logger

from .errors import DeliveryError, PersistenceError
from .models import Job
from .registry import TriggerRegistry
from .schedule import utcnow
from .types import ExecutionRecord, MessagePayload, Receipt, ScheduleKind

if TYPE_CHECKING:
    from .service.store import ExecutionHistory, JobStore

logger = logger.bind(module="scheduler.executor")


# ============== Protocol Definitions ==============

class Dispatcher(Protocol):
    """Protocol for delivering a payload to a target."""

    async def deliver(self, target: str, payload: MessagePayload) -> Receipt:
        """Deliver and return a receipt, or raise DeliveryError."""
        ...

    def target_count(self) -> int:
        """Number of targets this dispatcher can deliver to."""
        ...


class ExecutionOrchestrator:
    """Executes firings handed over by the trigger registry.

    Dispatch failures are terminal for the firing: they are recorded and
    never retried here.
    """

    def __init__(
        self,
        registry: TriggerRegistry,
        store: "JobStore",
        history: "ExecutionHistory",
        dispatcher: Dispatcher,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.registry = registry
        self.store = store
        self.history = history
        self.dispatcher = dispatcher
        self._clock = clock

    async def fire(self, job: Job, token: str) -> ExecutionRecord | None:
        """Run one firing of `job`.

        Args:
            job: Snapshot of the job taken when its trigger was armed
            token: Token of the arming that produced this firing

        Returns:
            The execution record, or None if the trigger was disarmed
            before the firing started
        """
        if not self.registry.is_current(job.id, token):
            logger.debug(f"Skipping stale firing of job {job.id}")
            return None

        started_at = self._clock()
        logger.info(f"Executing job {job.id} for target {job.target}")

        receipt: Receipt | None = None
        error: str | None = None
        try:
            receipt = await self.dispatcher.deliver(job.target, job.payload)
            if receipt is None:
                raise DeliveryError("Dispatcher returned no receipt")
        except DeliveryError as e:
            error = e.reason
        except Exception as e:
            # Transport faults the channel did not wrap are still delivery failures
            logger.exception(f"Unexpected error delivering job {job.id}")
            error = f"{type(e).__name__}: {e}"

        if error is None:
            logger.info(f"Successfully executed job {job.id} (receipt {receipt.id})")
        else:
            logger.error(f"Failed to execute job {job.id}: {error}")

        record = ExecutionRecord(
            job_id=job.id,
            target=job.target,
            executed_at=started_at,
            success=error is None,
            error=error,
            receipt_id=receipt.id if receipt else None,
        )

        try:
            await self.history.append(record)
        except PersistenceError as e:
            logger.error(f"Failed to record execution of job {job.id}: {e}")

        try:
            await self.store.update(job.id, last_executed=started_at)
        except Exception as e:
            logger.error(f"Failed to update last_executed for job {job.id}: {e}")

        if job.kind == ScheduleKind.ONE_TIME:
            await self._retire(job, token)

        return record

    async def _retire(self, job: Job, token: str) -> None:
        """Deactivate a one-time job after its single firing."""
        # A cancel or reschedule during the firing already took the trigger over
        if not self.registry.release(job.id, token):
            return
        try:
            await self.store.update(job.id, active=False)
            logger.info(f"One-time job {job.id} completed and deactivated")
        except Exception as e:
            logger.error(f"Failed to deactivate one-time job {job.id}: {e}")
