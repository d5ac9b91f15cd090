"""Scheduling & dispatch engine."""
from .errors import (
    AlreadyArmedError,
    DeliveryError,
    InvalidScheduleError,
    NotFoundError,
    PersistenceError,
    RateLimitedError,
    SchedulerError,
)
from .executor import ExecutionOrchestrator
from .models import Job, JobCreate
from .registry import TriggerHandle, TriggerRegistry
from .service import ExecutionHistory, JobStore, ScheduleEngine
from .triggers import APSchedulerTrigger, Trigger
from .types import (
    ActiveJob,
    EngineStatus,
    ExecutionRecord,
    MessagePayload,
    OneTimeSchedule,
    Receipt,
    RecurringSchedule,
    Schedule,
    ScheduleKind,
)

__all__ = [
    "ActiveJob",
    "AlreadyArmedError",
    "APSchedulerTrigger",
    "DeliveryError",
    "EngineStatus",
    "ExecutionHistory",
    "ExecutionOrchestrator",
    "ExecutionRecord",
    "InvalidScheduleError",
    "Job",
    "JobCreate",
    "JobStore",
    "MessagePayload",
    "NotFoundError",
    "OneTimeSchedule",
    "PersistenceError",
    "RateLimitedError",
    "Receipt",
    "RecurringSchedule",
    "Schedule",
    "ScheduleEngine",
    "ScheduleKind",
    "SchedulerError",
    "Trigger",
    "TriggerHandle",
    "TriggerRegistry",
]
