"""Core type definitions for the scheduler system.

This module defines:
- Schedule types (one_time/recurring)
- The message payload handed to the dispatcher
- Delivery receipts and execution records
- Introspection results
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
import uuid


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO string (or pass through a datetime) as an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    # Fixed width so stored timestamps sort as text
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


# ============== Schedule Types ==============

class ScheduleKind(str, Enum):
    """Kind of schedule."""
    ONE_TIME = "one_time"     # Fire once at a specific timestamp
    RECURRING = "recurring"   # Fire on every matching cron tick


@dataclass(frozen=True)
class OneTimeSchedule:
    """One-time schedule at a specific timestamp."""
    at: datetime
    kind: Literal["one_time"] = "one_time"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "at": format_datetime(self.at)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OneTimeSchedule":
        at = parse_datetime(data.get("at"))
        if at is None:
            raise ValueError("one_time schedule requires 'at'")
        return cls(at=at)


@dataclass(frozen=True)
class RecurringSchedule:
    """Cron expression schedule.

    The timezone is kept for display only; ticks are always evaluated in UTC.
    """
    expression: str
    timezone: str = "UTC"
    kind: Literal["recurring"] = "recurring"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "expression": self.expression,
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecurringSchedule":
        return cls(
            expression=data.get("expression", ""),
            timezone=data.get("timezone", "UTC"),
        )


# Union type for all schedule types
Schedule = OneTimeSchedule | RecurringSchedule


def schedule_from_dict(data: dict[str, Any]) -> Schedule:
    """Create a Schedule from a dictionary."""
    kind = data.get("kind", "one_time")
    if kind == ScheduleKind.ONE_TIME.value:
        return OneTimeSchedule.from_dict(data)
    elif kind == ScheduleKind.RECURRING.value:
        return RecurringSchedule.from_dict(data)
    else:
        raise ValueError(f"Unknown schedule kind: {kind}")


# ============== Payload ==============

@dataclass(frozen=True)
class MessagePayload:
    """Message content for a job. The engine never looks inside."""
    content: str | None = None
    embed: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "embed": self.embed}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "MessagePayload":
        data = data or {}
        return cls(content=data.get("content"), embed=data.get("embed"))


# ============== Result Types ==============

@dataclass(frozen=True)
class Receipt:
    """Proof of delivery returned by a channel."""
    id: str
    channel: str
    delivered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "channel": self.channel,
            "delivered_at": format_datetime(self.delivered_at),
        }


@dataclass(frozen=True)
class ExecutionRecord:
    """Append-only audit entry for one firing attempt."""
    job_id: str
    target: str
    executed_at: datetime
    success: bool
    error: str | None = None
    receipt_id: str | None = None
    id: str = field(default_factory=lambda: f"run_{uuid.uuid4().hex[:12]}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "target": self.target,
            "executed_at": format_datetime(self.executed_at),
            "success": self.success,
            "error": self.error,
            "receipt_id": self.receipt_id,
        }


@dataclass(frozen=True)
class ActiveJob:
    """A job id with a live trigger, and how that trigger was armed."""
    job_id: str
    kind: ScheduleKind
    armed_at: datetime
    run_at: datetime | None = None
    expression: str | None = None
    immediate: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "kind": self.kind.value,
            "armed_at": format_datetime(self.armed_at),
            "run_at": format_datetime(self.run_at),
            "expression": self.expression,
            "immediate": self.immediate,
        }


@dataclass
class EngineStatus:
    """Health snapshot of the schedule engine."""
    running: bool
    active_triggers: int
    dispatcher_targets: int
    recent_failures: int
    checked_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "active_triggers": self.active_triggers,
            "dispatcher_targets": self.dispatcher_targets,
            "recent_failures": self.recent_failures,
            "checked_at": format_datetime(self.checked_at),
        }
