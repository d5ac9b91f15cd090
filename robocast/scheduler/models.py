"""Data models for scheduled jobs."""
import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any
import uuid

from .types import (
    Schedule,
    ScheduleKind,
    MessagePayload,
    format_datetime,
    parse_datetime,
    schedule_from_dict,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """A scheduled message delivery.

    `target` names a robot in the dispatcher's configuration and `payload`
    is the message to send; the engine treats both as opaque.
    """
    # Identity
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    # Definition
    target: str = ""
    payload: MessagePayload = field(default_factory=MessagePayload)
    schedule: Schedule | None = None
    created_by: str = ""

    # Runtime state
    active: bool = True
    last_executed: datetime | None = None

    # Timestamps
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def kind(self) -> ScheduleKind:
        if self.schedule is None:
            raise ValueError(f"Job {self.id} has no schedule")
        return ScheduleKind(self.schedule.kind)

    def snapshot(self) -> "Job":
        """Return a detached copy to hand to a firing callback."""
        return replace(self, payload=copy.deepcopy(self.payload))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "target": self.target,
            "payload": self.payload.to_dict(),
            "schedule": self.schedule.to_dict() if self.schedule else None,
            "created_by": self.created_by,
            "active": self.active,
            "last_executed": format_datetime(self.last_executed),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        """Create from dictionary."""
        job = cls(
            id=data.get("id", str(uuid.uuid4())),
            target=data.get("target", ""),
            payload=MessagePayload.from_dict(data.get("payload")),
            created_by=data.get("created_by", ""),
            active=data.get("active", True),
            last_executed=parse_datetime(data.get("last_executed")),
            created_at=parse_datetime(data.get("created_at")) or _utcnow(),
            updated_at=parse_datetime(data.get("updated_at")) or _utcnow(),
        )

        if data.get("schedule"):
            job.schedule = schedule_from_dict(data["schedule"])

        return job


@dataclass
class JobCreate:
    """Request to create a new job."""
    target: str
    schedule: Schedule
    payload: MessagePayload = field(default_factory=MessagePayload)
    created_by: str = ""
