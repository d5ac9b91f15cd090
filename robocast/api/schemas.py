"""Request bodies for the HTTP API."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ..scheduler.errors import InvalidScheduleError
from ..scheduler.types import (
    MessagePayload,
    OneTimeSchedule,
    RecurringSchedule,
    Schedule,
    ScheduleKind,
    parse_datetime,
)


class ScheduleIn(BaseModel):
    """When a job fires: `at` for one_time, `cron` for recurring.

    A naive `at` is read as UTC.
    """
    kind: ScheduleKind
    at: datetime | None = None
    cron: str | None = None
    timezone: str = "UTC"

    def to_schedule(self) -> Schedule:
        if self.kind == ScheduleKind.RECURRING:
            if not self.cron or not self.cron.strip():
                raise InvalidScheduleError("Recurring schedule requires 'cron'")
            return RecurringSchedule(expression=self.cron.strip(), timezone=self.timezone)
        if self.at is None:
            raise InvalidScheduleError("One-time schedule requires 'at'")
        return OneTimeSchedule(at=parse_datetime(self.at))


class PayloadIn(BaseModel):
    content: str | None = Field(default=None, max_length=2000)
    embed: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _require_content(self) -> "PayloadIn":
        if not self.content and not self.embed:
            raise ValueError("Message needs content or an embed")
        return self

    def to_payload(self) -> MessagePayload:
        return MessagePayload(content=self.content, embed=self.embed)


class ScheduleCreateIn(BaseModel):
    target: str = Field(min_length=1)
    payload: PayloadIn
    schedule: ScheduleIn
    created_by: str = "api"


class ScheduleUpdateIn(BaseModel):
    payload: PayloadIn | None = None
    schedule: ScheduleIn | None = None
