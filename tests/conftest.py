"""Shared fixtures: an in-memory trigger, a recording dispatcher and engines on tmp_path."""
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import pytest
import pytest_asyncio

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from robocast.scheduler.errors import DeliveryError
from robocast.scheduler.service import ExecutionHistory, JobStore, ScheduleEngine
from robocast.scheduler.types import MessagePayload, Receipt


@dataclass
class ArmedCall:
    kind: str  # once, now or cron
    callback: Callable
    args: tuple
    run_at: datetime | None = None
    expression: str | None = None


class FakeTrigger:
    """Trigger that only records what was armed; tests fire entries by hand."""

    def __init__(self):
        self.started = False
        self.armed: dict[str, ArmedCall] = {}
        self.disarmed: list[str] = []

    def start(self) -> None:
        self.started = True

    def shutdown(self) -> None:
        self.started = False

    def arm_once(self, key, run_at, callback, args=()):
        assert key not in self.armed
        self.armed[key] = ArmedCall("once", callback, tuple(args), run_at=run_at)

    def fire_now(self, key, callback, args=()):
        assert key not in self.armed
        self.armed[key] = ArmedCall("now", callback, tuple(args))

    def arm_cron(self, key, expression, callback, args=()):
        assert key not in self.armed
        self.armed[key] = ArmedCall("cron", callback, tuple(args), expression=expression)

    def disarm(self, key) -> bool:
        self.disarmed.append(key)
        return self.armed.pop(key, None) is not None

    def keys_for(self, job_id: str) -> list[str]:
        return [key for key in self.armed if key.split(":", 1)[0] == job_id]

    def only(self, job_id: str) -> ArmedCall:
        keys = self.keys_for(job_id)
        assert len(keys) == 1, f"expected one trigger for {job_id}, found {keys}"
        return self.armed[keys[0]]

    async def fire(self, job_id: str) -> Any:
        """Run the trigger armed for `job_id` the way the scheduler would."""
        key = self.keys_for(job_id)[0]
        call = self.armed[key]
        if call.kind != "cron":
            # Single-shot jobs leave the backend once they run
            del self.armed[key]
        return await call.callback(*call.args)


class FakeDispatcher:
    """Records deliveries; set `fail_with` to make every delivery raise."""

    def __init__(self, targets=("news-bot", "alerts-bot")):
        self.targets = set(targets)
        self.sent: list[tuple[str, MessagePayload]] = []
        self.fail_with: Exception | None = None

    async def deliver(self, target: str, payload: MessagePayload) -> Receipt:
        if self.fail_with is not None:
            raise self.fail_with
        if target not in self.targets:
            raise DeliveryError(f"Unknown target: {target}")
        self.sent.append((target, payload))
        return Receipt(id=f"msg-{len(self.sent)}", channel="fake")

    def has_target(self, target: str) -> bool:
        return target in self.targets

    def target_count(self) -> int:
        return len(self.targets)


def make_engine(db_path, dispatcher, trigger, clock=None, **kwargs) -> ScheduleEngine:
    extra = {"clock": clock} if clock is not None else {}
    return ScheduleEngine(
        store=JobStore(db_path),
        history=ExecutionHistory(db_path),
        dispatcher=dispatcher,
        trigger=trigger,
        **extra,
        **kwargs,
    )


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "robocast.db"


@pytest.fixture
def trigger():
    return FakeTrigger()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def payload():
    return MessagePayload(content="Good morning!")


@pytest_asyncio.fixture
async def job_store(db_path):
    store = JobStore(db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def history(db_path):
    history = ExecutionHistory(db_path)
    await history.initialize()
    yield history
    await history.close()


@pytest_asyncio.fixture
async def engine(db_path, dispatcher, trigger):
    engine = make_engine(db_path, dispatcher, trigger)
    await engine.start()
    yield engine
    await engine.stop()
