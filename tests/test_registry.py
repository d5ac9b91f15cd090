"""Tests for the trigger registry."""
from datetime import timedelta

import pytest

from conftest import utc
from robocast.scheduler.errors import AlreadyArmedError, InvalidScheduleError
from robocast.scheduler.models import Job
from robocast.scheduler.registry import TriggerRegistry
from robocast.scheduler.types import OneTimeSchedule, RecurringSchedule, ScheduleKind

NOW = utc(2024, 1, 15, 12, 0)


async def noop(job, token):
    return None


@pytest.fixture
def registry(trigger):
    return TriggerRegistry(trigger, clock=lambda: NOW)


def one_time(minutes: float) -> Job:
    return Job(target="news-bot", schedule=OneTimeSchedule(at=NOW + timedelta(minutes=minutes)))


def recurring(expression: str = "0 9 * * *") -> Job:
    return Job(target="news-bot", schedule=RecurringSchedule(expression=expression))


class TestArm:

    def test_arm_future_one_time(self, registry, trigger):
        job = one_time(10)
        handle = registry.arm(job, noop)

        call = trigger.only(job.id)
        assert call.kind == "once"
        assert call.run_at == job.schedule.at
        assert handle.kind == ScheduleKind.ONE_TIME
        assert not handle.immediate
        assert job.id in registry

    def test_arm_overdue_one_time_fires_immediately(self, registry, trigger):
        job = one_time(-5)
        handle = registry.arm(job, noop)

        assert trigger.only(job.id).kind == "now"
        assert handle.immediate

    def test_arm_recurring(self, registry, trigger):
        job = recurring("*/5 * * * *")
        handle = registry.arm(job, noop)

        call = trigger.only(job.id)
        assert call.kind == "cron"
        assert call.expression == "*/5 * * * *"
        assert handle.kind == ScheduleKind.RECURRING

    def test_callback_gets_snapshot_and_token(self, registry, trigger):
        job = one_time(10)
        handle = registry.arm(job, noop)

        snapshot, token = trigger.only(job.id).args
        assert token == handle.token
        assert snapshot.id == job.id
        assert snapshot is not job

    def test_double_arm_raises(self, registry, trigger):
        job = recurring()
        registry.arm(job, noop)

        with pytest.raises(AlreadyArmedError):
            registry.arm(job, noop)
        assert len(trigger.keys_for(job.id)) == 1
        assert len(registry) == 1

    def test_invalid_cron_arms_nothing(self, registry, trigger):
        job = recurring("every monday")
        with pytest.raises(InvalidScheduleError):
            registry.arm(job, noop)

        assert job.id not in registry
        assert trigger.armed == {}

    def test_job_without_schedule(self, registry):
        with pytest.raises(InvalidScheduleError):
            registry.arm(Job(target="news-bot"), noop)


class TestDisarm:

    def test_disarm_removes_trigger(self, registry, trigger):
        job = recurring()
        registry.arm(job, noop)

        assert registry.disarm(job.id)
        assert trigger.keys_for(job.id) == []
        assert job.id not in registry

    def test_disarm_unknown(self, registry):
        assert not registry.disarm("missing")

    def test_rearm_after_disarm_gets_new_token(self, registry):
        job = recurring()
        first = registry.arm(job, noop)
        registry.disarm(job.id)
        second = registry.arm(job, noop)

        assert first.token != second.token
        assert not registry.is_current(job.id, first.token)
        assert registry.is_current(job.id, second.token)

    def test_release_requires_current_token(self, registry):
        job = one_time(10)
        first = registry.arm(job, noop)
        registry.disarm(job.id)
        second = registry.arm(job, noop)

        assert not registry.release(job.id, first.token)
        assert job.id in registry
        assert registry.release(job.id, second.token)
        assert job.id not in registry

    def test_clear(self, registry, trigger):
        jobs = [one_time(10), recurring(), recurring("* * * * *")]
        for job in jobs:
            registry.arm(job, noop)

        assert registry.clear() == 3
        assert len(registry) == 0
        assert trigger.armed == {}

    def test_handles(self, registry):
        a, b = one_time(10), recurring()
        registry.arm(a, noop)
        registry.arm(b, noop)

        kinds = {h.job_id: h.kind for h in registry.handles()}
        assert kinds == {a.id: ScheduleKind.ONE_TIME, b.id: ScheduleKind.RECURRING}
        assert registry.get(a.id).run_at == a.schedule.at
        assert registry.get("missing") is None
