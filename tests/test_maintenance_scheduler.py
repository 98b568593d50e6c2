"""
Tests for the maintenance scheduler: locking, retry with backoff, failure reporting,
wall-clock slots shared across instances.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from ledger_indexer.app.application.services.maintenance.scheduler import (
    MaintenanceJob,
    MaintenanceScheduler,
)
from ledger_indexer.app.domain.errors import MaintenanceJobFailedError
from ledger_indexer.app.infrastructure.factories.maintenance_scheduler_factory import (
    ARCHIVE_AUDIT_LOGS,
    SEND_CONTRIBUTION_SUMMARIES,
    UPDATE_GROUP_STATUSES,
    build_maintenance_jobs,
)
from ledger_indexer.app.infrastructure.stores.redis_lock import (
    RedisDistributedLock,
    RedisScheduleSlotClaims,
)

_DAY = 86400


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FlakyJob:
    """Fails `failures` times, then returns a result."""

    def __init__(self, failures=0, result=None):
        self.failures = failures
        self.result = result or {"updatedCount": 1}
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"transient #{self.calls}")
        return self.result


def make_scheduler(redis, job, *, sleep=None, max_retries=3, name="update-group-statuses"):
    return MaintenanceScheduler(
        lock=RedisDistributedLock(redis),
        jobs=[MaintenanceJob(name=name, run=job, interval_seconds=3600, lock_ttl_seconds=300)],
        max_retries=max_retries,
        base_delay_seconds=1.0,
        sleep=sleep or SleepRecorder(),
    )


class TestRunJob:
    @pytest.mark.asyncio
    async def test_success(self, redis):
        job = FlakyJob(result={"archivedCount": 4})
        result = await make_scheduler(redis, job).run_job("update-group-statuses")

        assert result.status == "succeeded"
        assert result.result == {"archivedCount": 4}
        assert result.duration_ms >= 0
        assert await redis.exists("scheduler:lock:update-group-statuses") == 0

    @pytest.mark.asyncio
    async def test_retries_with_exponential_backoff(self, redis):
        sleep = SleepRecorder()
        job = FlakyJob(failures=2)

        result = await make_scheduler(redis, job, sleep=sleep).run_job("update-group-statuses")

        assert result.status == "succeeded"
        assert job.calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail_the_tick(self, redis):
        sleep = SleepRecorder()
        job = FlakyJob(failures=10)

        result = await make_scheduler(redis, job, sleep=sleep).run_job("update-group-statuses")

        assert result.status == "failed"
        assert job.calls == 3
        assert sleep.delays == [1.0, 2.0]
        assert "failed after 3 attempts" in result.error
        assert "transient #3" in result.error
        assert await redis.exists("scheduler:lock:update-group-statuses") == 0

    @pytest.mark.asyncio
    async def test_skipped_when_lock_is_held(self, redis):
        await RedisDistributedLock(redis).acquire("update-group-statuses")
        job = FlakyJob()

        result = await make_scheduler(redis, job).run_job("update-group-statuses")

        assert result.status == "skipped"
        assert job.calls == 0

    @pytest.mark.asyncio
    async def test_unknown_job(self, redis):
        with pytest.raises(ValueError):
            await make_scheduler(redis, FlakyJob()).run_job("nope")


class TestExecuteWithRetry:
    @pytest.mark.asyncio
    async def test_raises_job_failed_error(self, redis):
        scheduler = make_scheduler(redis, FlakyJob(), max_retries=2)

        with pytest.raises(MaintenanceJobFailedError) as excinfo:
            await scheduler.execute_with_retry(FlakyJob(failures=5), "archive-audit-logs")

        assert excinfo.value.attempts == 2
        assert excinfo.value.job_name == "archive-audit-logs"
        assert isinstance(excinfo.value.last_error, RuntimeError)


class FakeWallClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestWallClockSlots:
    def test_slot_boundaries_follow_offset(self):
        job = MaintenanceJob(name="daily", run=FlakyJob(), interval_seconds=_DAY, offset_seconds=7200)
        two_am = datetime(2026, 10, 18, 2, 0, tzinfo=timezone.utc).timestamp()

        assert job.slot_start(job.slot_at(two_am)) == two_am
        assert job.slot_at(two_am - 1) == job.slot_at(two_am) - 1

    @pytest.mark.asyncio
    async def test_factory_schedules(self, engine):
        jobs = {job.name: job for job in build_maintenance_jobs(engine)}
        sunday_noon = datetime(2026, 10, 18, 12, 30, tzinfo=timezone.utc).timestamp()

        def next_run(name):
            job = jobs[name]
            return datetime.fromtimestamp(job.slot_start(job.slot_at(sunday_noon) + 1), timezone.utc)

        assert next_run(ARCHIVE_AUDIT_LOGS) == datetime(2026, 10, 19, 2, 0, tzinfo=timezone.utc)
        assert next_run(UPDATE_GROUP_STATUSES) == datetime(2026, 10, 18, 13, 0, tzinfo=timezone.utc)
        assert next_run(SEND_CONTRIBUTION_SUMMARIES) == datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class TestRunDue:
    def make(self, redis, job, wall_clock):
        return MaintenanceScheduler(
            lock=RedisDistributedLock(redis),
            slot_claims=RedisScheduleSlotClaims(redis),
            jobs=[MaintenanceJob(name="archive-audit-logs", run=job, interval_seconds=_DAY, lock_ttl_seconds=600)],
            sleep=SleepRecorder(),
            wall_clock=wall_clock,
        )

    @pytest.mark.asyncio
    async def test_first_check_waits_for_next_boundary(self, redis):
        clock = FakeWallClock(_DAY * 20000 + 60)
        job = FlakyJob()
        scheduler = self.make(redis, job, clock)

        assert await scheduler.run_due() == []
        clock.now += 3600
        assert await scheduler.run_due() == []
        assert job.calls == 0

        clock.now = _DAY * 20001
        [result] = await scheduler.run_due()
        assert result.status == "succeeded"
        assert job.calls == 1

    @pytest.mark.asyncio
    async def test_instances_started_apart_run_each_slot_once(self, redis):
        start = _DAY * 20000
        clock = FakeWallClock(start)
        runs = []

        async def job():
            runs.append(clock.now)
            return {"archivedCount": 0}

        first = self.make(redis, job, clock)
        await first.run_due()
        clock.now += 3600
        second = self.make(redis, job, clock)
        await second.run_due()

        while clock.now < start + 2 * _DAY - 600:
            clock.now += 600
            await first.run_due()
            await second.run_due()

        assert runs == [start + _DAY]

    @pytest.mark.asyncio
    async def test_claimed_slot_is_reported_as_skipped(self, redis):
        clock = FakeWallClock(_DAY * 20000)
        job = FlakyJob()
        await RedisScheduleSlotClaims(redis).claim("archive-audit-logs", 20001, 60)
        scheduler = self.make(redis, job, clock)
        await scheduler.run_due()

        clock.now = _DAY * 20001 + 5
        [result] = await scheduler.run_due()

        assert result.status == "skipped"
        assert job.calls == 0
        assert await redis.exists("scheduler:lock:archive-audit-logs") == 0


class TestRunForever:
    @pytest.mark.asyncio
    async def test_runs_due_slot_then_stops(self, redis):
        shutdown = asyncio.Event()
        readings = iter([_DAY * 20000, _DAY * 20001])
        calls = []

        async def job():
            calls.append(1)
            shutdown.set()
            return {}

        scheduler = MaintenanceScheduler(
            lock=RedisDistributedLock(redis),
            slot_claims=RedisScheduleSlotClaims(redis),
            jobs=[MaintenanceJob(name="archive-audit-logs", run=job, interval_seconds=_DAY)],
            wall_clock=lambda: next(readings, _DAY * 20001),
        )

        await asyncio.wait_for(scheduler.run_forever(shutdown=shutdown, tick_seconds=0.01), timeout=5)

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_tick_error_does_not_stop_the_loop(self, redis):
        shutdown = asyncio.Event()
        readings = iter([_DAY * 20000])
        calls = []

        def wall_clock():
            try:
                return next(readings)
            except StopIteration:
                calls.append(1)
                if len(calls) == 1:
                    raise RuntimeError("clock unavailable")
                shutdown.set()
                return _DAY * 20000

        scheduler = MaintenanceScheduler(
            lock=RedisDistributedLock(redis),
            jobs=[MaintenanceJob(name="archive-audit-logs", run=FlakyJob(), interval_seconds=_DAY)],
            wall_clock=wall_clock,
        )

        await asyncio.wait_for(scheduler.run_forever(shutdown=shutdown, tick_seconds=0.01), timeout=5)

        assert len(calls) == 2
