from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Final, Literal, Sequence

from ledger_indexer.app.domain.errors import MaintenanceJobFailedError
from ledger_indexer.app.domain.models import LOCK_NOT_ACQUIRED
from ledger_indexer.app.domain.ports.out import DistributedLock, ScheduleSlotClaims

logger = logging.getLogger(__name__)

JobFn = Callable[[], Awaitable[dict[str, Any]]]
Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]

_SLOT_ALREADY_RUN: Final[object] = object()


@dataclass(frozen=True)
class MaintenanceJob:
    """
    A job fired on fixed wall-clock slots.

    Slot n starts at `n * interval_seconds + offset_seconds` (UTC epoch seconds),
    so every instance agrees on the boundaries regardless of when it started.
    """

    name: str
    run: JobFn
    interval_seconds: float
    lock_ttl_seconds: int = 300
    offset_seconds: float = 0

    def slot_at(self, timestamp: float) -> int:
        return math.floor((timestamp - self.offset_seconds) / self.interval_seconds)

    def slot_start(self, slot: int) -> float:
        return slot * self.interval_seconds + self.offset_seconds


@dataclass(frozen=True)
class JobRunResult:
    job_name: str
    status: Literal["succeeded", "skipped", "failed"]
    duration_ms: int
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


class MaintenanceScheduler:
    """
    Runs periodic maintenance jobs across instances.

    Each due slot of a job:
      1) acquires `scheduler:lock:{job}` with the job's TTL (skip if held elsewhere),
      2) claims the slot (skip if another instance already ran it),
      3) runs the job with bounded retry and exponential backoff
         (base_delay * 2**(attempt-1) between attempts),
      4) releases the lock in every case.

    Exhausted retries are one failed slot; the next slot tries again.
    """

    def __init__(
        self,
        *,
        lock: DistributedLock,
        jobs: Sequence[MaintenanceJob],
        slot_claims: ScheduleSlotClaims | None = None,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
        wall_clock: Clock = time.time,
    ) -> None:
        self._lock = lock
        self._jobs = {job.name: job for job in jobs}
        self._slot_claims = slot_claims
        self._max_retries = max_retries
        self._base_delay = base_delay_seconds
        self._sleep = sleep
        self._clock = clock
        self._wall_clock = wall_clock
        self._next_slot: dict[str, int] = {}

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    async def run_job(self, name: str, *, slot: int | None = None) -> JobRunResult:
        try:
            job = self._jobs[name]
        except KeyError:
            raise ValueError(f"Unknown maintenance job: {name!r}") from None

        started = self._clock()
        logger.info("Starting task: %s", name)

        async def locked() -> Any:
            if slot is not None and self._slot_claims is not None:
                ttl = max(int(job.interval_seconds * 2), job.lock_ttl_seconds)
                if not await self._slot_claims.claim(name, slot, ttl):
                    return _SLOT_ALREADY_RUN
            return await self.execute_with_retry(job.run, name)

        try:
            outcome = await self._lock.with_lock(name, job.lock_ttl_seconds, locked)
        except MaintenanceJobFailedError as exc:
            duration_ms = int((self._clock() - started) * 1000)
            logger.error("Task %s failed in %sms: %s", name, duration_ms, exc)
            return JobRunResult(job_name=name, status="failed", duration_ms=duration_ms, error=str(exc))

        duration_ms = int((self._clock() - started) * 1000)

        if outcome is LOCK_NOT_ACQUIRED:
            logger.warning("Task %s was skipped (lock not acquired)", name)
            return JobRunResult(job_name=name, status="skipped", duration_ms=duration_ms)
        if outcome is _SLOT_ALREADY_RUN:
            logger.info("Task %s was skipped (slot %s already ran)", name, slot)
            return JobRunResult(job_name=name, status="skipped", duration_ms=duration_ms)

        logger.info("Task %s completed successfully in %sms: %s", name, duration_ms, outcome)
        return JobRunResult(job_name=name, status="succeeded", duration_ms=duration_ms, result=outcome)

    async def execute_with_retry(self, fn: JobFn, job_name: str) -> dict[str, Any]:
        last_error: BaseException | None = None

        for attempt in range(1, self._max_retries + 1):
            try:
                return await fn()
            except Exception as exc:
                last_error = exc
                logger.error(
                    "Task %s failed on attempt %s/%s: %s",
                    job_name,
                    attempt,
                    self._max_retries,
                    exc,
                )
                if attempt < self._max_retries:
                    delay = self._base_delay * (2 ** (attempt - 1))
                    logger.info("Retrying %s in %.1fs...", job_name, delay)
                    await self._sleep(delay)

        raise MaintenanceJobFailedError(job_name, self._max_retries, last_error)

    async def run_due(self) -> list[JobRunResult]:
        """
        Run every job whose wall-clock slot has started since the last check.

        The first call only records the current slots, so a fresh instance waits
        for the next boundary instead of firing everything at start-up.
        """
        now = self._wall_clock()
        results: list[JobRunResult] = []

        for name, job in self._jobs.items():
            slot = job.slot_at(now)
            next_slot = self._next_slot.setdefault(name, slot + 1)
            if slot < next_slot:
                continue
            self._next_slot[name] = slot + 1
            results.append(await self.run_job(name, slot=slot))

        return results

    async def run_forever(self, *, shutdown: asyncio.Event | None = None, tick_seconds: float = 30.0) -> None:
        shutdown = shutdown or asyncio.Event()

        logger.info("Maintenance scheduler started jobs=%s", self.job_names)
        while not shutdown.is_set():
            try:
                await self.run_due()
            except Exception:
                logger.exception("Maintenance tick failed")
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=tick_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Maintenance scheduler stopped")
