from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Literal, Sequence

from pydantic import ValidationError
from redis.asyncio import Redis

from ledger_indexer.app.infrastructure.queue.jobs import QueuedJob

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

_DEFAULT_BACKOFF_SECONDS: tuple[float, ...] = (1.0, 5.0, 30.0)
_DEFAULT_STALLED_AFTER_SECONDS: float = 300.0


class RedisJobQueue:
    """
    Minimal durable job queue over Redis.

    Keys:
      - {name}            LIST  waiting jobs (LPUSH in, LMOVE/BLMOVE out => FIFO)
      - {name}:active     LIST  in-flight jobs, moved here atomically on reserve
      - {name}:active:since  HASH  reserve time per in-flight envelope
      - {name}:delayed    ZSET  jobs waiting for a retry, scored by due time
      - {dead_letter}     LIST  jobs that exhausted their attempts, and malformed envelopes

    Strategy:
    - a failed job is re-scheduled with backoff_seconds[attempt-1]
      (the last delay repeats if attempts outnumber delays),
    - once attemptsMade reaches maxAttempts it is moved to the dead-letter list,
    - due delayed jobs are promoted with ZREM-then-LPUSH; only the caller whose
      ZREM removed the member pushes it, so concurrent workers never duplicate a job,
    - a job leaves {name}:active only on complete, fail or dead-letter; a job
      whose worker died stays there until recover_stalled re-queues it, so
      delivery is at-least-once.

    Completed jobs are simply dropped.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        name: str = "event-sync-queue",
        dead_letter_name: str = "dead-letter-queue",
        max_attempts: int = 3,
        backoff_seconds: Sequence[float] = _DEFAULT_BACKOFF_SECONDS,
        clock: Clock = time.time,
        stalled_after_seconds: float = _DEFAULT_STALLED_AFTER_SECONDS,
    ) -> None:
        if not backoff_seconds:
            raise ValueError("backoff_seconds must contain at least one delay")
        self._redis = redis
        self.name = name
        self.dead_letter_name = dead_letter_name
        self._max_attempts = max_attempts
        self._backoff = tuple(backoff_seconds)
        self._clock = clock
        self._stalled_after = stalled_after_seconds
        self._in_flight: dict[str, str | bytes] = {}

    @property
    def delayed_key(self) -> str:
        return f"{self.name}:delayed"

    @property
    def active_key(self) -> str:
        return f"{self.name}:active"

    @property
    def active_since_key(self) -> str:
        return f"{self.name}:active:since"

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        name: str,
        data: dict[str, Any],
        *,
        max_attempts: int | None = None,
    ) -> QueuedJob:
        job = QueuedJob(name=name, data=data, max_attempts=max_attempts or self._max_attempts)
        await self._redis.lpush(self.name, job.to_json())
        logger.info("Enqueued job %s [id=%s] on %s", name, job.id, self.name)
        return job

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def promote_due(self) -> int:
        due = await self._redis.zrangebyscore(self.delayed_key, "-inf", self._clock())
        promoted = 0
        for raw in due:
            if await self._redis.zrem(self.delayed_key, raw):
                await self._redis.lpush(self.name, raw)
                promoted += 1
        return promoted

    async def reserve(self, timeout_seconds: float = 0) -> QueuedJob | None:
        """
        Take the next waiting job, or None.

        timeout_seconds <= 0 returns immediately; otherwise blocks up to that long.
        The job moves to the in-flight list in the same command that takes it.
        Envelopes that do not parse are dead-lettered and the next job is tried.
        """
        await self.promote_due()

        while True:
            if timeout_seconds > 0:
                raw = await self._redis.blmove(self.name, self.active_key, timeout_seconds, "RIGHT", "LEFT")
            else:
                raw = await self._redis.lmove(self.name, self.active_key, "RIGHT", "LEFT")
            if raw is None:
                return None
            await self._redis.hset(self.active_since_key, raw, self._clock())

            try:
                job = QueuedJob.from_json(raw)
            except ValidationError as exc:
                await self._dead_letter_malformed(raw, exc)
                timeout_seconds = 0
                continue

            self._in_flight[job.id] = raw
            return job

    async def complete(self, job: QueuedJob) -> None:
        raw = self._in_flight.pop(job.id, None)
        if raw is None:
            return
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lrem(self.active_key, 1, raw)
            pipe.hdel(self.active_since_key, raw)
            await pipe.execute()

    async def fail(self, job: QueuedJob, error: BaseException) -> Literal["retrying", "dead-lettered"]:
        attempted = job.next_attempt()
        raw = self._in_flight.pop(job.id, None)

        if attempted.attempts_made < attempted.max_attempts:
            delay = self._backoff[min(attempted.attempts_made, len(self._backoff)) - 1]
            async with self._redis.pipeline(transaction=True) as pipe:
                if raw is not None:
                    pipe.lrem(self.active_key, 1, raw)
                    pipe.hdel(self.active_since_key, raw)
                pipe.zadd(self.delayed_key, {attempted.to_json(): self._clock() + delay})
                await pipe.execute()
            logger.warning(
                "Job %s [id=%s] failed (attempt %s/%s), retrying in %ss: %s",
                job.name,
                job.id,
                attempted.attempts_made,
                attempted.max_attempts,
                delay,
                error,
            )
            return "retrying"

        dead_letter = {
            "originalQueue": self.name,
            "originalJobId": job.id,
            "originalJobName": job.name,
            "originalJobData": job.data,
            "failedReason": str(error),
            "failedAt": datetime.now(timezone.utc).isoformat(),
            "attemptsMade": attempted.attempts_made,
        }
        await self._push_dead_letter(raw, dead_letter)
        logger.error(
            "Job %s [id=%s] exhausted %s attempts, moved to %s: %s",
            job.name,
            job.id,
            attempted.attempts_made,
            self.dead_letter_name,
            error,
        )
        return "dead-lettered"

    async def recover_stalled(self) -> int:
        """
        Put in-flight jobs reserved more than `stalled_after_seconds` ago back
        at the head of the waiting list (the worker that took them is gone).
        """
        now = self._clock()
        raw_items = await self._redis.lrange(self.active_key, 0, -1)
        reserved_at = await self._redis.hgetall(self.active_since_key)

        recovered = 0
        for raw in raw_items:
            since = reserved_at.get(raw)
            if since is not None and now - float(since) < self._stalled_after:
                continue
            # only the caller whose LREM removed the entry re-queues it
            if await self._redis.lrem(self.active_key, 1, raw):
                await self._redis.hdel(self.active_since_key, raw)
                await self._redis.rpush(self.name, raw)
                recovered += 1

        if recovered:
            logger.warning("Re-queued %s stalled job(s) on %s", recovered, self.name)
        return recovered

    async def _dead_letter_malformed(self, raw: str | bytes, error: ValidationError) -> None:
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        dead_letter = {
            "originalQueue": self.name,
            "originalJobId": None,
            "originalJobName": None,
            "originalJobData": text,
            "failedReason": f"malformed job envelope: {error}",
            "failedAt": datetime.now(timezone.utc).isoformat(),
            "attemptsMade": 0,
        }
        await self._push_dead_letter(raw, dead_letter)
        logger.error("Malformed job envelope on %s moved to %s", self.name, self.dead_letter_name)

    async def _push_dead_letter(self, raw: str | bytes | None, dead_letter: dict[str, Any]) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            if raw is not None:
                pipe.lrem(self.active_key, 1, raw)
                pipe.hdel(self.active_since_key, raw)
            pipe.lpush(self.dead_letter_name, json.dumps(dead_letter))
            await pipe.execute()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    async def waiting_count(self) -> int:
        return int(await self._redis.llen(self.name))

    async def active_count(self) -> int:
        return int(await self._redis.llen(self.active_key))

    async def delayed_count(self) -> int:
        return int(await self._redis.zcard(self.delayed_key))

    async def dead_letters(self) -> list[dict[str, Any]]:
        raw_items = await self._redis.lrange(self.dead_letter_name, 0, -1)
        return [json.loads(raw) for raw in raw_items]
