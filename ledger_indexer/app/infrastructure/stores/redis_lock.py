from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Final, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from ledger_indexer.app.domain.models import LOCK_NOT_ACQUIRED
from ledger_indexer.app.domain.ports.out import DistributedLock, ScheduleSlotClaims

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LOCK_KEY_PREFIX: Final[str] = "scheduler:lock:"
_SLOT_KEY_PREFIX: Final[str] = "scheduler:slot:"
_DEFAULT_TTL_SECONDS: Final[int] = 300


class RedisDistributedLock(DistributedLock):
    """
    Distributed lock over Redis `SET NX EX`.

    - acquire() is a single atomic SET; the TTL is the only recovery path
      for a crashed holder (no heartbeat / renewal).
    - release() is a WATCH/MULTI compare-and-delete on this instance's token,
      so a late release never frees a lock that expired and was re-acquired elsewhere,
      even when the re-acquire lands between the ownership read and the delete.
    - Redis errors on acquire count as "not acquired".
    """

    def __init__(self, redis: Redis, *, default_ttl_seconds: int = _DEFAULT_TTL_SECONDS) -> None:
        self._redis = redis
        self._default_ttl = default_ttl_seconds
        self._tokens: dict[str, str] = {}

    @staticmethod
    def key_for(name: str) -> str:
        return f"{_LOCK_KEY_PREFIX}{name}"

    async def acquire(self, name: str, ttl_seconds: int | None = None) -> bool:
        ttl = ttl_seconds or self._default_ttl
        token = f"{time.time_ns()}:{id(self)}"

        try:
            acquired = await self._redis.set(self.key_for(name), token, nx=True, ex=ttl)
        except RedisError:
            logger.exception("Failed to acquire lock %s", name)
            return False

        if acquired:
            self._tokens[name] = token
            logger.debug("Lock acquired: %s", name)
            return True
        return False

    async def release(self, name: str) -> None:
        key = self.key_for(name)
        token = self._tokens.pop(name, None)

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.get(key)
                if current is None:
                    await pipe.unwatch()
                    return
                if isinstance(current, bytes):
                    current = current.decode()
                if token is not None and current != token:
                    await pipe.unwatch()
                    logger.warning("Lock %s is held by another owner, not releasing", name)
                    return
                pipe.multi()
                pipe.delete(key)
                await pipe.execute()
            logger.debug("Lock released: %s", name)
        except WatchError:
            logger.warning("Lock %s changed hands while releasing, left in place", name)
        except RedisError:
            logger.exception("Failed to release lock %s", name)

    async def with_lock(
        self,
        name: str,
        ttl_seconds: int | None,
        fn: Callable[[], Awaitable[T]],
    ) -> T | Any:
        """
        Run `fn` only if the lock was acquired; always release afterwards.

        Returns LOCK_NOT_ACQUIRED (not an exception) when the lock is held elsewhere.
        """
        acquired = await self.acquire(name, ttl_seconds)
        if not acquired:
            logger.warning("Could not acquire lock: %s. Task skipped.", name)
            return LOCK_NOT_ACQUIRED

        try:
            return await fn()
        finally:
            await self.release(name)


class RedisScheduleSlotClaims(ScheduleSlotClaims):
    """
    `SET NX EX` on `scheduler:slot:{job}:{slot}`.

    The first instance to reach a slot claims it; later instances (started
    at a different time, or checking a few seconds later) skip that slot.
    Redis errors count as "not claimed".
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    @staticmethod
    def key_for(job_name: str, slot: int) -> str:
        return f"{_SLOT_KEY_PREFIX}{job_name}:{slot}"

    async def claim(self, job_name: str, slot: int, ttl_seconds: int) -> bool:
        try:
            claimed = await self._redis.set(self.key_for(job_name, slot), "1", nx=True, ex=ttl_seconds)
        except RedisError:
            logger.exception("Failed to claim slot %s of %s", slot, job_name)
            return False
        return bool(claimed)
