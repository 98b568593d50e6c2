from __future__ import annotations

import logging
from typing import Final

from redis.asyncio import Redis
from redis.exceptions import WatchError

from ledger_indexer.app.domain.ports.out import CheckpointStore, ProcessedTransactionStore

logger = logging.getLogger(__name__)

_CHECKPOINT_KEY_PREFIX: Final[str] = "event-listener:last-processed-ledger:"
_PROCESSED_TX_KEY_PREFIX: Final[str] = "event-listener:processed-tx:"
_MAX_WATCH_RETRIES: Final[int] = 10


def _parse_ledger(raw: bytes | str | None) -> int:
    if raw is None:
        return 0
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


class RedisCheckpointStore(CheckpointStore):
    """
    Last fully-handled ledger per contract, kept in Redis.

    `advance` is a max-update (WATCH/MULTI), so concurrent pollers on
    several instances can never move the checkpoint backwards.
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    @staticmethod
    def key_for(contract_address: str) -> str:
        return f"{_CHECKPOINT_KEY_PREFIX}{contract_address}"

    async def get_last_processed_ledger(self, contract_address: str) -> int:
        return _parse_ledger(await self._redis.get(self.key_for(contract_address)))

    async def advance(self, contract_address: str, ledger: int) -> int:
        key = self.key_for(contract_address)

        for _ in range(_MAX_WATCH_RETRIES):
            async with self._redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    current = _parse_ledger(await pipe.get(key))
                    if ledger <= current:
                        await pipe.unwatch()
                        return current
                    pipe.multi()
                    pipe.set(key, str(ledger))
                    await pipe.execute()
                    return ledger
                except WatchError:
                    # another writer touched the key; re-read and retry
                    continue

        logger.warning("Checkpoint advance for %s lost %s races, re-reading", contract_address, _MAX_WATCH_RETRIES)
        return await self.get_last_processed_ledger(contract_address)


class RedisProcessedTransactionStore(ProcessedTransactionStore):
    """
    Presence markers for transactions whose processing attempt completed.

    Markers expire after `ttl_seconds`; a TTL of 0 (or less) keeps them forever.
    """

    def __init__(self, redis: Redis, *, ttl_seconds: int = 0) -> None:
        self._redis = redis
        self._ttl_seconds = ttl_seconds

    @staticmethod
    def key_for(tx_hash: str) -> str:
        return f"{_PROCESSED_TX_KEY_PREFIX}{tx_hash}"

    async def is_processed(self, tx_hash: str) -> bool:
        if not tx_hash:
            return False
        raw = await self._redis.get(self.key_for(tx_hash))
        return raw in (b"1", "1")

    async def mark_processed(self, tx_hash: str) -> None:
        if not tx_hash:
            return
        if self._ttl_seconds > 0:
            await self._redis.set(self.key_for(tx_hash), "1", ex=self._ttl_seconds)
        else:
            await self._redis.set(self.key_for(tx_hash), "1")
