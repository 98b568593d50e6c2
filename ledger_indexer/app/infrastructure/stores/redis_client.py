from __future__ import annotations

from redis.asyncio import Redis

from ledger_indexer.app.config import settings


def create_app_redis() -> Redis:
    """Redis client for the checkpoint store, the lock and the job queue."""
    return Redis.from_url(settings.redis_url)
