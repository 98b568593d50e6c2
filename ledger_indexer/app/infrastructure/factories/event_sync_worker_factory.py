from __future__ import annotations

from typing import Callable, Dict

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from ledger_indexer.app.application.services.event_sync_worker import EventSyncWorker
from ledger_indexer.app.config import settings
from ledger_indexer.app.infrastructure.adapters.queue.event_sync_handlers import (
    SqlAlchemyApprovalEventRecorder,
    SqlAlchemyOnChainEventSyncer,
    SqlAlchemyTransferContributionRecorder,
)
from ledger_indexer.app.infrastructure.queue.jobs import (
    PROCESS_APPROVAL_EVENT,
    PROCESS_TRANSFER_EVENT,
    SYNC_ON_CHAIN_EVENT,
)
from ledger_indexer.app.infrastructure.queue.redis_job_queue import RedisJobQueue

EventSyncWorkerFactory = Callable[[AsyncEngine, Redis], EventSyncWorker]

_WORKER_REGISTRY: Dict[str, EventSyncWorkerFactory] = {}


def create_event_sync_queue(redis: Redis) -> RedisJobQueue:
    return RedisJobQueue(
        redis,
        name=settings.event_sync_queue_name,
        dead_letter_name=settings.dead_letter_queue_name,
        max_attempts=settings.event_sync_max_attempts,
        backoff_seconds=settings.event_sync_backoff_seconds,
        stalled_after_seconds=settings.event_sync_stalled_after_seconds,
    )


def _make_sqlalchemy_worker(engine: AsyncEngine, redis: Redis) -> EventSyncWorker:
    return EventSyncWorker(
        queue=create_event_sync_queue(redis),
        handlers={
            SYNC_ON_CHAIN_EVENT: SqlAlchemyOnChainEventSyncer(engine),
            PROCESS_TRANSFER_EVENT: SqlAlchemyTransferContributionRecorder(engine),
            PROCESS_APPROVAL_EVENT: SqlAlchemyApprovalEventRecorder(engine),
        },
    )


# Register backends
_WORKER_REGISTRY["sqlalchemy"] = _make_sqlalchemy_worker


def event_sync_worker_factory(
    *,
    backend: str,
    engine: AsyncEngine,
    redis: Redis,
) -> EventSyncWorker:
    try:
        factory = _WORKER_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported event-sync worker backend: {backend!r}")

    return factory(engine, redis)
