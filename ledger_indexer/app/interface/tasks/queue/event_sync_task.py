from __future__ import annotations

import json
from typing import Any

from ledger_indexer.app.infrastructure.db.engine import create_app_async_engine
from ledger_indexer.app.infrastructure.factories.event_sync_worker_factory import (
    create_event_sync_queue,
    event_sync_worker_factory,
)
from ledger_indexer.app.infrastructure.queue.jobs import EVENT_SYNC_JOB_NAMES, QueuedJob
from ledger_indexer.app.infrastructure.stores.redis_client import create_app_redis


async def run_event_sync_worker_task(*, backend: str = "sqlalchemy") -> None:
    """
    Task: consume the event-sync queue until interrupted.

    - sync-on-chain-event    -> on_chain_events,
    - process-transfer-event -> contributions,
    - process-approval-event -> approval_events.
    """
    engine = create_app_async_engine()
    redis = create_app_redis()
    try:
        worker = event_sync_worker_factory(backend=backend, engine=engine, redis=redis)
        await worker.run_forever()
    finally:
        await redis.aclose()
        await engine.dispose()


async def enqueue_event_sync_job_task(*, job_name: str, data: str | dict[str, Any]) -> QueuedJob:
    """Task: push one job onto the event-sync queue; `data` may be a JSON object string."""
    if job_name not in EVENT_SYNC_JOB_NAMES:
        raise ValueError(f"Unsupported event-sync job: {job_name!r}")

    payload = json.loads(data) if isinstance(data, str) else dict(data)
    if not isinstance(payload, dict):
        raise ValueError("Job data must be a JSON object")

    redis = create_app_redis()
    try:
        return await create_event_sync_queue(redis).enqueue(job_name, payload)
    finally:
        await redis.aclose()
