from __future__ import annotations

from ledger_indexer.app.application.services.maintenance.scheduler import JobRunResult
from ledger_indexer.app.infrastructure.db.engine import create_app_async_engine
from ledger_indexer.app.infrastructure.factories.maintenance_scheduler_factory import (
    maintenance_scheduler_factory,
)
from ledger_indexer.app.infrastructure.stores.redis_client import create_app_redis


async def run_maintenance_job_task(*, job_name: str, backend: str = "redis") -> JobRunResult:
    """
    Task: run one maintenance job right now, under its distributed lock.

    Job names: archive-audit-logs, update-group-statuses, send-contribution-summaries.
    """
    engine = create_app_async_engine()
    redis = create_app_redis()
    try:
        scheduler = maintenance_scheduler_factory(backend=backend, engine=engine, redis=redis)
        return await scheduler.run_job(job_name)
    finally:
        await redis.aclose()
        await engine.dispose()


async def run_maintenance_scheduler_task(*, backend: str = "redis") -> None:
    engine = create_app_async_engine()
    redis = create_app_redis()
    try:
        scheduler = maintenance_scheduler_factory(backend=backend, engine=engine, redis=redis)
        await scheduler.run_forever()
    finally:
        await redis.aclose()
        await engine.dispose()
