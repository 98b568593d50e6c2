from __future__ import annotations

import logging

from ledger_indexer.app.application.services.event_poller import PollCycleReport
from ledger_indexer.app.infrastructure.db.engine import create_app_async_engine
from ledger_indexer.app.infrastructure.factories.event_poller_factory import event_poller_factory
from ledger_indexer.app.infrastructure.fetchers.http_client import create_horizon_http_client
from ledger_indexer.app.infrastructure.stores.redis_client import create_app_redis

logger = logging.getLogger(__name__)


async def poll_contract_events_once_task(*, backend: str = "sqlalchemy") -> PollCycleReport:
    """
    Task: one polling cycle for the configured contract.

    - fetches transactions after the stored checkpoint,
    - decodes and applies ContributionReceived / RoundCompleted,
    - advances the checkpoint.
    """
    engine = create_app_async_engine()
    redis = create_app_redis()
    client = create_horizon_http_client()
    try:
        poller = event_poller_factory(backend=backend, engine=engine, redis=redis, client=client)
        report = await poller.poll_now()
        logger.info("Single poll finished: %s", report)
        return report
    finally:
        await client.aclose()
        await redis.aclose()
        await engine.dispose()


async def run_event_listener_task(*, backend: str = "sqlalchemy") -> None:
    """Task: poll continuously at EVENT_POLL_INTERVAL_MS until interrupted."""
    engine = create_app_async_engine()
    redis = create_app_redis()
    client = create_horizon_http_client()
    try:
        poller = event_poller_factory(backend=backend, engine=engine, redis=redis, client=client)
        await poller.run_forever()
    finally:
        await client.aclose()
        await redis.aclose()
        await engine.dispose()
