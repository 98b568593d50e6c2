"""
Admin API for the ledger indexer.

Runs the event listener, the maintenance scheduler and the event-sync
worker as background loops for the lifetime of the process, and exposes
the listener control surface:

- POST /v1/admin/event-listener/start
- POST /v1/admin/event-listener/stop
- GET  /v1/admin/event-listener/status

Usage:
    uvicorn ledger_indexer.app.interface.api.server:build_app --factory
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Sequence

from fastapi import FastAPI

from ledger_indexer.app.application.services.event_poller import ContractEventPoller
from ledger_indexer.app.config import settings
from ledger_indexer.app.infrastructure.db.engine import create_app_async_engine
from ledger_indexer.app.infrastructure.factories.event_poller_factory import event_poller_factory
from ledger_indexer.app.infrastructure.factories.event_sync_worker_factory import (
    event_sync_worker_factory,
)
from ledger_indexer.app.infrastructure.factories.maintenance_scheduler_factory import (
    maintenance_scheduler_factory,
)
from ledger_indexer.app.infrastructure.fetchers.http_client import create_horizon_http_client
from ledger_indexer.app.infrastructure.stores.redis_client import create_app_redis
from ledger_indexer.app.interface.api.admin_router import router as admin_router

logger = logging.getLogger(__name__)

BackgroundLoop = Callable[[asyncio.Event], Awaitable[None]]
Cleanup = Callable[[], Awaitable[None]]


def create_app(
    *,
    poller: ContractEventPoller,
    background: Sequence[BackgroundLoop] = (),
    cleanups: Sequence[Cleanup] = (),
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        shutdown = asyncio.Event()
        tasks = [asyncio.create_task(loop(shutdown)) for loop in background]
        logger.info("Started %s background loops", len(tasks))
        try:
            yield
        finally:
            shutdown.set()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error("Background loop ended with error: %r", result)
            for cleanup in cleanups:
                await cleanup()
            logger.info("Background loops stopped")

    app = FastAPI(title=settings.project_name, lifespan=lifespan)
    app.state.poller = poller
    app.include_router(admin_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app


def build_app() -> FastAPI:
    """Production wiring: Postgres projection, Redis stores, Horizon client."""
    engine = create_app_async_engine()
    redis = create_app_redis()
    client = create_horizon_http_client()

    poller = event_poller_factory(backend="sqlalchemy", engine=engine, redis=redis, client=client)
    scheduler = maintenance_scheduler_factory(backend="redis", engine=engine, redis=redis)
    worker = event_sync_worker_factory(backend="sqlalchemy", engine=engine, redis=redis)

    return create_app(
        poller=poller,
        background=(
            lambda shutdown: poller.run_forever(shutdown=shutdown),
            lambda shutdown: scheduler.run_forever(shutdown=shutdown),
            lambda shutdown: worker.run_forever(shutdown=shutdown),
        ),
        cleanups=(client.aclose, redis.aclose, engine.dispose),
    )
