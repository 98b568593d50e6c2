from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ledger_indexer.app.config import settings


def create_app_async_engine(*, url: str | None = None, echo: bool = False) -> AsyncEngine:
    """
    AsyncEngine for the projection database.

    Shared by the poller handlers, the event-sync worker, maintenance jobs
    and migrations; `url` overrides DATABASE_URL.
    """
    return create_async_engine(
        url or settings.database_url,  # postgresql+asyncpg://...
        echo=echo,
        pool_pre_ping=True,
    )
