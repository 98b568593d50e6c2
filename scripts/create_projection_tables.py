import asyncio
import logging

from ledger_indexer.app.infrastructure.db.db_base import BaseDB
from ledger_indexer.app.infrastructure.db.engine import create_app_async_engine
import ledger_indexer.app.infrastructure.db.models  # noqa: F401  (registers tables)

logger = logging.getLogger(__name__)


async def create_projection_tables() -> None:
    """Create missing projection tables (local/dev setups without Alembic)."""
    engine = create_app_async_engine()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(BaseDB.metadata.create_all)
        logger.info("Projection tables ready: %s", sorted(BaseDB.metadata.tables))
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    asyncio.run(create_projection_tables())
