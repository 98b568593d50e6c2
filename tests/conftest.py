from __future__ import annotations

from datetime import datetime, timezone

import fakeredis
import pytest
import pytest_asyncio
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import create_async_engine

from ledger_indexer.app.domain.models import LedgerTransaction
from ledger_indexer.app.infrastructure.db.db_base import BaseDB
from ledger_indexer.app.infrastructure.db.models import GroupsDB, MembershipsDB


@pytest_asyncio.fixture
async def engine(tmp_path):
    """SQLite projection with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'projection.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(BaseDB.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def redis():
    """Isolated in-memory Redis."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())
    yield client
    await client.aclose()


@pytest.fixture
def make_tx():
    def _make(
        hash: str = "H",
        ledger: int = 11,
        successful: bool = True,
        result_meta_xdr: str | None = "AAAA",
        created_at: datetime | None = None,
    ) -> LedgerTransaction:
        return LedgerTransaction(
            hash=hash,
            ledger=ledger,
            successful=successful,
            result_meta_xdr=result_meta_xdr,
            created_at=created_at or datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc),
        )

    return _make


@pytest_asyncio.fixture
async def seeded_group(engine):
    """
    Group G (round 1 of 3, min 2 members) with members:
      U  -> wallet WU, payout order 1
      U9 -> wallet W9, payout order 2
    """
    async with engine.begin() as conn:
        await conn.execute(
            insert(GroupsDB).values(
                id="G",
                name="Family circle",
                contract_address="CCONTRACT",
                chain_id=1,
                current_round=1,
                total_rounds=3,
                min_members=2,
                status="ACTIVE",
            )
        )
        await conn.execute(
            insert(MembershipsDB),
            [
                {
                    "id": "m-u",
                    "group_id": "G",
                    "user_id": "U",
                    "wallet_address": "WU",
                    "payout_order": 1,
                    "has_paid_current_round": False,
                    "has_received_payout": False,
                },
                {
                    "id": "m-u9",
                    "group_id": "G",
                    "user_id": "U9",
                    "wallet_address": "W9",
                    "payout_order": 2,
                    "has_paid_current_round": True,
                    "has_received_payout": False,
                },
            ],
        )
    return "G"
