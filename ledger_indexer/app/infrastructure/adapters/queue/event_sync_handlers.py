from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ledger_indexer.app.domain.errors import UnresolvableTransferError
from ledger_indexer.app.infrastructure.db.models._columns import new_id
from ledger_indexer.app.infrastructure.db.models.domain.contributions import ContributionsDB
from ledger_indexer.app.infrastructure.db.models.domain.groups import GroupsDB
from ledger_indexer.app.infrastructure.db.models.domain.memberships import MembershipsDB
from ledger_indexer.app.infrastructure.db.models.sync.approval_events import ApprovalEventsDB
from ledger_indexer.app.infrastructure.db.models.sync.on_chain_events import OnChainEventsDB
from ledger_indexer.app.infrastructure.db.upsert import dialect_insert
from ledger_indexer.app.infrastructure.queue.jobs import (
    ApprovalEventJob,
    SyncOnChainEventJob,
    TransferEventJob,
)

logger = logging.getLogger(__name__)


async def _fetch_one(conn: AsyncConnection, stmt: Any) -> dict[str, Any] | None:
    row = (await conn.execute(stmt)).mappings().first()
    return dict(row) if row is not None else None


class SqlAlchemyOnChainEventSyncer:
    """
    sync-on-chain-event -> on_chain_events.

    Strategy:
    - INSERT .. ON CONFLICT (transaction_hash, chain_id) DO NOTHING
    - read back the row, so retries and concurrent workers all return the same record
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def __call__(self, data: Mapping[str, Any]) -> dict[str, Any]:
        job = SyncOnChainEventJob.model_validate(data)
        logger.info(
            "Syncing on-chain event: %s tx=%s block=%s",
            job.event_name,
            job.transaction_hash,
            job.block_number,
        )

        async with self._engine.begin() as conn:
            stmt = dialect_insert(conn, OnChainEventsDB).values(
                id=new_id(),
                event_name=job.event_name,
                transaction_hash=job.transaction_hash,
                block_number=job.block_number,
                contract_address=job.contract_address,
                chain_id=job.chain_id,
                processed_at=datetime.now(timezone.utc),
                created_at=datetime.now(timezone.utc),
            ).on_conflict_do_nothing(
                index_elements=[OnChainEventsDB.transaction_hash, OnChainEventsDB.chain_id]
            )
            result = await conn.execute(stmt)

            row = await _fetch_one(
                conn,
                select(OnChainEventsDB.__table__).where(
                    OnChainEventsDB.transaction_hash == job.transaction_hash,
                    OnChainEventsDB.chain_id == job.chain_id,
                ),
            )

        if result.rowcount == 0:
            logger.info("On-chain event already persisted (id=%s), skipping", row["id"])
        return row


class SqlAlchemyApprovalEventRecorder:
    """process-approval-event -> approval_events, unique per transaction_hash."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def __call__(self, data: Mapping[str, Any]) -> dict[str, Any]:
        job = ApprovalEventJob.model_validate(data)
        logger.info(
            "Processing Approval event: owner=%s spender=%s amount=%s tx=%s",
            job.owner_address,
            job.spender_address,
            job.amount,
            job.transaction_hash,
        )

        async with self._engine.begin() as conn:
            stmt = dialect_insert(conn, ApprovalEventsDB).values(
                id=new_id(),
                owner_address=job.owner_address,
                spender_address=job.spender_address,
                amount=job.amount,
                transaction_hash=job.transaction_hash,
                block_number=job.block_number,
                contract_address=job.contract_address,
                chain_id=job.chain_id,
                created_at=datetime.now(timezone.utc),
            ).on_conflict_do_nothing(index_elements=[ApprovalEventsDB.transaction_hash])
            result = await conn.execute(stmt)

            row = await _fetch_one(
                conn,
                select(ApprovalEventsDB.__table__).where(
                    ApprovalEventsDB.transaction_hash == job.transaction_hash
                ),
            )

        if result.rowcount == 0:
            logger.info("Approval event already persisted (id=%s)", row["id"])
        return row


class SqlAlchemyTransferContributionRecorder:
    """
    process-transfer-event -> contributions.

    Strategy:
    1) explicit contributionId that already exists -> return it untouched
    2) a contribution with this transaction_hash exists -> return it
    3) otherwise resolve group by (contract_address, chain_id) and the member
       whose wallet sent the transfer, then
       INSERT .. ON CONFLICT (transaction_hash) DO NOTHING and read back.

    Unresolvable group/member raises UnresolvableTransferError (job fails and is retried).
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def __call__(self, data: Mapping[str, Any]) -> dict[str, Any]:
        job = TransferEventJob.model_validate(data)
        logger.info(
            "Processing Transfer event: from=%s to=%s amount=%s tx=%s",
            job.from_address,
            job.to_address,
            job.amount,
            job.transaction_hash,
        )

        async with self._engine.begin() as conn:
            if job.contribution_id:
                existing = await _fetch_one(
                    conn,
                    select(ContributionsDB.__table__).where(ContributionsDB.id == job.contribution_id),
                )
                if existing is not None:
                    logger.info("Contribution %s already recorded", job.contribution_id)
                    return existing

            existing = await _fetch_one(
                conn,
                select(ContributionsDB.__table__).where(
                    ContributionsDB.transaction_hash == job.transaction_hash
                ),
            )
            if existing is not None:
                logger.info(
                    "Contribution for tx=%s already exists (id=%s)",
                    job.transaction_hash,
                    existing["id"],
                )
                return existing

            group = (
                await conn.execute(
                    select(GroupsDB.id, GroupsDB.current_round).where(
                        GroupsDB.contract_address == job.contract_address,
                        GroupsDB.chain_id == job.chain_id,
                    )
                )
            ).first()
            if group is None:
                raise UnresolvableTransferError(
                    f"No group for contract {job.contract_address} on chain {job.chain_id}"
                )

            member = (
                await conn.execute(
                    select(MembershipsDB.user_id, MembershipsDB.wallet_address).where(
                        MembershipsDB.group_id == group.id,
                        MembershipsDB.wallet_address == job.from_address,
                    )
                )
            ).first()
            if member is None:
                raise UnresolvableTransferError(
                    f"Sender {job.from_address} is not a member of group {group.id}"
                )

            now = datetime.now(timezone.utc)
            await conn.execute(
                dialect_insert(conn, ContributionsDB).values(
                    id=job.contribution_id or new_id(),
                    group_id=group.id,
                    user_id=member.user_id,
                    wallet_address=member.wallet_address,
                    amount=job.amount,
                    round_number=group.current_round,
                    transaction_hash=job.transaction_hash,
                    timestamp=now,
                    created_at=now,
                    updated_at=now,
                ).on_conflict_do_nothing(index_elements=[ContributionsDB.transaction_hash])
            )

            row = await _fetch_one(
                conn,
                select(ContributionsDB.__table__).where(
                    ContributionsDB.transaction_hash == job.transaction_hash
                ),
            )

        logger.info("Contribution recorded for tx=%s (id=%s)", job.transaction_hash, row["id"])
        return row
