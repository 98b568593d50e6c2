from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine

from ledger_indexer.app.domain.models import LedgerTransaction
from ledger_indexer.app.domain.payload import read_int, read_string
from ledger_indexer.app.domain.ports.out import ContractEventHandler
from ledger_indexer.app.infrastructure.db.models._columns import new_id
from ledger_indexer.app.infrastructure.db.models.domain.contributions import ContributionsDB
from ledger_indexer.app.infrastructure.db.models.domain.memberships import MembershipsDB
from ledger_indexer.app.infrastructure.db.upsert import dialect_insert

logger = logging.getLogger(__name__)

_GROUP_ID_KEYS = ("groupId", "group_id")
_USER_ID_KEYS = ("userId", "user_id", "memberId")
_WALLET_KEYS = ("walletAddress", "wallet_address", "memberWallet")
_AMOUNT_KEYS = ("amount",)
_ROUND_KEYS = ("roundNumber", "round_number")


class SqlAlchemyContributionReceivedHandler(ContractEventHandler):
    """
    Applies ContributionReceived to the projection.

    Strategy:
    - Upsert contributions by transaction_hash (ON CONFLICT DO UPDATE), so a
      redelivered transaction overwrites (repairs) the row instead of duplicating it.
    - Flag the member as paid for the current round.

    Both writes share one DB transaction.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def handle(
        self,
        *,
        payload: Mapping[str, Any],
        tx: LedgerTransaction,
    ) -> None:
        group_id = read_string(payload, _GROUP_ID_KEYS)
        user_id = read_string(payload, _USER_ID_KEYS)
        wallet_address = read_string(payload, _WALLET_KEYS)
        amount = read_string(payload, _AMOUNT_KEYS)
        round_number = read_int(payload, _ROUND_KEYS)
        if round_number is None:
            round_number = 1

        if not group_id or not user_id or not wallet_address or not amount:
            logger.warning(
                "Skipping ContributionReceived event from tx %s due to missing fields",
                tx.hash,
            )
            return

        timestamp = tx.created_at or datetime.now(timezone.utc)
        now = datetime.now(timezone.utc)

        async with self._engine.begin() as conn:
            stmt = dialect_insert(conn, ContributionsDB).values(
                id=new_id(),
                group_id=group_id,
                user_id=user_id,
                wallet_address=wallet_address,
                amount=amount,
                round_number=round_number,
                transaction_hash=tx.hash,
                timestamp=timestamp,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[ContributionsDB.transaction_hash],
                set_={
                    "group_id": stmt.excluded.group_id,
                    "user_id": stmt.excluded.user_id,
                    "wallet_address": stmt.excluded.wallet_address,
                    "amount": stmt.excluded.amount,
                    "round_number": stmt.excluded.round_number,
                    "timestamp": stmt.excluded.timestamp,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await conn.execute(stmt)

            await conn.execute(
                update(MembershipsDB)
                .where(
                    MembershipsDB.group_id == group_id,
                    MembershipsDB.user_id == user_id,
                )
                .values(has_paid_current_round=True)
            )

        logger.info(
            "Recorded contribution tx=%s group=%s user=%s round=%s amount=%s",
            tx.hash,
            group_id,
            user_id,
            round_number,
            amount,
        )
