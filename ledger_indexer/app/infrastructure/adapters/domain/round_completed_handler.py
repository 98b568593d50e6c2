from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ledger_indexer.app.domain.models import LedgerTransaction
from ledger_indexer.app.domain.payload import read_int, read_string
from ledger_indexer.app.domain.ports.out import ContractEventHandler
from ledger_indexer.app.infrastructure.db.models.domain.groups import GroupsDB
from ledger_indexer.app.infrastructure.db.models.domain.memberships import MembershipsDB

logger = logging.getLogger(__name__)

_GROUP_ID_KEYS = ("groupId", "group_id")
_PAYOUT_USER_KEYS = (
    "payoutRecipientUserId",
    "payoutUserId",
    "recipientUserId",
    "userId",
    "user_id",
)
_PAYOUT_WALLET_KEYS = (
    "payoutRecipientWallet",
    "recipientWallet",
    "walletAddress",
    "wallet_address",
)
_PAYOUT_ORDER_KEYS = ("payoutOrder", "payout_order")


class SqlAlchemyRoundCompletedHandler(ContractEventHandler):
    """
    Applies RoundCompleted to the projection.

    Strategy:
    - groups.current_round += 1 (unconditional),
    - reset has_paid_current_round for every membership of the group,
    - attribute the payout: recipient user id -> wallet -> payout order,
      first identifier that matches a membership wins; no match is a no-op.

    Correct only when observed after every ContributionReceived of the
    round it closes; ledger order is the sole guarantee of that.
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
        if not group_id:
            logger.warning("Skipping RoundCompleted event from tx %s due to missing groupId", tx.hash)
            return

        payout_user_id = read_string(payload, _PAYOUT_USER_KEYS)
        payout_wallet = read_string(payload, _PAYOUT_WALLET_KEYS)
        payout_order = read_int(payload, _PAYOUT_ORDER_KEYS)

        async with self._engine.begin() as conn:
            result = await conn.execute(
                update(GroupsDB)
                .where(GroupsDB.id == group_id)
                .values(current_round=GroupsDB.current_round + 1)
            )
            if result.rowcount == 0:
                logger.warning("RoundCompleted tx=%s references unknown group %s", tx.hash, group_id)

            await conn.execute(
                update(MembershipsDB)
                .where(MembershipsDB.group_id == group_id)
                .values(has_paid_current_round=False)
            )

            recipient = await self._mark_payout_recipient(
                conn,
                group_id=group_id,
                user_id=payout_user_id,
                wallet_address=payout_wallet,
                payout_order=payout_order,
            )

        if recipient is None:
            logger.info("Round completed tx=%s group=%s (payout unattributed)", tx.hash, group_id)
        else:
            logger.info("Round completed tx=%s group=%s payout via %s", tx.hash, group_id, recipient)

    @staticmethod
    async def _mark_payout_recipient(
        conn: AsyncConnection,
        *,
        group_id: str,
        user_id: str | None,
        wallet_address: str | None,
        payout_order: int | None,
    ) -> str | None:
        candidates = (
            ("userId", MembershipsDB.user_id, user_id),
            ("walletAddress", MembershipsDB.wallet_address, wallet_address),
            ("payoutOrder", MembershipsDB.payout_order, payout_order),
        )

        for label, column, value in candidates:
            if value is None:
                continue
            result = await conn.execute(
                update(MembershipsDB)
                .where(MembershipsDB.group_id == group_id, column == value)
                .values(has_received_payout=True)
            )
            if result.rowcount:
                return label

        return None
