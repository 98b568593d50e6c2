from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ledger_indexer.app.infrastructure.db.models.domain.groups import (
    GROUP_STATUS_ACTIVE,
    GROUP_STATUS_COMPLETED,
    GROUP_STATUS_PENDING,
    GroupsDB,
)
from ledger_indexer.app.infrastructure.db.models.domain.memberships import MembershipsDB

logger = logging.getLogger(__name__)


class SqlAlchemyGroupStatusUpdater:
    """
    Group lifecycle transitions:

    - PENDING -> ACTIVE     when member count >= min_members and a contract is deployed,
    - ACTIVE  -> COMPLETED  when current_round >= total_rounds.

    A group may take both steps in one run. Also reports PENDING groups
    that have been waiting longer than `inactive_after_days`.
    """

    def __init__(self, engine: AsyncEngine, *, inactive_after_days: int = 30) -> None:
        self._engine = engine
        self._inactive_after_days = inactive_after_days

    async def update_group_statuses(self) -> int:
        updated = 0

        async with self._engine.begin() as conn:
            rows = (
                await conn.execute(
                    select(
                        GroupsDB.id,
                        GroupsDB.name,
                        GroupsDB.status,
                        GroupsDB.contract_address,
                        GroupsDB.min_members,
                        GroupsDB.current_round,
                        GroupsDB.total_rounds,
                    ).where(GroupsDB.status.in_([GROUP_STATUS_PENDING, GROUP_STATUS_ACTIVE]))
                )
            ).all()

            for row in rows:
                status = row.status

                if status == GROUP_STATUS_PENDING:
                    member_count = await self._member_count(conn, row.id)
                    if member_count >= row.min_members and row.contract_address:
                        status = GROUP_STATUS_ACTIVE
                        logger.info("Group %s (%s) transitioned to ACTIVE", row.name, row.id)

                if status == GROUP_STATUS_ACTIVE and row.current_round >= row.total_rounds:
                    status = GROUP_STATUS_COMPLETED
                    logger.info("Group %s (%s) transitioned to COMPLETED", row.name, row.id)

                if status != row.status:
                    await conn.execute(update(GroupsDB).where(GroupsDB.id == row.id).values(status=status))
                    updated += 1

        logger.info("Updated %s group statuses", updated)
        return updated

    async def check_inactive_groups(self) -> list[str]:
        cutoff = datetime.now(timezone.utc) - timedelta(days=self._inactive_after_days)

        async with self._engine.connect() as conn:
            result = await conn.execute(
                select(GroupsDB.id).where(
                    GroupsDB.status == GROUP_STATUS_PENDING,
                    GroupsDB.created_at < cutoff,
                )
            )
            group_ids = list(result.scalars().all())

        if group_ids:
            logger.warning(
                "Found %s groups pending for more than %s days",
                len(group_ids),
                self._inactive_after_days,
            )
        return group_ids

    async def __call__(self) -> dict[str, int]:
        updated_count = await self.update_group_statuses()
        inactive = await self.check_inactive_groups()
        return {"updatedCount": updated_count, "inactiveGroupCount": len(inactive)}

    @staticmethod
    async def _member_count(conn: AsyncConnection, group_id: str) -> int:
        result = await conn.execute(
            select(func.count()).select_from(MembershipsDB).where(MembershipsDB.group_id == group_id)
        )
        return int(result.scalar_one())
