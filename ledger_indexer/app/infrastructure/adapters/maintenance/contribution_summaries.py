from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine

from ledger_indexer.app.infrastructure.db.models.domain.contributions import ContributionsDB
from ledger_indexer.app.infrastructure.db.models.domain.groups import GROUP_STATUS_ACTIVE, GroupsDB
from ledger_indexer.app.infrastructure.db.models.domain.memberships import MembershipsDB

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContributionLine:
    user_id: str
    wallet_address: str
    amount: str
    round_number: int


@dataclass(frozen=True)
class ContributionSummary:
    group_id: str
    group_name: str
    total_contributions: int
    total_amount: str
    member_count: int
    contributions: list[ContributionLine] = field(default_factory=list)


def _sum_amounts(amounts: list[str]) -> int:
    total = 0
    for amount in amounts:
        try:
            total += int(amount)
        except ValueError:
            logger.warning("Ignoring non-integer contribution amount %r in summary", amount)
    return total


class SqlAlchemyContributionSummaryGenerator:
    """
    Weekly contribution digest per ACTIVE group.

    Amounts are summed as exact integers (stroops), never floats.
    Delivery to members belongs to the notification service; here each
    summary is only logged.
    """

    def __init__(self, engine: AsyncEngine, *, window_days: int = 7) -> None:
        self._engine = engine
        self._window_days = window_days

    async def generate_weekly_summaries(self) -> list[ContributionSummary]:
        since = datetime.now(timezone.utc) - timedelta(days=self._window_days)
        summaries: list[ContributionSummary] = []

        async with self._engine.connect() as conn:
            groups = (
                await conn.execute(
                    select(GroupsDB.id, GroupsDB.name).where(GroupsDB.status == GROUP_STATUS_ACTIVE)
                )
            ).all()

            for group in groups:
                contributions = (
                    await conn.execute(
                        select(
                            ContributionsDB.user_id,
                            ContributionsDB.wallet_address,
                            ContributionsDB.amount,
                            ContributionsDB.round_number,
                        )
                        .where(
                            ContributionsDB.group_id == group.id,
                            ContributionsDB.created_at >= since,
                        )
                        .order_by(ContributionsDB.created_at.desc())
                    )
                ).all()

                member_count = (
                    await conn.execute(
                        select(func.count())
                        .select_from(MembershipsDB)
                        .where(MembershipsDB.group_id == group.id)
                    )
                ).scalar_one()

                summaries.append(
                    ContributionSummary(
                        group_id=group.id,
                        group_name=group.name,
                        total_contributions=len(contributions),
                        total_amount=str(_sum_amounts([c.amount for c in contributions])),
                        member_count=int(member_count),
                        contributions=[
                            ContributionLine(
                                user_id=c.user_id,
                                wallet_address=c.wallet_address,
                                amount=c.amount,
                                round_number=c.round_number,
                            )
                            for c in contributions
                        ],
                    )
                )

        logger.info("Generated %s weekly contribution summaries", len(summaries))
        return summaries

    async def send_summaries_to_members(self, summaries: list[ContributionSummary]) -> None:
        for summary in summaries:
            logger.info(
                "Sending summary for group %s to %s members",
                summary.group_name,
                summary.member_count,
            )
            logger.debug("Summary: %s", asdict(summary))

    async def __call__(self) -> dict[str, int]:
        summaries = await self.generate_weekly_summaries()
        await self.send_summaries_to_members(summaries)
        return {"summaryCount": len(summaries)}
