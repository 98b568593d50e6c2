"""
Projection tests for the maintenance jobs (SQLite).

Tests:
- Audit log archival window
- Group status transitions and inactivity report
- Weekly contribution summaries with exact integer totals
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import insert, select

from ledger_indexer.app.infrastructure.adapters.maintenance.audit_log_archiver import (
    SqlAlchemyAuditLogArchiver,
)
from ledger_indexer.app.infrastructure.adapters.maintenance.contribution_summaries import (
    SqlAlchemyContributionSummaryGenerator,
)
from ledger_indexer.app.infrastructure.adapters.maintenance.group_status_updater import (
    SqlAlchemyGroupStatusUpdater,
)
from ledger_indexer.app.infrastructure.db.models import (
    AuditLogsDB,
    ContributionsDB,
    GroupsDB,
    MembershipsDB,
)

NOW = datetime.now(timezone.utc)


def days_ago(days):
    return NOW - timedelta(days=days)


async def add_group(engine, group_id, *, status, members=0, min_members=2, contract="C1",
                    current_round=1, total_rounds=3, created_at=None):
    async with engine.begin() as conn:
        await conn.execute(
            insert(GroupsDB).values(
                id=group_id,
                name=f"group {group_id}",
                contract_address=contract,
                chain_id=1,
                current_round=current_round,
                total_rounds=total_rounds,
                min_members=min_members,
                status=status,
                created_at=created_at or NOW,
            )
        )
        for i in range(members):
            await conn.execute(
                insert(MembershipsDB).values(
                    group_id=group_id,
                    user_id=f"{group_id}-u{i}",
                    wallet_address=f"{group_id}-w{i}",
                    payout_order=i + 1,
                )
            )


async def status_of(engine, group_id):
    async with engine.connect() as conn:
        return (await conn.execute(select(GroupsDB.status).where(GroupsDB.id == group_id))).scalar_one()


class TestAuditLogArchiver:
    @pytest.mark.asyncio
    async def test_deletes_only_old_rows(self, engine):
        async with engine.begin() as conn:
            await conn.execute(
                insert(AuditLogsDB),
                [
                    {"id": "old", "action": "LOGIN", "created_at": days_ago(120)},
                    {"id": "edge", "action": "LOGIN", "created_at": days_ago(89)},
                    {"id": "new", "action": "LOGIN", "created_at": days_ago(1)},
                ],
            )

        result = await SqlAlchemyAuditLogArchiver(engine, retention_days=90)()

        assert result == {"archivedCount": 1}
        async with engine.connect() as conn:
            remaining = (await conn.execute(select(AuditLogsDB.id).order_by(AuditLogsDB.id))).scalars().all()
        assert remaining == ["edge", "new"]


class TestGroupStatusUpdater:
    @pytest.mark.asyncio
    async def test_pending_becomes_active_with_members_and_contract(self, engine):
        await add_group(engine, "ready", status="PENDING", members=2)
        await add_group(engine, "short", status="PENDING", members=1)
        await add_group(engine, "undeployed", status="PENDING", members=3, contract=None)

        updated = await SqlAlchemyGroupStatusUpdater(engine).update_group_statuses()

        assert updated == 1
        assert await status_of(engine, "ready") == "ACTIVE"
        assert await status_of(engine, "short") == "PENDING"
        assert await status_of(engine, "undeployed") == "PENDING"

    @pytest.mark.asyncio
    async def test_active_completes_after_last_round(self, engine):
        await add_group(engine, "done", status="ACTIVE", current_round=3, total_rounds=3)
        await add_group(engine, "ongoing", status="ACTIVE", current_round=2, total_rounds=3)

        await SqlAlchemyGroupStatusUpdater(engine).update_group_statuses()

        assert await status_of(engine, "done") == "COMPLETED"
        assert await status_of(engine, "ongoing") == "ACTIVE"

    @pytest.mark.asyncio
    async def test_completed_groups_are_left_alone(self, engine):
        await add_group(engine, "closed", status="COMPLETED", current_round=9, total_rounds=3)

        assert await SqlAlchemyGroupStatusUpdater(engine).update_group_statuses() == 0

    @pytest.mark.asyncio
    async def test_inactive_pending_groups_are_reported(self, engine):
        await add_group(engine, "stale", status="PENDING", created_at=days_ago(45))
        await add_group(engine, "fresh", status="PENDING", created_at=days_ago(5))

        result = await SqlAlchemyGroupStatusUpdater(engine, inactive_after_days=30)()

        assert result == {"updatedCount": 0, "inactiveGroupCount": 1}


class TestContributionSummaries:
    @pytest.mark.asyncio
    async def test_weekly_totals_are_exact(self, engine):
        await add_group(engine, "A", status="ACTIVE", members=3)
        await add_group(engine, "P", status="PENDING", members=1)

        big = "90000000000000000001"
        async with engine.begin() as conn:
            await conn.execute(
                insert(ContributionsDB),
                [
                    {
                        "group_id": "A",
                        "user_id": "A-u0",
                        "wallet_address": "A-w0",
                        "amount": big,
                        "round_number": 1,
                        "transaction_hash": "t1",
                        "timestamp": days_ago(1),
                        "created_at": days_ago(1),
                    },
                    {
                        "group_id": "A",
                        "user_id": "A-u1",
                        "wallet_address": "A-w1",
                        "amount": "9",
                        "round_number": 1,
                        "transaction_hash": "t2",
                        "timestamp": days_ago(2),
                        "created_at": days_ago(2),
                    },
                    {
                        "group_id": "A",
                        "user_id": "A-u2",
                        "wallet_address": "A-w2",
                        "amount": "1000",
                        "round_number": 1,
                        "transaction_hash": "t-old",
                        "timestamp": days_ago(20),
                        "created_at": days_ago(20),
                    },
                ],
            )

        generator = SqlAlchemyContributionSummaryGenerator(engine)
        summaries = await generator.generate_weekly_summaries()

        assert len(summaries) == 1
        summary = summaries[0]
        assert summary.group_id == "A"
        assert summary.total_contributions == 2
        assert summary.total_amount == "90000000000000000010"
        assert summary.member_count == 3
        assert [c.amount for c in summary.contributions] == [big, "9"]

        assert await generator() == {"summaryCount": 1}

    @pytest.mark.asyncio
    async def test_no_active_groups(self, engine):
        assert await SqlAlchemyContributionSummaryGenerator(engine)() == {"summaryCount": 0}
