from __future__ import annotations

from typing import Callable, Dict

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from ledger_indexer.app.application.services.maintenance.scheduler import (
    MaintenanceJob,
    MaintenanceScheduler,
)
from ledger_indexer.app.config import settings
from ledger_indexer.app.infrastructure.adapters.maintenance.audit_log_archiver import (
    SqlAlchemyAuditLogArchiver,
)
from ledger_indexer.app.infrastructure.adapters.maintenance.contribution_summaries import (
    SqlAlchemyContributionSummaryGenerator,
)
from ledger_indexer.app.infrastructure.adapters.maintenance.group_status_updater import (
    SqlAlchemyGroupStatusUpdater,
)
from ledger_indexer.app.infrastructure.stores.redis_lock import (
    RedisDistributedLock,
    RedisScheduleSlotClaims,
)

ARCHIVE_AUDIT_LOGS = "archive-audit-logs"
UPDATE_GROUP_STATUSES = "update-group-statuses"
SEND_CONTRIBUTION_SUMMARIES = "send-contribution-summaries"

_HOUR = 3600
_DAY = 24 * _HOUR
_WEEK = 7 * _DAY

# Slots are aligned to the Unix epoch (UTC), which fell on a Thursday.
_DAILY_AT_0200 = 2 * _HOUR
_MONDAYS_AT_0900 = 4 * _DAY + 9 * _HOUR

MaintenanceSchedulerFactory = Callable[[AsyncEngine, Redis], MaintenanceScheduler]

_SCHEDULER_REGISTRY: Dict[str, MaintenanceSchedulerFactory] = {}


def build_maintenance_jobs(engine: AsyncEngine) -> list[MaintenanceJob]:
    return [
        MaintenanceJob(
            name=ARCHIVE_AUDIT_LOGS,
            run=SqlAlchemyAuditLogArchiver(engine, retention_days=settings.audit_log_retention_days),
            interval_seconds=_DAY,
            lock_ttl_seconds=600,
            offset_seconds=_DAILY_AT_0200,
        ),
        MaintenanceJob(
            name=UPDATE_GROUP_STATUSES,
            run=SqlAlchemyGroupStatusUpdater(engine, inactive_after_days=settings.inactive_group_days),
            interval_seconds=_HOUR,
            lock_ttl_seconds=300,
        ),
        MaintenanceJob(
            name=SEND_CONTRIBUTION_SUMMARIES,
            run=SqlAlchemyContributionSummaryGenerator(engine),
            interval_seconds=_WEEK,
            lock_ttl_seconds=600,
            offset_seconds=_MONDAYS_AT_0900,
        ),
    ]


def _make_redis_scheduler(engine: AsyncEngine, redis: Redis) -> MaintenanceScheduler:
    return MaintenanceScheduler(
        lock=RedisDistributedLock(redis),
        slot_claims=RedisScheduleSlotClaims(redis),
        jobs=build_maintenance_jobs(engine),
        max_retries=settings.maintenance_max_retries,
        base_delay_seconds=settings.maintenance_base_delay_seconds,
    )


# Register backends
_SCHEDULER_REGISTRY["redis"] = _make_redis_scheduler


def maintenance_scheduler_factory(
    *,
    backend: str,
    engine: AsyncEngine,
    redis: Redis,
) -> MaintenanceScheduler:
    try:
        factory = _SCHEDULER_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported maintenance scheduler backend: {backend!r}")

    return factory(engine, redis)
