from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncEngine

from ledger_indexer.app.infrastructure.db.models.audit.audit_logs import AuditLogsDB

logger = logging.getLogger(__name__)


class SqlAlchemyAuditLogArchiver:
    """Deletes audit_logs rows older than the retention window."""

    def __init__(self, engine: AsyncEngine, *, retention_days: int = 90) -> None:
        self._engine = engine
        self._retention_days = retention_days

    async def archive_old_logs(self) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=self._retention_days)

        async with self._engine.begin() as conn:
            result = await conn.execute(delete(AuditLogsDB).where(AuditLogsDB.created_at < cutoff))

        count = result.rowcount or 0
        logger.info("Archived %s audit logs older than %s days", count, self._retention_days)
        return count

    async def __call__(self) -> dict[str, int]:
        return {"archivedCount": await self.archive_old_logs()}
