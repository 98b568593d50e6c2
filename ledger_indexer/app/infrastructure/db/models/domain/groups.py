from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_indexer.app.infrastructure.db.db_base import BaseDB
from ledger_indexer.app.infrastructure.db.models._columns import new_id, utcnow

GROUP_STATUS_PENDING = "PENDING"
GROUP_STATUS_ACTIVE = "ACTIVE"
GROUP_STATUS_COMPLETED = "COMPLETED"


class GroupsDB(BaseDB):
    """
    Savings group projection.

    Rows are created by the setup flows of the CRUD API; this pipeline only
    advances `current_round` (RoundCompleted) and `status` (maintenance).
    `current_round` never decreases.
    """

    __tablename__ = "groups"
    __table_args__ = (
        # Queue transfers resolve their group by contract
        Index("ix_groups_contract_chain", "contract_address", "chain_id"),
        Index("ix_groups_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    contract_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    chain_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    current_round: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_rounds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_members: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=GROUP_STATUS_PENDING)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
