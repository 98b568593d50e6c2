from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_indexer.app.infrastructure.db.db_base import BaseDB
from ledger_indexer.app.infrastructure.db.models._columns import new_id, utcnow


class ContributionsDB(BaseDB):
    """
    One on-chain contribution to a group round.

    Idempotency:
      - at most one row per transaction_hash (unique constraint); both the
        poller and the queue worker rely on it.

    `amount` keeps the exact decimal string emitted on-chain.
    """

    __tablename__ = "contributions"
    __table_args__ = (
        UniqueConstraint("transaction_hash", name="uq_contributions_transaction_hash"),
        Index("ix_contributions_group_round", "group_id", "round_number"),
        Index("ix_contributions_user", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(255), nullable=False)

    amount: Mapped[str] = mapped_column(String(255), nullable=False)
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)

    transaction_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
