from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_indexer.app.infrastructure.db.db_base import BaseDB
from ledger_indexer.app.infrastructure.db.models._columns import new_id, utcnow


class MembershipsDB(BaseDB):
    """
    A user's seat in a group.

    Logical identity is (group_id, user_id). `payout_order` is the fixed
    queue position; the two flags are flipped by event handlers only.
    """

    __tablename__ = "memberships"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_memberships_group_user"),
        Index("ix_memberships_group_wallet", "group_id", "wallet_address"),
        Index("ix_memberships_group_payout_order", "group_id", "payout_order"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)

    wallet_address: Mapped[str] = mapped_column(String(255), nullable=False)
    payout_order: Mapped[int] = mapped_column(Integer, nullable=False)

    has_paid_current_round: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_received_payout: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
