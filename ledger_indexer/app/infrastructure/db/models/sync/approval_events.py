from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_indexer.app.infrastructure.db.db_base import BaseDB
from ledger_indexer.app.infrastructure.db.models._columns import new_id, utcnow


class ApprovalEventsDB(BaseDB):
    """
    Token approvals observed by upstream watchers.

    Idempotency:
      - unique per transaction_hash
    """

    __tablename__ = "approval_events"
    __table_args__ = (
        UniqueConstraint("transaction_hash", name="uq_approval_events_transaction_hash"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    owner_address: Mapped[str] = mapped_column(String(255), nullable=False)
    spender_address: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[str] = mapped_column(String(255), nullable=False)

    transaction_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    contract_address: Mapped[str] = mapped_column(String(255), nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
