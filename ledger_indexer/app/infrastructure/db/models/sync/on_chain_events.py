from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_indexer.app.infrastructure.db.db_base import BaseDB
from ledger_indexer.app.infrastructure.db.models._columns import new_id, utcnow


class OnChainEventsDB(BaseDB):
    """
    Raw on-chain events pushed by upstream watchers through the event-sync queue.

    Idempotency:
      - unique per (transaction_hash, chain_id)
    """

    __tablename__ = "on_chain_events"
    __table_args__ = (
        UniqueConstraint("transaction_hash", "chain_id", name="uq_on_chain_events_tx_chain"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    event_name: Mapped[str] = mapped_column(String(255), nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    contract_address: Mapped[str] = mapped_column(String(255), nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)

    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
