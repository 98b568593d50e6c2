from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Final

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ledger_indexer.app.infrastructure.db.models._columns import new_id

SYNC_ON_CHAIN_EVENT: Final[str] = "sync-on-chain-event"
PROCESS_TRANSFER_EVENT: Final[str] = "process-transfer-event"
PROCESS_APPROVAL_EVENT: Final[str] = "process-approval-event"

EVENT_SYNC_JOB_NAMES: Final[tuple[str, ...]] = (
    SYNC_ON_CHAIN_EVENT,
    PROCESS_TRANSFER_EVENT,
    PROCESS_APPROVAL_EVENT,
)


# -----------------------------------------------------------------------------
# Job envelope (what sits in Redis)
# -----------------------------------------------------------------------------

class QueuedJob(BaseModel):
    """
    Wire envelope for one queued job.

    Serialized as camelCase JSON:
      {id, name, data, attemptsMade, maxAttempts, enqueuedAt}
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_id)
    name: str
    data: dict[str, Any] = Field(default_factory=dict)
    attempts_made: int = 0
    max_attempts: int = 3
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "QueuedJob":
        return cls.model_validate_json(raw)

    def next_attempt(self) -> "QueuedJob":
        return self.model_copy(update={"attempts_made": self.attempts_made + 1})


# -----------------------------------------------------------------------------
# Job payloads
# -----------------------------------------------------------------------------

class _JobData(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class SyncOnChainEventJob(_JobData):
    event_name: str
    transaction_hash: str
    block_number: int
    contract_address: str
    chain_id: int


class TransferEventJob(_JobData):
    from_address: str = Field(validation_alias=AliasChoices("from", "fromAddress", "from_address"))
    to_address: str = Field(validation_alias=AliasChoices("to", "toAddress", "to_address"))
    amount: str
    transaction_hash: str
    block_number: int
    contract_address: str = Field(
        validation_alias=AliasChoices("contractAddress", "tokenAddress", "contract_address")
    )
    chain_id: int
    contribution_id: str | None = None


class ApprovalEventJob(_JobData):
    owner_address: str = Field(validation_alias=AliasChoices("ownerAddress", "owner", "owner_address"))
    spender_address: str = Field(
        validation_alias=AliasChoices("spenderAddress", "spender", "spender_address")
    )
    amount: str
    transaction_hash: str
    block_number: int
    contract_address: str = Field(
        validation_alias=AliasChoices("contractAddress", "tokenAddress", "contract_address")
    )
    chain_id: int
