from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Protocol, TypeVar

from ledger_indexer.app.domain.models import ContractEvent, LedgerTransaction

T = TypeVar("T")


class LedgerTransactionsFetcher(Protocol):
    """
    Port for reading transaction history of a monitored contract/account
    from the remote ledger indexer.

    Implementations return records in ascending ledger order, starting
    strictly after `cursor` (0 means "from the beginning").
    """

    async def fetch_transactions_since(
        self,
        *,
        address: str,
        cursor: int,
    ) -> list[LedgerTransaction]:
        ...


class ContractEventDecoder(Protocol):
    def decode(self, result_meta_xdr: str | None) -> list[ContractEvent]:
        """
        Decode a transaction's execution metadata into contract events.

        Return:
          - list of recognized events, in emission order
          - [] when the blob is absent or carries no recognized events
        """
        ...


class ContractEventHandler(Protocol):
    """
    Port for applying one recognized contract event to the projection.

    Implementations must be idempotent: redelivery of the same transaction
    converges on the same projection state.
    """

    async def handle(
        self,
        *,
        payload: Mapping[str, Any],
        tx: LedgerTransaction,
    ) -> None:
        ...


class CheckpointStore(Protocol):
    """
    Durable last-processed ledger position per monitored contract.

    `advance` never lowers the stored value.
    """

    async def get_last_processed_ledger(self, contract_address: str) -> int:
        ...

    async def advance(self, contract_address: str, ledger: int) -> int:
        ...


class ProcessedTransactionStore(Protocol):
    """Presence markers for transactions whose processing attempt completed."""

    async def is_processed(self, tx_hash: str) -> bool:
        ...

    async def mark_processed(self, tx_hash: str) -> None:
        ...


class DistributedLock(Protocol):
    """
    Cross-instance mutual exclusion with TTL expiry.

    `with_lock` returns a sentinel (not an error) when the lock is held
    elsewhere.
    """

    async def acquire(self, name: str, ttl_seconds: int | None = None) -> bool:
        ...

    async def release(self, name: str) -> None:
        ...

    async def with_lock(
        self,
        name: str,
        ttl_seconds: int | None,
        fn: Callable[[], Awaitable[T]],
    ) -> T | Any:
        ...


class ScheduleSlotClaims(Protocol):
    """
    One-shot claims on a job's schedule slot.

    `claim` returns True for exactly one caller per (job, slot) across instances.
    """

    async def claim(self, job_name: str, slot: int, ttl_seconds: int) -> bool:
        ...


class QueuedJobLike(Protocol):
    id: str
    name: str
    data: dict[str, Any]


class JobQueue(Protocol):
    """
    At-least-once job queue.

    A reserved job stays in the queue's in-flight set until `complete` or
    `fail` hands it back; `recover_stalled` re-queues in-flight jobs whose
    worker went away. `fail` owns the retry policy: it reschedules the job
    with backoff or moves it to the dead-letter store.
    """

    name: str

    async def reserve(self, timeout_seconds: float = 0) -> QueuedJobLike | None:
        ...

    async def complete(self, job: Any) -> None:
        ...

    async def fail(self, job: Any, error: BaseException) -> str:
        ...

    async def recover_stalled(self) -> int:
        ...
