from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Final

CONTRIBUTION_RECEIVED: Final[str] = "ContributionReceived"
ROUND_COMPLETED: Final[str] = "RoundCompleted"

KNOWN_EVENT_NAMES: Final[tuple[str, ...]] = (CONTRIBUTION_RECEIVED, ROUND_COMPLETED)


@dataclass(frozen=True)
class LedgerTransaction:
    """
    One transaction record as returned by the ledger indexer.

    Read-only mirror of the remote ledger; never persisted locally.
    """

    hash: str
    ledger: int
    successful: bool
    result_meta_xdr: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class ContractEvent:
    """A decoded contract event: recognized name + loosely-typed payload."""

    name: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PollerState:
    """
    Process-local polling state.

    Transitions return a new value; the poller owns the current one.
    """

    enabled: bool = True
    last_run_at: float | None = None

    def started(self) -> "PollerState":
        return replace(self, enabled=True)

    def stopped(self) -> "PollerState":
        return replace(self, enabled=False)

    def ran_at(self, now: float) -> "PollerState":
        return replace(self, last_run_at=now)

    def is_due(self, now: float, interval_seconds: float) -> bool:
        if not self.enabled:
            return False
        if self.last_run_at is None:
            return True
        return now - self.last_run_at >= interval_seconds


class _LockNotAcquired:
    def __repr__(self) -> str:
        return "LOCK_NOT_ACQUIRED"

    def __bool__(self) -> bool:
        return False


# Returned by DistributedLock.with_lock when another instance holds the lock
LOCK_NOT_ACQUIRED: Final = _LockNotAcquired()
