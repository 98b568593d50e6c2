from __future__ import annotations


class LedgerIndexerError(Exception):
    """Base class for errors raised by the ingestion pipeline."""


class LedgerFetchError(LedgerIndexerError):
    """The ledger indexer could not be queried for this cycle."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EventDecodeError(LedgerIndexerError):
    """Execution metadata or a compact value could not be decoded."""


class MaintenanceJobFailedError(LedgerIndexerError):
    """A maintenance job exhausted its retry budget for this tick."""

    def __init__(self, job_name: str, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(
            f"Task {job_name} failed after {attempts} attempts: {last_error}"
        )
        self.job_name = job_name
        self.attempts = attempts
        self.last_error = last_error


class UnresolvableTransferError(LedgerIndexerError):
    """A transfer job does not map onto a known group membership."""


class UnknownJobError(LedgerIndexerError):
    """A queued job carries a name no handler is registered for."""
