from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from ledger_indexer.app.application.services.event_dispatcher import ContractEventDispatcher
from ledger_indexer.app.domain.models import LedgerTransaction, PollerState
from ledger_indexer.app.domain.ports.out import (
    CheckpointStore,
    ContractEventDecoder,
    LedgerTransactionsFetcher,
    ProcessedTransactionStore,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class PollCycleReport:
    fetched: int = 0
    handled: int = 0
    skipped: int = 0
    failed: int = 0
    checkpoint: int = 0


class ContractEventPoller:
    """
    Cursor-based poller: fetch -> iterate in ledger order -> decode -> dispatch -> checkpoint.

    Guarantees:
    - transactions are handled one at a time, in ascending ledger order,
    - every transaction that reaches the decode step is marked processed and the
      checkpoint advanced, even when decoding or a handler failed (a bad
      transaction must not wedge the cursor),
    - a fetch error aborts the cycle and leaves the checkpoint untouched.

    There is no cross-instance lock; correctness under concurrent pollers rests
    on handler idempotency.
    """

    def __init__(
        self,
        *,
        contract_address: str,
        fetcher: LedgerTransactionsFetcher,
        decoder: ContractEventDecoder,
        dispatcher: ContractEventDispatcher,
        checkpoints: CheckpointStore,
        processed: ProcessedTransactionStore,
        poll_interval_ms: int = 15_000,
        clock: Clock = time.monotonic,
    ) -> None:
        self._contract_address = contract_address
        self._fetcher = fetcher
        self._decoder = decoder
        self._dispatcher = dispatcher
        self._checkpoints = checkpoints
        self._processed = processed
        self._poll_interval_ms = poll_interval_ms
        self._clock = clock
        self._state = PollerState()

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> PollerState:
        return self._state

    def start(self) -> dict[str, object]:
        self._state = self._state.started()
        return self.status()

    def stop(self) -> dict[str, object]:
        self._state = self._state.stopped()
        return self.status()

    def status(self) -> dict[str, object]:
        return {"running": self._state.enabled, "pollIntervalMs": self._poll_interval_ms}

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def tick(self) -> bool:
        """
        Run one cycle if polling is enabled and the interval has elapsed.

        Never raises; returns whether a cycle ran.
        """
        now = self._clock()
        if not self._state.is_due(now, self._poll_interval_ms / 1000):
            return False
        self._state = self._state.ran_at(now)

        try:
            await self.poll_now()
        except Exception:
            logger.exception("Event polling failed")
        return True

    async def run_forever(
        self,
        *,
        shutdown: asyncio.Event | None = None,
        tick_seconds: float = 1.0,
    ) -> None:
        shutdown = shutdown or asyncio.Event()
        logger.info(
            "Event listener started contract=%s interval_ms=%s",
            self._contract_address or "<unset>",
            self._poll_interval_ms,
        )
        while not shutdown.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=tick_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Event listener stopped")

    # ------------------------------------------------------------------
    # Polling cycle
    # ------------------------------------------------------------------

    async def poll_now(self) -> PollCycleReport:
        if not self._contract_address:
            logger.warning("Skipping event polling because CONTRACT_ADDRESS is not configured")
            return PollCycleReport()

        last_processed = await self._checkpoints.get_last_processed_ledger(self._contract_address)
        transactions = await self._fetcher.fetch_transactions_since(
            address=self._contract_address,
            cursor=last_processed,
        )

        handled = skipped = failed = 0
        checkpoint = last_processed

        for tx in transactions:
            if tx.ledger <= last_processed:
                # inclusive-cursor overlap
                await self._advance(tx.ledger)
                checkpoint = max(checkpoint, tx.ledger)
                skipped += 1
                continue

            if await self._processed.is_processed(tx.hash):
                await self._advance(tx.ledger)
                checkpoint = max(checkpoint, tx.ledger)
                skipped += 1
                continue

            if not tx.successful:
                await self._processed.mark_processed(tx.hash)
                await self._advance(tx.ledger)
                checkpoint = max(checkpoint, tx.ledger)
                skipped += 1
                continue

            if await self._process_transaction(tx):
                handled += 1
            else:
                failed += 1
            checkpoint = max(checkpoint, tx.ledger)

        report = PollCycleReport(
            fetched=len(transactions),
            handled=handled,
            skipped=skipped,
            failed=failed,
            checkpoint=checkpoint,
        )
        if transactions:
            logger.info(
                "Poll cycle done fetched=%s handled=%s skipped=%s failed=%s checkpoint=%s",
                report.fetched,
                report.handled,
                report.skipped,
                report.failed,
                report.checkpoint,
            )
        return report

    async def _process_transaction(self, tx: LedgerTransaction) -> bool:
        try:
            events = self._decoder.decode(tx.result_meta_xdr)
            for event in events:
                await self._dispatcher.dispatch(event, tx)
            return True
        except Exception:
            logger.exception("Failed to process tx %s", tx.hash)
            return False
        finally:
            await self._processed.mark_processed(tx.hash)
            await self._advance(tx.ledger)

    async def _advance(self, ledger: int) -> int:
        return await self._checkpoints.advance(self._contract_address, ledger)
