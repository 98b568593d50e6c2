from __future__ import annotations

import logging
from typing import Mapping

from ledger_indexer.app.domain.models import ContractEvent, LedgerTransaction
from ledger_indexer.app.domain.ports.out import ContractEventHandler

logger = logging.getLogger(__name__)


class ContractEventDispatcher:
    """Routes each decoded event to the handler registered for its name."""

    def __init__(self, handlers: Mapping[str, ContractEventHandler]) -> None:
        self._handlers = dict(handlers)

    async def dispatch(self, event: ContractEvent, tx: LedgerTransaction) -> None:
        handler = self._handlers.get(event.name)
        if handler is None:
            logger.debug("No handler for event %s in tx %s", event.name, tx.hash)
            return
        await handler.handle(payload=event.payload, tx=tx)
