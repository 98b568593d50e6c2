from __future__ import annotations

from typing import Callable, Dict

import httpx
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from ledger_indexer.app.application.services.event_dispatcher import ContractEventDispatcher
from ledger_indexer.app.application.services.event_poller import ContractEventPoller
from ledger_indexer.app.config import settings
from ledger_indexer.app.domain.models import CONTRIBUTION_RECEIVED, ROUND_COMPLETED
from ledger_indexer.app.infrastructure.adapters.domain.contribution_received_handler import (
    SqlAlchemyContributionReceivedHandler,
)
from ledger_indexer.app.infrastructure.adapters.domain.round_completed_handler import (
    SqlAlchemyRoundCompletedHandler,
)
from ledger_indexer.app.infrastructure.decoders.soroban.event_decoder import SorobanEventDecoder
from ledger_indexer.app.infrastructure.fetchers.horizon_transactions_fetcher import (
    HorizonTransactionsFetcher,
)
from ledger_indexer.app.infrastructure.stores.redis_checkpoint_store import (
    RedisCheckpointStore,
    RedisProcessedTransactionStore,
)

EventPollerFactory = Callable[[AsyncEngine, Redis, httpx.AsyncClient], ContractEventPoller]

_EVENT_POLLER_REGISTRY: Dict[str, EventPollerFactory] = {}


def _make_sqlalchemy_poller(
    engine: AsyncEngine,
    redis: Redis,
    client: httpx.AsyncClient,
) -> ContractEventPoller:
    """
    Wire dependencies for SQLAlchemy backend:
    - Horizon fetcher (contract path, account path fallback)
    - Soroban XDR decoder
    - ContributionReceived / RoundCompleted handlers on the projection
    - Redis checkpoint + processed-transaction markers
    """
    dispatcher = ContractEventDispatcher(
        {
            CONTRIBUTION_RECEIVED: SqlAlchemyContributionReceivedHandler(engine),
            ROUND_COMPLETED: SqlAlchemyRoundCompletedHandler(engine),
        }
    )

    return ContractEventPoller(
        contract_address=settings.contract_address,
        fetcher=HorizonTransactionsFetcher(
            client=client,
            base_url=settings.horizon_url,
            limit=settings.ledger_fetch_limit,
        ),
        decoder=SorobanEventDecoder(),
        dispatcher=dispatcher,
        checkpoints=RedisCheckpointStore(redis),
        processed=RedisProcessedTransactionStore(redis, ttl_seconds=settings.processed_tx_ttl_seconds),
        poll_interval_ms=settings.event_poll_interval_ms,
    )


# Register backends
_EVENT_POLLER_REGISTRY["sqlalchemy"] = _make_sqlalchemy_poller


def event_poller_factory(
    *,
    backend: str,
    engine: AsyncEngine,
    redis: Redis,
    client: httpx.AsyncClient,
) -> ContractEventPoller:
    """
    Create the contract event poller for the given projection backend.

    Callers own `engine`, `redis` and `client` and must close them.
    """
    try:
        factory = _EVENT_POLLER_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported event poller backend: {backend!r}")

    return factory(engine, redis, client)
