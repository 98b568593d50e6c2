"""
Tests for the contract event poller.

Tests:
- Empty fetch leaves everything untouched
- Ledger ordering, skip rules and checkpoint advance
- Handler failure still marks processed and advances
- Fetch error aborts the cycle
- Start / stop / status and tick scheduling
"""

import pytest
from sqlalchemy import select

from ledger_indexer.app.application.services.event_dispatcher import ContractEventDispatcher
from ledger_indexer.app.application.services.event_poller import ContractEventPoller
from ledger_indexer.app.domain.errors import EventDecodeError, LedgerFetchError
from ledger_indexer.app.domain.models import ContractEvent
from ledger_indexer.app.infrastructure.adapters.domain.contribution_received_handler import (
    SqlAlchemyContributionReceivedHandler,
)
from ledger_indexer.app.infrastructure.adapters.domain.round_completed_handler import (
    SqlAlchemyRoundCompletedHandler,
)
from ledger_indexer.app.infrastructure.db.models import ContributionsDB, MembershipsDB
from ledger_indexer.app.infrastructure.stores.redis_checkpoint_store import (
    RedisCheckpointStore,
    RedisProcessedTransactionStore,
)

CONTRACT = "CCONTRACT"


class StubFetcher:
    def __init__(self, transactions=(), error=None):
        self.transactions = list(transactions)
        self.error = error
        self.cursors: list[int] = []

    async def fetch_transactions_since(self, *, address, cursor):
        self.cursors.append(cursor)
        if self.error is not None:
            raise self.error
        return list(self.transactions)


class StubDecoder:
    """Events per transaction meta string; 'bad' raises."""

    def __init__(self, events_by_meta=None):
        self.events_by_meta = events_by_meta or {}
        self.decoded: list[str | None] = []

    def decode(self, result_meta_xdr):
        self.decoded.append(result_meta_xdr)
        if result_meta_xdr == "bad":
            raise EventDecodeError("bad meta")
        return list(self.events_by_meta.get(result_meta_xdr, []))


class RecordingHandler:
    def __init__(self, fail_on=()):
        self.calls: list[tuple[str, dict]] = []
        self.fail_on = set(fail_on)

    async def handle(self, *, payload, tx):
        self.calls.append((tx.hash, dict(payload)))
        if tx.hash in self.fail_on:
            raise RuntimeError("database unavailable")


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_poller(redis, *, fetcher, decoder=None, handlers=None, contract=CONTRACT, clock=None, interval_ms=15_000):
    return ContractEventPoller(
        contract_address=contract,
        fetcher=fetcher,
        decoder=decoder or StubDecoder(),
        dispatcher=ContractEventDispatcher(handlers or {}),
        checkpoints=RedisCheckpointStore(redis),
        processed=RedisProcessedTransactionStore(redis),
        poll_interval_ms=interval_ms,
        clock=clock or FakeClock(),
    )


class TestPollCycle:
    @pytest.mark.asyncio
    async def test_empty_fetch_changes_nothing(self, redis):
        poller = make_poller(redis, fetcher=StubFetcher())
        report = await poller.poll_now()

        assert report.fetched == 0
        assert await RedisCheckpointStore(redis).get_last_processed_ledger(CONTRACT) == 0
        assert await redis.dbsize() == 0

    @pytest.mark.asyncio
    async def test_dispatches_in_order_and_advances(self, redis, make_tx):
        handler = RecordingHandler()
        decoder = StubDecoder(
            {
                "m1": [ContractEvent("ContributionReceived", {"n": 1})],
                "m2": [
                    ContractEvent("ContributionReceived", {"n": 2}),
                    ContractEvent("ContributionReceived", {"n": 3}),
                ],
            }
        )
        fetcher = StubFetcher(
            [make_tx(hash="A", ledger=11, result_meta_xdr="m1"), make_tx(hash="B", ledger=12, result_meta_xdr="m2")]
        )
        poller = make_poller(redis, fetcher=fetcher, decoder=decoder, handlers={"ContributionReceived": handler})

        report = await poller.poll_now()

        assert [payload["n"] for _, payload in handler.calls] == [1, 2, 3]
        assert report.handled == 2
        assert report.checkpoint == 12
        assert await RedisCheckpointStore(redis).get_last_processed_ledger(CONTRACT) == 12
        processed = RedisProcessedTransactionStore(redis)
        assert await processed.is_processed("A")
        assert await processed.is_processed("B")

    @pytest.mark.asyncio
    async def test_uses_checkpoint_as_cursor(self, redis):
        await RedisCheckpointStore(redis).advance(CONTRACT, 40)
        fetcher = StubFetcher()

        await make_poller(redis, fetcher=fetcher).poll_now()

        assert fetcher.cursors == [40]

    @pytest.mark.asyncio
    async def test_overlap_at_or_below_checkpoint_is_skipped(self, redis, make_tx):
        await RedisCheckpointStore(redis).advance(CONTRACT, 12)
        decoder = StubDecoder()
        fetcher = StubFetcher([make_tx(hash="OLD", ledger=12), make_tx(hash="NEW", ledger=13)])

        report = await make_poller(redis, fetcher=fetcher, decoder=decoder).poll_now()

        assert decoder.decoded == ["AAAA"]
        assert report.skipped == 1
        assert await RedisCheckpointStore(redis).get_last_processed_ledger(CONTRACT) == 13

    @pytest.mark.asyncio
    async def test_already_processed_is_skipped(self, redis, make_tx):
        await RedisProcessedTransactionStore(redis).mark_processed("H")
        decoder = StubDecoder()

        report = await make_poller(
            redis, fetcher=StubFetcher([make_tx(hash="H", ledger=15)]), decoder=decoder
        ).poll_now()

        assert decoder.decoded == []
        assert report.skipped == 1
        assert await RedisCheckpointStore(redis).get_last_processed_ledger(CONTRACT) == 15

    @pytest.mark.asyncio
    async def test_failed_transaction_is_marked_not_decoded(self, redis, make_tx):
        decoder = StubDecoder()

        await make_poller(
            redis, fetcher=StubFetcher([make_tx(hash="F", ledger=16, successful=False)]), decoder=decoder
        ).poll_now()

        assert decoder.decoded == []
        assert await RedisProcessedTransactionStore(redis).is_processed("F")
        assert await RedisCheckpointStore(redis).get_last_processed_ledger(CONTRACT) == 16

    @pytest.mark.asyncio
    async def test_handler_failure_still_advances(self, redis, make_tx):
        handler = RecordingHandler(fail_on={"H"})
        decoder = StubDecoder({"m": [ContractEvent("ContributionReceived", {})]})
        fetcher = StubFetcher(
            [make_tx(hash="H", ledger=11, result_meta_xdr="m"), make_tx(hash="NEXT", ledger=12, result_meta_xdr="m")]
        )
        poller = make_poller(redis, fetcher=fetcher, decoder=decoder, handlers={"ContributionReceived": handler})

        report = await poller.poll_now()

        assert report.failed == 1
        assert report.handled == 1
        assert [h for h, _ in handler.calls] == ["H", "NEXT"]
        assert await RedisProcessedTransactionStore(redis).is_processed("H")
        assert await RedisCheckpointStore(redis).get_last_processed_ledger(CONTRACT) == 12

    @pytest.mark.asyncio
    async def test_decode_failure_still_advances(self, redis, make_tx):
        fetcher = StubFetcher([make_tx(hash="X", ledger=21, result_meta_xdr="bad")])

        report = await make_poller(redis, fetcher=fetcher).poll_now()

        assert report.failed == 1
        assert await RedisCheckpointStore(redis).get_last_processed_ledger(CONTRACT) == 21

    @pytest.mark.asyncio
    async def test_second_cycle_does_not_redeliver(self, redis, make_tx):
        handler = RecordingHandler()
        decoder = StubDecoder({"m": [ContractEvent("RoundCompleted", {"groupId": "G"})]})
        fetcher = StubFetcher([make_tx(hash="R", ledger=30, result_meta_xdr="m")])
        poller = make_poller(redis, fetcher=fetcher, decoder=decoder, handlers={"RoundCompleted": handler})

        await poller.poll_now()
        await poller.poll_now()

        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_unknown_event_names_are_ignored(self, redis, make_tx):
        decoder = StubDecoder({"m": [ContractEvent("Transfer", {})]})

        report = await make_poller(
            redis, fetcher=StubFetcher([make_tx(result_meta_xdr="m")]), decoder=decoder
        ).poll_now()

        assert report.handled == 1

    @pytest.mark.asyncio
    async def test_fetch_error_leaves_checkpoint(self, redis):
        await RedisCheckpointStore(redis).advance(CONTRACT, 9)
        poller = make_poller(redis, fetcher=StubFetcher(error=LedgerFetchError("status 500", status_code=500)))

        with pytest.raises(LedgerFetchError):
            await poller.poll_now()

        assert await RedisCheckpointStore(redis).get_last_processed_ledger(CONTRACT) == 9

    @pytest.mark.asyncio
    async def test_missing_contract_is_a_noop(self, redis, make_tx):
        fetcher = StubFetcher([make_tx()])

        report = await make_poller(redis, fetcher=fetcher, contract="").poll_now()

        assert report.fetched == 0
        assert fetcher.cursors == []


class TestControl:
    def test_initial_status(self, redis):
        poller = make_poller(redis, fetcher=StubFetcher(), interval_ms=5000)
        assert poller.status() == {"running": True, "pollIntervalMs": 5000}

    def test_stop_and_start(self, redis):
        poller = make_poller(redis, fetcher=StubFetcher())

        assert poller.stop()["running"] is False
        assert poller.status()["running"] is False
        assert poller.start()["running"] is True

    @pytest.mark.asyncio
    async def test_tick_respects_interval(self, redis):
        clock = FakeClock(1000.0)
        fetcher = StubFetcher()
        poller = make_poller(redis, fetcher=fetcher, clock=clock, interval_ms=15_000)

        assert await poller.tick() is True
        clock.now += 14.9
        assert await poller.tick() is False
        clock.now += 0.2
        assert await poller.tick() is True
        assert len(fetcher.cursors) == 2

    @pytest.mark.asyncio
    async def test_stopped_poller_does_not_tick(self, redis):
        fetcher = StubFetcher()
        poller = make_poller(redis, fetcher=fetcher)
        poller.stop()

        assert await poller.tick() is False
        assert fetcher.cursors == []

    @pytest.mark.asyncio
    async def test_tick_swallows_fetch_errors(self, redis):
        poller = make_poller(redis, fetcher=StubFetcher(error=LedgerFetchError("down")))

        assert await poller.tick() is True


class TestEndToEnd:
    """Poller wired to the real projection handlers."""

    @pytest.fixture
    def handlers(self, engine):
        return {
            "ContributionReceived": SqlAlchemyContributionReceivedHandler(engine),
            "RoundCompleted": SqlAlchemyRoundCompletedHandler(engine),
        }

    @pytest.mark.asyncio
    async def test_contribution_lands_in_projection(self, redis, engine, seeded_group, handlers, make_tx):
        payload = {"groupId": "G", "userId": "U", "walletAddress": "WU", "amount": "5000000", "roundNumber": 3}
        decoder = StubDecoder({"m": [ContractEvent("ContributionReceived", payload)]})
        fetcher = StubFetcher([make_tx(hash="H", ledger=11, result_meta_xdr="m")])

        await make_poller(redis, fetcher=fetcher, decoder=decoder, handlers=handlers).poll_now()

        async with engine.connect() as conn:
            hashes = (await conn.execute(select(ContributionsDB.transaction_hash))).scalars().all()
            paid = (
                await conn.execute(
                    select(MembershipsDB.has_paid_current_round).where(MembershipsDB.user_id == "U")
                )
            ).scalar_one()
        assert hashes == ["H"]
        assert paid
        assert await RedisCheckpointStore(redis).get_last_processed_ledger(CONTRACT) == 11
        assert await RedisProcessedTransactionStore(redis).is_processed("H")
