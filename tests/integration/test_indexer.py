"""Integration tests for the Indexer service — full flow with a fake source."""
from __future__ import annotations

import pytest

from pbalend_indexer.config import AppConfig
from pbalend_indexer.errors import StoreUnavailableError
from pbalend_indexer.events import (
    Borrow,
    Deposit,
    LendingEvent,
    MarketCreated,
    Repay,
    Withdraw,
    WithdrawCollateral,
)
from pbalend_indexer.models import BorrowPosition, LendPosition, Market
from pbalend_indexer.services import Indexer
from pbalend_indexer.stores import InMemoryLedgerStore

from tests.sample_data import DAI, USDC, USER_A, USER_B, WETH, at


class FakeSource:
    """In-memory event source; re-delivers every event in the requested range."""

    def __init__(self, events: list[LendingEvent], head: int) -> None:
        self.events = events
        self.head = head
        self.ranges: list[tuple[int, int]] = []

    async def latest_block(self) -> int:
        return self.head

    async def fetch_events(self, from_block: int, to_block: int) -> list[LendingEvent]:
        self.ranges.append((from_block, to_block))
        return [
            e for e in self.events
            if from_block <= e.position.block_number <= to_block
        ]


class FlakyStore(InMemoryLedgerStore):
    """Lets `healthy` upserts through, fails the next `failures`, then recovers."""

    def __init__(self, failures: int, healthy: int = 0) -> None:
        super().__init__()
        self.failures = failures
        self.healthy = healthy

    async def upsert(self, entity, key, merge):
        if self.healthy > 0:
            self.healthy -= 1
        elif self.failures > 0:
            self.failures -= 1
            raise StoreUnavailableError("store down")
        return await super().upsert(entity, key, merge)


SCENARIO = [
    MarketCreated(USDC, WETH, 500, 80, position=at(100, 0)),
    Deposit(USDC, WETH, USER_A, 1000, 1000, position=at(101, 0)),
    Borrow(USDC, WETH, USER_B, 400, 400, 1, position=at(102, 0)),
    Repay(USDC, WETH, USER_B, 400, 400, position=at(103, 0)),
]


class TestSync:
    @pytest.mark.asyncio
    async def test_end_to_end_scenario(self, sample_app_config: AppConfig) -> None:
        store = InMemoryLedgerStore()
        source = FakeSource(SCENARIO, head=103)
        indexer = Indexer(sample_app_config, store=store, source=source)

        applied = await indexer.sync()

        assert applied == 4
        query = indexer.query
        assert await query.get_market(USDC, WETH) == Market(USDC, WETH, 500, 80)
        assert await query.get_lend_position(USDC, WETH, USER_A) == LendPosition(
            USDC, WETH, USER_A, 1000, 1000
        )
        assert await query.get_borrow_position(USDC, WETH, USER_B) == BorrowPosition(
            USDC, WETH, USER_B, amount=0, shares=0, collateral_amount=1
        )
        assert await store.get_checkpoint("PBALend") == 103

    @pytest.mark.asyncio
    async def test_batches_by_configured_size(self, sample_app_config: AppConfig) -> None:
        source = FakeSource(SCENARIO, head=125)
        indexer = Indexer(sample_app_config, store=InMemoryLedgerStore(), source=source)

        await indexer.sync()

        assert source.ranges == [(100, 109), (110, 119), (120, 125)]

    @pytest.mark.asyncio
    async def test_resumes_from_checkpoint(self, sample_app_config: AppConfig) -> None:
        store = InMemoryLedgerStore()
        source = FakeSource(SCENARIO, head=103)
        await Indexer(sample_app_config, store=store, source=source).sync()

        source.events = SCENARIO + [Withdraw(USDC, WETH, USER_A, 400, 400, position=at(104, 0))]
        source.head = 104
        source.ranges.clear()
        restarted = Indexer(sample_app_config, store=store, source=source)
        assert await restarted.sync() == 1

        assert source.ranges == [(104, 104)]
        lend = await restarted.query.get_lend_position(USDC, WETH, USER_A)
        assert (lend.amount, lend.shares) == (600, 600)

    @pytest.mark.asyncio
    async def test_up_to_date_is_noop(self, sample_app_config: AppConfig) -> None:
        store = InMemoryLedgerStore()
        await store.put_checkpoint("PBALend", 200)
        source = FakeSource(SCENARIO, head=150)
        assert await Indexer(sample_app_config, store=store, source=source).sync() == 0
        assert source.ranges == []

    @pytest.mark.asyncio
    async def test_store_failure_keeps_checkpoint_and_retries(
        self, sample_app_config: AppConfig
    ) -> None:
        store = FlakyStore(failures=1)
        source = FakeSource(SCENARIO, head=103)
        indexer = Indexer(sample_app_config, store=store, source=source)

        with pytest.raises(StoreUnavailableError):
            await indexer.sync()
        assert await store.get_checkpoint("PBALend") is None

        assert await indexer.sync() == 4
        borrow = await indexer.query.get_borrow_position(USDC, WETH, USER_B)
        assert borrow.collateral_amount == 1
        assert (await indexer.query.get_lend_position(USDC, WETH, USER_A)).amount == 1000


    @pytest.mark.asyncio
    async def test_restart_after_partial_batch_does_not_double_count(
        self, sample_app_config: AppConfig
    ) -> None:
        store = FlakyStore(failures=1, healthy=1)
        source = FakeSource(
            [
                Deposit(USDC, WETH, USER_A, 100, 10, position=at(101, 0)),
                Deposit(USDC, WETH, USER_A, 50, 5, position=at(102, 0)),
            ],
            head=102,
        )

        with pytest.raises(StoreUnavailableError):
            await Indexer(sample_app_config, store=store, source=source).sync()
        assert await store.get_checkpoint("PBALend") is None

        restarted = Indexer(sample_app_config, store=store, source=source)
        await restarted.sync()

        lend = await restarted.query.get_lend_position(USDC, WETH, USER_A)
        assert (lend.amount, lend.shares) == (150, 15)
        assert restarted.engine.stats.replayed == 1
        assert await store.get_checkpoint("PBALend") == 102

class TestApplyBatch:
    @pytest.mark.asyncio
    async def test_redelivered_events_are_not_double_counted(
        self, sample_app_config: AppConfig
    ) -> None:
        store = InMemoryLedgerStore()
        indexer = Indexer(sample_app_config, store=store, source=FakeSource([], head=0))
        deposit = Deposit(USDC, WETH, USER_A, 100, 10, position=at(5, 1))

        assert await indexer.apply_batch([deposit]) == 1
        assert await indexer.apply_batch([deposit, deposit]) == 0

        lend = await indexer.query.get_lend_position(USDC, WETH, USER_A)
        assert (lend.amount, lend.shares) == (100, 10)
        assert indexer.sequencer.duplicates_skipped == 2

    @pytest.mark.asyncio
    async def test_markets_applied_independently(self, sample_app_config: AppConfig) -> None:
        indexer = Indexer(
            sample_app_config, store=InMemoryLedgerStore(), source=FakeSource([], head=0)
        )
        events = [
            Deposit(DAI, WETH, USER_A, 5, 5, position=at(1, 1)),
            Deposit(USDC, WETH, USER_A, 100, 10, position=at(1, 0)),
            Withdraw(USDC, WETH, USER_A, 40, 4, position=at(2, 0)),
            WithdrawCollateral(DAI, WETH, USER_B, 1, position=at(2, 1)),
        ]
        assert await indexer.apply_batch(events) == 4

        usdc = await indexer.query.get_lend_position(USDC, WETH, USER_A)
        assert (usdc.amount, usdc.shares) == (60, 6)
        assert (await indexer.query.get_lend_position(DAI, WETH, USER_A)).amount == 5
        assert await indexer.query.get_borrow_position(DAI, WETH, USER_B) is None
        assert indexer.engine.stats.missing_aggregate == 1
