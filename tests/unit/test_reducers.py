"""Unit tests for pure row transitions — no I/O."""
from __future__ import annotations

from pbalend_indexer.models import BorrowPosition, LendPosition, Market, MarketKey, PositionKey
from pbalend_indexer.projection import reducers

from tests.sample_data import USDC, USER_A, WETH

KEY = PositionKey(USDC, WETH, USER_A)


class TestSaturatingSub:
    def test_normal(self) -> None:
        assert reducers.saturating_sub(10, 3) == 7

    def test_exact(self) -> None:
        assert reducers.saturating_sub(10, 10) == 0

    def test_floor(self) -> None:
        assert reducers.saturating_sub(10, 11) == 0
        assert reducers.saturating_sub(0, 2**256) == 0


class TestCreateMarket:
    def test_absent_creates(self) -> None:
        row = reducers.create_market(None, MarketKey(USDC, WETH), 500, 80)
        assert row == Market(USDC, WETH, 500, 80)

    def test_existing_returns_none(self) -> None:
        existing = Market(USDC, WETH, 500, 80)
        assert reducers.create_market(existing, MarketKey(USDC, WETH), 1, 1) is None


class TestAccumulate:
    def test_lend_create(self) -> None:
        assert reducers.accumulate_lend(None, KEY, 5, 4) == LendPosition(USDC, WETH, USER_A, 5, 4)

    def test_lend_add(self) -> None:
        current = LendPosition(USDC, WETH, USER_A, 5, 4)
        assert reducers.accumulate_lend(current, KEY, 1, 1) == LendPosition(
            USDC, WETH, USER_A, 6, 5
        )

    def test_borrow_add(self) -> None:
        current = BorrowPosition(USDC, WETH, USER_A, 5, 4, 3)
        assert reducers.accumulate_borrow(current, KEY, 1, 2, 3) == BorrowPosition(
            USDC, WETH, USER_A, 6, 6, 6
        )


class TestDecrement:
    def test_withdraw_no_clamp(self) -> None:
        result = reducers.withdraw_lend(LendPosition(USDC, WETH, USER_A, 100, 10), 40, 4)
        assert result.row == LendPosition(USDC, WETH, USER_A, 60, 6)
        assert result.clamps == ()

    def test_withdraw_reports_clamps(self) -> None:
        result = reducers.withdraw_lend(LendPosition(USDC, WETH, USER_A, 100, 10), 150, 10)
        assert result.row.amount == 0
        assert result.row.shares == 0
        assert result.clamps == (reducers.Clamp("amount", 100, 150),)

    def test_repay_keeps_collateral(self) -> None:
        result = reducers.repay_borrow(BorrowPosition(USDC, WETH, USER_A, 10, 10, 9), 4, 3)
        assert result.row == BorrowPosition(USDC, WETH, USER_A, 6, 7, 9)

    def test_withdraw_collateral(self) -> None:
        result = reducers.withdraw_collateral(BorrowPosition(USDC, WETH, USER_A, 10, 10, 9), 10)
        assert result.row == BorrowPosition(USDC, WETH, USER_A, 10, 10, 0)
        assert [c.field_name for c in result.clamps] == ["collateral_amount"]
