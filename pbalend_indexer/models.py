"""Ledger rows and keys — all frozen (immutable).

Every row carries ``applied_at``, the log position of the last event written
to it. It is bookkeeping only and does not take part in row equality.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class EntityType(str, Enum):
    """The three projected tables."""

    MARKET = "market"
    LEND_POSITION = "lend_position"
    BORROW_POSITION = "borrow_position"


@dataclass(frozen=True, order=True)
class LogPosition:
    """On-chain ordering of a log: block height, then index within the block."""

    block_number: int
    log_index: int


@dataclass(frozen=True)
class MarketKey:
    loan_token: str
    collateral_token: str

    @property
    def id(self) -> str:
        return f"{self.loan_token}-{self.collateral_token}"


@dataclass(frozen=True)
class PositionKey:
    loan_token: str
    collateral_token: str
    user: str

    @property
    def id(self) -> str:
        return f"{self.loan_token}-{self.collateral_token}-{self.user}"

    @property
    def market(self) -> MarketKey:
        return MarketKey(self.loan_token, self.collateral_token)


@dataclass(frozen=True)
class Market:
    """A configured (loan token, collateral token) pair."""

    loan_token: str
    collateral_token: str
    interest_rate: int
    ltv: int
    applied_at: LogPosition | None = field(default=None, compare=False)

    @property
    def key(self) -> MarketKey:
        return MarketKey(self.loan_token, self.collateral_token)


@dataclass(frozen=True)
class LendPosition:
    """Deposited principal and pool shares of one lender in one market."""

    loan_token: str
    collateral_token: str
    user: str
    amount: int = 0
    shares: int = 0
    applied_at: LogPosition | None = field(default=None, compare=False)

    @property
    def key(self) -> PositionKey:
        return PositionKey(self.loan_token, self.collateral_token, self.user)

    @property
    def is_zeroed(self) -> bool:
        return self.amount == 0 and self.shares == 0


@dataclass(frozen=True)
class BorrowPosition:
    """Outstanding debt, debt shares and posted collateral of one borrower."""

    loan_token: str
    collateral_token: str
    user: str
    amount: int = 0
    shares: int = 0
    collateral_amount: int = 0
    applied_at: LogPosition | None = field(default=None, compare=False)

    @property
    def key(self) -> PositionKey:
        return PositionKey(self.loan_token, self.collateral_token, self.user)

    @property
    def is_zeroed(self) -> bool:
        return self.amount == 0 and self.shares == 0


Row = Market | LendPosition | BorrowPosition
Key = MarketKey | PositionKey

ROW_TYPES: dict[EntityType, type] = {
    EntityType.MARKET: Market,
    EntityType.LEND_POSITION: LendPosition,
    EntityType.BORROW_POSITION: BorrowPosition,
}
