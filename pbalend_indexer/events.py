"""Typed PBALend domain events.

Each event kind is a frozen dataclass; ``LendingEvent`` is their union.
Construction validates every field and lower-cases addresses, so an event
that exists is always well-formed.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, fields
from typing import Any

from .errors import MalformedEventError
from .models import LogPosition, MarketKey, PositionKey

UINT256_MAX = 2**256 - 1

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

_ADDRESS_FIELDS = ("loan_token", "collateral_token", "user")


def normalize_address(value: Any, name: str = "address") -> str:
    """Validate a 20-byte hex address and return it lower-cased."""
    if not isinstance(value, str) or not _ADDRESS_RE.match(value):
        raise MalformedEventError(f"{name} is not a 20-byte hex address: {value!r}")
    return value.lower()


def check_uint256(value: Any, name: str) -> int:
    """Validate an unsigned 256-bit integer."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedEventError(f"{name} must be an integer, got {value!r}")
    if value < 0 or value > UINT256_MAX:
        raise MalformedEventError(f"{name} out of uint256 range: {value}")
    return value


class _EventBase:
    """Field validation shared by every event dataclass."""

    def __post_init__(self) -> None:
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if f.name in _ADDRESS_FIELDS:
                object.__setattr__(self, f.name, normalize_address(value, f.name))
            elif f.name == "position":
                if value is not None and not isinstance(value, LogPosition):
                    raise MalformedEventError(f"position must be a LogPosition, got {value!r}")
            else:
                check_uint256(value, f.name)

    @property
    def market_key(self) -> MarketKey:
        return MarketKey(self.loan_token, self.collateral_token)  # type: ignore[attr-defined]


@dataclass(frozen=True)
class MarketCreated(_EventBase):
    loan_token: str
    collateral_token: str
    interest_rate: int
    ltv: int
    position: LogPosition | None = None


@dataclass(frozen=True)
class _PositionEvent(_EventBase):
    @property
    def position_key(self) -> PositionKey:
        return PositionKey(self.loan_token, self.collateral_token, self.user)  # type: ignore[attr-defined]


@dataclass(frozen=True)
class Deposit(_PositionEvent):
    loan_token: str
    collateral_token: str
    user: str
    amount: int
    shares: int
    position: LogPosition | None = None


@dataclass(frozen=True)
class Borrow(_PositionEvent):
    loan_token: str
    collateral_token: str
    user: str
    amount: int
    shares: int
    collateral_amount: int
    position: LogPosition | None = None


@dataclass(frozen=True)
class Repay(_PositionEvent):
    loan_token: str
    collateral_token: str
    user: str
    shares: int
    amount: int
    position: LogPosition | None = None


@dataclass(frozen=True)
class Withdraw(_PositionEvent):
    loan_token: str
    collateral_token: str
    user: str
    amount: int
    shares: int
    position: LogPosition | None = None


@dataclass(frozen=True)
class WithdrawCollateral(_PositionEvent):
    loan_token: str
    collateral_token: str
    user: str
    amount: int
    position: LogPosition | None = None


LendingEvent = MarketCreated | Deposit | Borrow | Repay | Withdraw | WithdrawCollateral

EVENT_TYPES: tuple[type, ...] = (
    MarketCreated,
    Deposit,
    Borrow,
    Repay,
    Withdraw,
    WithdrawCollateral,
)
