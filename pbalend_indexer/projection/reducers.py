"""Pure row transitions — no I/O.

Each function takes the current stored row (or ``None``) and returns the
next row. Decrements saturate at zero and report which fields were clamped.
"""
from __future__ import annotations

from dataclasses import dataclass, replace

from ..models import BorrowPosition, LendPosition, Market, MarketKey, PositionKey


@dataclass(frozen=True)
class Clamp:
    """A decrement that asked for more than the stored balance."""

    field_name: str
    stored: int
    requested: int


@dataclass(frozen=True)
class Decrement:
    """Result of a saturating decrement on an existing row."""

    row: LendPosition | BorrowPosition
    clamps: tuple[Clamp, ...] = ()


def saturating_sub(stored: int, requested: int) -> int:
    """``stored - requested``, floored at zero."""
    result = stored - requested
    return result if result > 0 else 0


def _decrement(row, deltas: dict[str, int]) -> Decrement:
    changes: dict[str, int] = {}
    clamps: list[Clamp] = []
    for name, requested in deltas.items():
        stored = getattr(row, name)
        if requested > stored:
            clamps.append(Clamp(field_name=name, stored=stored, requested=requested))
        changes[name] = saturating_sub(stored, requested)
    return Decrement(row=replace(row, **changes), clamps=tuple(clamps))


def create_market(
    current: Market | None, key: MarketKey, interest_rate: int, ltv: int
) -> Market | None:
    """First write wins; returns ``None`` when the market already exists."""
    if current is not None:
        return None
    return Market(
        loan_token=key.loan_token,
        collateral_token=key.collateral_token,
        interest_rate=interest_rate,
        ltv=ltv,
    )


def accumulate_lend(
    current: LendPosition | None, key: PositionKey, amount: int, shares: int
) -> LendPosition:
    if current is None:
        return LendPosition(
            loan_token=key.loan_token,
            collateral_token=key.collateral_token,
            user=key.user,
            amount=amount,
            shares=shares,
        )
    return replace(
        current,
        amount=current.amount + amount,
        shares=current.shares + shares,
    )


def accumulate_borrow(
    current: BorrowPosition | None,
    key: PositionKey,
    amount: int,
    shares: int,
    collateral_amount: int,
) -> BorrowPosition:
    if current is None:
        return BorrowPosition(
            loan_token=key.loan_token,
            collateral_token=key.collateral_token,
            user=key.user,
            amount=amount,
            shares=shares,
            collateral_amount=collateral_amount,
        )
    return replace(
        current,
        amount=current.amount + amount,
        shares=current.shares + shares,
        collateral_amount=current.collateral_amount + collateral_amount,
    )


def withdraw_lend(current: LendPosition, amount: int, shares: int) -> Decrement:
    return _decrement(current, {"amount": amount, "shares": shares})


def repay_borrow(current: BorrowPosition, amount: int, shares: int) -> Decrement:
    return _decrement(current, {"amount": amount, "shares": shares})


def withdraw_collateral(current: BorrowPosition, amount: int) -> Decrement:
    return _decrement(current, {"collateral_amount": amount})
