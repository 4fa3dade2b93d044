"""Projection engine — applies PBALend events to the ledger store."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from ..errors import MalformedEventError
from ..events import (
    Borrow,
    Deposit,
    LendingEvent,
    MarketCreated,
    Repay,
    Withdraw,
    WithdrawCollateral,
)
from ..interfaces.ledger_store import LedgerStore
from ..models import EntityType, Row
from . import reducers

logger = logging.getLogger(__name__)


@dataclass
class ProjectionStats:
    """Running counters, including anomalies the zero-floor clamp absorbs."""

    applied: int = 0
    duplicate_markets: int = 0
    missing_aggregate: int = 0
    clamped: int = 0
    replayed: int = 0


class ProjectionEngine:
    """Applies one event to one aggregate through an injected store.

    The engine never caches rows: every application is a single
    ``store.upsert`` so the read-modify-write is atomic per key.
    Each written row is stamped with the event's log position; an event at
    or before that stamp is skipped inside the same upsert, so re-reading a
    block range after a restart does not apply anything twice.
    """

    def __init__(self, store: LedgerStore, max_ltv: int | None = None) -> None:
        self._store = store
        self._max_ltv = max_ltv
        self.stats = ProjectionStats()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def apply(self, event: LendingEvent) -> Row | None:
        """Apply a typed event; returns the stored row after application."""
        match event:
            case MarketCreated():
                return await self._on_market_created(event)
            case Deposit():
                return await self._on_deposit(event)
            case Borrow():
                return await self._on_borrow(event)
            case Repay():
                return await self._on_repay(event)
            case Withdraw():
                return await self._on_withdraw(event)
            case WithdrawCollateral():
                return await self._on_withdraw_collateral(event)
            case _:
                raise MalformedEventError(f"Unknown event type: {type(event).__name__}")

    # ------------------------------------------------------------------
    # Public handlers
    # ------------------------------------------------------------------

    async def apply_market_created(
        self, loan_token: str, collateral_token: str, interest_rate: int, ltv: int
    ) -> Row | None:
        return await self._on_market_created(
            MarketCreated(loan_token, collateral_token, interest_rate, ltv)
        )

    async def apply_deposit(
        self, loan_token: str, collateral_token: str, user: str, amount: int, shares: int
    ) -> Row | None:
        return await self._on_deposit(
            Deposit(loan_token, collateral_token, user, amount, shares)
        )

    async def apply_borrow(
        self,
        loan_token: str,
        collateral_token: str,
        user: str,
        amount: int,
        shares: int,
        collateral_amount: int,
    ) -> Row | None:
        return await self._on_borrow(
            Borrow(loan_token, collateral_token, user, amount, shares, collateral_amount)
        )

    async def apply_repay(
        self, loan_token: str, collateral_token: str, user: str, shares: int, amount: int
    ) -> Row | None:
        return await self._on_repay(
            Repay(loan_token, collateral_token, user, shares, amount)
        )

    async def apply_withdraw(
        self, loan_token: str, collateral_token: str, user: str, amount: int, shares: int
    ) -> Row | None:
        return await self._on_withdraw(
            Withdraw(loan_token, collateral_token, user, amount, shares)
        )

    async def apply_withdraw_collateral(
        self, loan_token: str, collateral_token: str, user: str, amount: int
    ) -> Row | None:
        return await self._on_withdraw_collateral(
            WithdrawCollateral(loan_token, collateral_token, user, amount)
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _already_applied(current: Row | None, event: LendingEvent) -> bool:
        """True when ``current`` already reflects ``event`` (or a later log)."""
        if current is None or event.position is None or current.applied_at is None:
            return False
        return event.position <= current.applied_at

    @staticmethod
    def _stamp(row: Row, event: LendingEvent) -> Row:
        if event.position is None:
            return row
        return replace(row, applied_at=event.position)

    def _replayed(self, event: LendingEvent, key_id: str) -> None:
        self.stats.replayed += 1
        logger.info(
            "%s at %s already applied to %s; skipping",
            type(event).__name__, event.position, key_id,
        )

    async def _on_market_created(self, event: MarketCreated) -> Row | None:
        if self._max_ltv is not None and event.ltv > self._max_ltv:
            raise MalformedEventError(
                f"LTV {event.ltv} exceeds protocol maximum {self._max_ltv}"
            )

        key = event.market_key
        outcome = ""

        def merge(current):
            nonlocal outcome
            if self._already_applied(current, event):
                outcome = "replayed"
                return None
            row = reducers.create_market(current, key, event.interest_rate, event.ltv)
            if row is None:
                outcome = "duplicate"
                return None
            outcome = "created"
            return self._stamp(row, event)

        row = await self._store.upsert(EntityType.MARKET, key, merge)
        if outcome == "replayed":
            self._replayed(event, key.id)
            return row
        if outcome == "duplicate":
            self.stats.duplicate_markets += 1
            logger.debug("Market %s already exists, ignoring re-creation", key.id)
        self.stats.applied += 1

        logger.info(
            "PBALend: MarketCreated loan=%s collateral=%s interestRate=%d LTV=%d",
            event.loan_token, event.collateral_token, event.interest_rate, event.ltv,
        )
        return row

    async def _accumulate(self, entity: EntityType, event, reduce) -> tuple[Row | None, bool]:
        """Create-or-add; returns the stored row and whether the event was new."""
        key = event.position_key
        fresh = True

        def merge(current):
            nonlocal fresh
            if self._already_applied(current, event):
                fresh = False
                return None
            fresh = True
            return self._stamp(reduce(current), event)

        row = await self._store.upsert(entity, key, merge)
        if not fresh:
            self._replayed(event, key.id)
            return row, False
        self.stats.applied += 1
        return row, True

    async def _on_deposit(self, event: Deposit) -> Row | None:
        key = event.position_key
        row, fresh = await self._accumulate(
            EntityType.LEND_POSITION,
            event,
            lambda current: reducers.accumulate_lend(
                current, key, event.amount, event.shares
            ),
        )
        if fresh:
            logger.info(
                "PBALend: Deposit loan=%s collateral=%s user=%s amount=%d shares=%d",
                event.loan_token, event.collateral_token, event.user,
                event.amount, event.shares,
            )
        return row

    async def _on_borrow(self, event: Borrow) -> Row | None:
        key = event.position_key
        row, fresh = await self._accumulate(
            EntityType.BORROW_POSITION,
            event,
            lambda current: reducers.accumulate_borrow(
                current, key, event.amount, event.shares, event.collateral_amount
            ),
        )
        if fresh:
            logger.info(
                "PBALend: Borrow loan=%s collateral=%s user=%s amount=%d shares=%d collateralAmount=%d",
                event.loan_token, event.collateral_token, event.user,
                event.amount, event.shares, event.collateral_amount,
            )
        return row

    async def _on_repay(self, event: Repay) -> Row | None:
        row = await self._decrement(
            EntityType.BORROW_POSITION,
            event,
            lambda current: reducers.repay_borrow(current, event.amount, event.shares),
        )
        logger.info(
            "PBALend: Repay loan=%s collateral=%s user=%s shares=%d amount=%d",
            event.loan_token, event.collateral_token, event.user,
            event.shares, event.amount,
        )
        return row

    async def _on_withdraw(self, event: Withdraw) -> Row | None:
        row = await self._decrement(
            EntityType.LEND_POSITION,
            event,
            lambda current: reducers.withdraw_lend(current, event.amount, event.shares),
        )
        logger.info(
            "PBALend: Withdraw loan=%s collateral=%s user=%s amount=%d shares=%d",
            event.loan_token, event.collateral_token, event.user,
            event.amount, event.shares,
        )
        return row

    async def _on_withdraw_collateral(self, event: WithdrawCollateral) -> Row | None:
        row = await self._decrement(
            EntityType.BORROW_POSITION,
            event,
            lambda current: reducers.withdraw_collateral(current, event.amount),
        )
        logger.info(
            "PBALend: WithdrawCollateral loan=%s collateral=%s user=%s amount=%d",
            event.loan_token, event.collateral_token, event.user, event.amount,
        )
        return row

    async def _decrement(self, entity: EntityType, event, reduce) -> Row | None:
        """Saturating decrement of an existing row; no-op when the row is absent."""
        key = event.position_key
        outcome: list[reducers.Decrement] = []
        replayed = False

        def merge(current):
            nonlocal replayed
            outcome.clear()
            replayed = self._already_applied(current, event)
            if current is None or replayed:
                return None
            result = reduce(current)
            outcome.append(result)
            return self._stamp(result.row, event)

        row = await self._store.upsert(entity, key, merge)
        if replayed:
            self._replayed(event, key.id)
            return row
        self.stats.applied += 1

        if not outcome:
            self.stats.missing_aggregate += 1
            logger.warning(
                "%s for %s has no tracked %s; skipping",
                type(event).__name__, key.id, entity.value,
            )
            return None

        for clamp in outcome[0].clamps:
            self.stats.clamped += 1
            logger.warning(
                "Clamped %s.%s for %s to zero: stored=%d requested=%d (%s at %s)",
                entity.value, clamp.field_name, key.id, clamp.stored,
                clamp.requested, type(event).__name__, event.position,
            )
        return row
