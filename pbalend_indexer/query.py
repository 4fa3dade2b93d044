"""Read-only query facade over the ledger store."""
from __future__ import annotations

from .events import normalize_address
from .interfaces.ledger_store import LedgerStore
from .models import (
    BorrowPosition,
    EntityType,
    LendPosition,
    Market,
    MarketKey,
    PositionKey,
)


class QueryFacade:
    """Snapshot reads for external consumers.

    Returns ``None`` when no event ever touched a key, so "never deposited"
    is distinguishable from a zeroed position.
    """

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    async def get_market(self, loan_token: str, collateral_token: str) -> Market | None:
        key = MarketKey(
            normalize_address(loan_token, "loan_token"),
            normalize_address(collateral_token, "collateral_token"),
        )
        return await self._store.get(EntityType.MARKET, key)

    async def get_lend_position(
        self, loan_token: str, collateral_token: str, user: str
    ) -> LendPosition | None:
        return await self._store.get(
            EntityType.LEND_POSITION,
            self._position_key(loan_token, collateral_token, user),
        )

    async def get_borrow_position(
        self, loan_token: str, collateral_token: str, user: str
    ) -> BorrowPosition | None:
        return await self._store.get(
            EntityType.BORROW_POSITION,
            self._position_key(loan_token, collateral_token, user),
        )

    async def list_markets(self) -> list[Market]:
        return await self._store.scan(EntityType.MARKET)

    async def list_lend_positions(self, user: str | None = None) -> list[LendPosition]:
        return await self._list(EntityType.LEND_POSITION, user)

    async def list_borrow_positions(self, user: str | None = None) -> list[BorrowPosition]:
        return await self._list(EntityType.BORROW_POSITION, user)

    async def _list(self, entity: EntityType, user: str | None) -> list:
        rows = await self._store.scan(entity)
        if user is None:
            return rows
        wanted = normalize_address(user, "user")
        return [r for r in rows if r.user == wanted]

    @staticmethod
    def _position_key(loan_token: str, collateral_token: str, user: str) -> PositionKey:
        return PositionKey(
            normalize_address(loan_token, "loan_token"),
            normalize_address(collateral_token, "collateral_token"),
            normalize_address(user, "user"),
        )
