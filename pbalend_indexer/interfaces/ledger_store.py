"""Ledger store protocol — keyed storage for projected rows."""
from typing import Callable, Protocol

from ..models import EntityType, Key, Row

Merge = Callable[[Row | None], Row | None]


class LedgerStore(Protocol):
    """Abstract interface for the Market / LendPosition / BorrowPosition tables.

    ``upsert`` is the only write path the projection uses: it reads the
    current row, calls ``merge`` and writes the result atomically for that
    key. ``merge`` returning ``None`` leaves the row untouched.
    """

    async def get(self, entity: EntityType, key: Key) -> Row | None: ...

    async def put(self, entity: EntityType, key: Key, row: Row) -> None: ...

    async def upsert(self, entity: EntityType, key: Key, merge: Merge) -> Row | None: ...

    async def scan(self, entity: EntityType) -> list[Row]: ...

    async def get_checkpoint(self, name: str) -> int | None: ...

    async def put_checkpoint(self, name: str, block_number: int) -> None: ...
