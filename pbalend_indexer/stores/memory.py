"""In-memory ledger store with per-key locking."""
from __future__ import annotations

import asyncio
from collections import defaultdict

from ..interfaces.ledger_store import Merge
from ..models import EntityType, Key, Row


class InMemoryLedgerStore:
    """Dict-backed store; ``upsert`` holds a lock per (entity, key)."""

    def __init__(self) -> None:
        self._tables: dict[EntityType, dict[Key, Row]] = {e: {} for e in EntityType}
        self._locks: defaultdict[tuple[EntityType, Key], asyncio.Lock] = defaultdict(
            asyncio.Lock
        )
        self._checkpoints: dict[str, int] = {}

    async def get(self, entity: EntityType, key: Key) -> Row | None:
        return self._tables[entity].get(key)

    async def put(self, entity: EntityType, key: Key, row: Row) -> None:
        self._tables[entity][key] = row

    async def upsert(self, entity: EntityType, key: Key, merge: Merge) -> Row | None:
        async with self._locks[(entity, key)]:
            current = self._tables[entity].get(key)
            row = merge(current)
            if row is None:
                return current
            self._tables[entity][key] = row
            return row

    async def scan(self, entity: EntityType) -> list[Row]:
        return list(self._tables[entity].values())

    async def get_checkpoint(self, name: str) -> int | None:
        return self._checkpoints.get(name)

    async def put_checkpoint(self, name: str, block_number: int) -> None:
        self._checkpoints[name] = block_number
