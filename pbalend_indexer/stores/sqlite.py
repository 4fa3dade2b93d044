"""SQLite ledger store.

One table per entity, keyed by the row id (``loan-collateral[-user]``).
Amounts are uint256 and exceed SQLite's 64-bit INTEGER, so they are stored
as decimal TEXT and converted back to ``int`` on read. The row's
``applied_at`` log position lives in two nullable INTEGER columns.

Every ``upsert`` runs inside ``BEGIN IMMEDIATE`` so the read-modify-write
holds the database write lock; a failing merge rolls back and writes nothing.
The blocking ``sqlite3`` work runs in a worker thread via
``asyncio.to_thread`` so a locked database never stalls the event loop.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import fields
from pathlib import Path
from typing import Any

from ..errors import StoreUnavailableError
from ..interfaces.ledger_store import Merge
from ..models import ROW_TYPES, EntityType, Key, LogPosition, Row

logger = logging.getLogger(__name__)

_TABLES: dict[EntityType, str] = {
    EntityType.MARKET: "markets",
    EntityType.LEND_POSITION: "lend_positions",
    EntityType.BORROW_POSITION: "borrow_positions",
}

_ADDRESS_COLUMNS = {"loan_token", "collateral_token", "user"}

_POSITION_COLUMNS = ("applied_block", "applied_log_index")


def _columns(entity: EntityType) -> list[str]:
    return [f.name for f in fields(ROW_TYPES[entity]) if f.name != "applied_at"]


def _to_record(entity: EntityType, row: Row) -> tuple[Any, ...]:
    values: list[Any] = [row.key.id]
    for name in _columns(entity):
        value = getattr(row, name)
        values.append(value if name in _ADDRESS_COLUMNS else str(value))
    if row.applied_at is None:
        values.extend((None, None))
    else:
        values.extend((row.applied_at.block_number, row.applied_at.log_index))
    return tuple(values)


def _from_record(entity: EntityType, record: sqlite3.Row) -> Row:
    kwargs: dict[str, Any] = {}
    for name in _columns(entity):
        value = record[name]
        kwargs[name] = value if name in _ADDRESS_COLUMNS else int(value)
    if record["applied_block"] is not None:
        kwargs["applied_at"] = LogPosition(
            int(record["applied_block"]), int(record["applied_log_index"])
        )
    return ROW_TYPES[entity](**kwargs)


class SqliteLedgerStore:
    """Durable ledger store backed by a local SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, isolation_level=None, timeout=5.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        """Create tables if they do not exist."""
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open ledger at {self.db_path}: {e}") from e
        try:
            for entity, table in _TABLES.items():
                cols = ",\n".join(f"{name} TEXT NOT NULL" for name in _columns(entity))
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id TEXT PRIMARY KEY,
                        {cols},
                        applied_block INTEGER,
                        applied_log_index INTEGER
                    )
                """)
                existing = {r["name"] for r in conn.execute(f"PRAGMA table_info({table})")}
                for column in _POSITION_COLUMNS:
                    if column not in existing:
                        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} INTEGER")
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_lend_positions_user
                ON lend_positions(user)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_borrow_positions_user
                ON borrow_positions(user)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS checkpoints (
                    name TEXT PRIMARY KEY,
                    block_number INTEGER NOT NULL
                )
            """)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot initialise ledger schema: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _select(conn: sqlite3.Connection, entity: EntityType, key: Key) -> Row | None:
        record = conn.execute(
            f"SELECT * FROM {_TABLES[entity]} WHERE id = ?", (key.id,)
        ).fetchone()
        return _from_record(entity, record) if record else None

    @staticmethod
    def _write(conn: sqlite3.Connection, entity: EntityType, row: Row) -> None:
        cols = ["id", *_columns(entity), *_POSITION_COLUMNS]
        placeholders = ", ".join("?" for _ in cols)
        conn.execute(
            f"INSERT OR REPLACE INTO {_TABLES[entity]} ({', '.join(cols)}) "
            f"VALUES ({placeholders})",
            _to_record(entity, row),
        )

    # ------------------------------------------------------------------
    # Blocking operations (run in a worker thread)
    # ------------------------------------------------------------------

    def _get_sync(self, entity: EntityType, key: Key) -> Row | None:
        try:
            conn = self._connect()
            try:
                return self._select(conn, entity, key)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Read of {entity.value} {key.id} failed: {e}") from e

    def _upsert_sync(self, entity: EntityType, key: Key, merge: Merge) -> Row | None:
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open ledger: {e}") from e
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                current = self._select(conn, entity, key)
                row = merge(current)
                if row is not None:
                    self._write(conn, entity, row)
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            return current if row is None else row
        except sqlite3.Error as e:
            raise StoreUnavailableError(
                f"Upsert of {entity.value} {key.id} failed: {e}"
            ) from e
        finally:
            conn.close()

    def _scan_sync(self, entity: EntityType) -> list[Row]:
        try:
            conn = self._connect()
            try:
                records = conn.execute(
                    f"SELECT * FROM {_TABLES[entity]} ORDER BY id"
                ).fetchall()
                return [_from_record(entity, r) for r in records]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Scan of {entity.value} failed: {e}") from e

    def _get_checkpoint_sync(self, name: str) -> int | None:
        try:
            conn = self._connect()
            try:
                record = conn.execute(
                    "SELECT block_number FROM checkpoints WHERE name = ?", (name,)
                ).fetchone()
                return int(record["block_number"]) if record else None
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Read of checkpoint {name} failed: {e}") from e

    def _put_checkpoint_sync(self, name: str, block_number: int) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO checkpoints (name, block_number) VALUES (?, ?)",
                    (name, block_number),
                )
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Write of checkpoint {name} failed: {e}") from e

    # ------------------------------------------------------------------
    # LedgerStore
    # ------------------------------------------------------------------

    async def get(self, entity: EntityType, key: Key) -> Row | None:
        return await asyncio.to_thread(self._get_sync, entity, key)

    async def put(self, entity: EntityType, key: Key, row: Row) -> None:
        await self.upsert(entity, key, lambda _current: row)

    async def upsert(self, entity: EntityType, key: Key, merge: Merge) -> Row | None:
        return await asyncio.to_thread(self._upsert_sync, entity, key, merge)

    async def scan(self, entity: EntityType) -> list[Row]:
        return await asyncio.to_thread(self._scan_sync, entity)

    async def get_checkpoint(self, name: str) -> int | None:
        return await asyncio.to_thread(self._get_checkpoint_sync, name)

    async def put_checkpoint(self, name: str, block_number: int) -> None:
        await asyncio.to_thread(self._put_checkpoint_sync, name, block_number)
        logger.debug("Checkpoint %s -> block %d", name, block_number)
