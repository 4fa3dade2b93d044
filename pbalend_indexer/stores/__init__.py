"""Ledger store implementations."""
from __future__ import annotations

from ..config import StoreConfig
from ..interfaces.ledger_store import LedgerStore
from .memory import InMemoryLedgerStore
from .sqlite import SqliteLedgerStore

__all__ = ["InMemoryLedgerStore", "SqliteLedgerStore", "build_store"]


def build_store(config: StoreConfig) -> LedgerStore:
    """Instantiate the store selected by ``store.backend``."""
    if config.backend == "sqlite":
        return SqliteLedgerStore(config.path)
    if config.backend == "memory":
        return InMemoryLedgerStore()
    raise ValueError(f"Unknown store backend '{config.backend}'")
