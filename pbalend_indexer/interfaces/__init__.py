"""Protocol interfaces for the ledger indexer."""
from .event_source import EventSource
from .ledger_store import LedgerStore, Merge

__all__ = ["EventSource", "LedgerStore", "Merge"]
