"""PBALend lending contract."""
from .source import ChainEventSource

__all__ = ["ChainEventSource"]
