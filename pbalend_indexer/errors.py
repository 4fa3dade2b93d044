"""Exception hierarchy for the ledger indexer."""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for indexer errors."""


class MalformedEventError(LedgerError, ValueError):
    """An event is missing a field or carries an invalid value.

    Raised before any store access, so nothing is partially applied.
    """


class StoreUnavailableError(LedgerError):
    """The ledger store could not complete a read or write.

    Retryable: the event was not applied and must be redelivered.
    """


class RpcError(LedgerError):
    """Every configured RPC endpoint failed."""
