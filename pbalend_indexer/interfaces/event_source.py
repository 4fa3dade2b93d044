"""Event source protocol."""
from typing import Protocol

from ..events import LendingEvent


class EventSource(Protocol):
    """Abstract interface for fetching decoded PBALend events."""

    async def latest_block(self) -> int: ...

    async def fetch_events(self, from_block: int, to_block: int) -> list[LendingEvent]: ...
