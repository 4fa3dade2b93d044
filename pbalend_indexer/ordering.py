"""Ordering and de-duplication of at-least-once event delivery."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from .errors import MalformedEventError
from .events import LendingEvent, LogPosition
from .models import MarketKey

logger = logging.getLogger(__name__)


class EventSequencer:
    """Groups events per market in (block, log index) order.

    Keeps a high watermark of the last applied position per market; any event
    at or below it is a redelivery and is dropped.
    """

    def __init__(self) -> None:
        self._watermarks: dict[MarketKey, LogPosition] = {}
        self.duplicates_skipped = 0

    def watermark(self, market: MarketKey) -> LogPosition | None:
        return self._watermarks.get(market)

    def order(self, events: Iterable[LendingEvent]) -> dict[MarketKey, list[LendingEvent]]:
        """Sort, de-duplicate and group a batch by market."""
        seen: set[LogPosition] = set()
        batch = list(events)
        for event in batch:
            if event.position is None:
                raise MalformedEventError(
                    f"{type(event).__name__} has no block/log position"
                )

        groups: dict[MarketKey, list[LendingEvent]] = defaultdict(list)
        for event in sorted(batch, key=lambda e: e.position):
            market = event.market_key
            mark = self._watermarks.get(market)
            if event.position in seen or (mark is not None and event.position <= mark):
                self.duplicates_skipped += 1
                logger.debug(
                    "Dropping duplicate %s at %s", type(event).__name__, event.position
                )
                continue
            seen.add(event.position)
            groups[market].append(event)
        return dict(groups)

    def mark_applied(self, event: LendingEvent) -> None:
        """Advance the market watermark past *event*."""
        market = event.market_key
        mark = self._watermarks.get(market)
        if mark is None or event.position > mark:
            self._watermarks[market] = event.position
