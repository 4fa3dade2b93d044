"""Fetch and decode PBALend contract logs."""
from __future__ import annotations

import logging

from ...config import ContractConfig
from ...events import LendingEvent
from ...chains.evm import EthRpcClient
from . import parser

logger = logging.getLogger(__name__)


class ChainEventSource:
    """Deliver decoded PBALend events for block ranges, in chain order."""

    def __init__(
        self, client: EthRpcClient, config: ContractConfig, confirmations: int = 0
    ) -> None:
        self._client = client
        self._address = config.address.lower()
        self._confirmations = confirmations
        self._topics = [parser.all_topics()]

    async def latest_block(self) -> int:
        """Newest block considered final enough to index."""
        head = await self._client.block_number()
        return max(head - self._confirmations, 0)

    async def fetch_events(self, from_block: int, to_block: int) -> list[LendingEvent]:
        logs = await self._client.get_logs(
            self._address, from_block, to_block, topics=self._topics
        )
        events: list[LendingEvent] = []
        for log in logs:
            event = parser.decode_log(log)
            if event is not None:
                events.append(event)

        events.sort(key=lambda e: e.position)
        logger.info(
            "Fetched %d PBALend events from blocks %d-%d (%d logs)",
            len(events), from_block, to_block, len(logs),
        )
        return events
