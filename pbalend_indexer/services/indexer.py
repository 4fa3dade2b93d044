"""Indexing orchestration: source, sequencer, projection, checkpoint."""
from __future__ import annotations

import asyncio
import logging

from ..chains.evm import EthRpcClient
from ..config import AppConfig
from ..events import LendingEvent
from ..interfaces.event_source import EventSource
from ..interfaces.ledger_store import LedgerStore
from ..ordering import EventSequencer
from ..projection import ProjectionEngine
from ..protocols.pbalend import ChainEventSource
from ..query import QueryFacade
from ..stores import build_store

logger = logging.getLogger(__name__)


class Indexer:
    """Keeps the ledger store in sync with the PBALend contract."""

    def __init__(
        self,
        config: AppConfig,
        store: LedgerStore | None = None,
        source: EventSource | None = None,
    ) -> None:
        self._config = config
        self._store = store if store is not None else build_store(config.store)
        self._source = source if source is not None else ChainEventSource(
            EthRpcClient(config.chain),
            config.contract,
            confirmations=config.indexer.confirmations,
        )
        self._engine = ProjectionEngine(self._store, max_ltv=config.indexer.max_ltv)
        self._sequencer = EventSequencer()
        self.query = QueryFacade(self._store)

    @property
    def engine(self) -> ProjectionEngine:
        return self._engine

    @property
    def sequencer(self) -> EventSequencer:
        return self._sequencer

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    async def _apply_market(self, events: list[LendingEvent]) -> int:
        for event in events:
            await self._engine.apply(event)
            self._sequencer.mark_applied(event)
        return len(events)

    async def apply_batch(self, events: list[LendingEvent]) -> int:
        """Apply a batch; markets run concurrently, each strictly in order."""
        groups = self._sequencer.order(events)
        if not groups:
            return 0
        counts = await asyncio.gather(
            *(self._apply_market(group) for group in groups.values())
        )
        return sum(counts)

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    async def sync(self) -> int:
        """Index from the stored checkpoint up to the current head."""
        name = self._config.contract.name
        checkpoint = await self._store.get_checkpoint(name)
        from_block = (
            checkpoint + 1 if checkpoint is not None else self._config.contract.start_block
        )
        head = await self._source.latest_block()

        if from_block > head:
            logger.debug("Up to date at block %d", head)
            return 0

        logger.info("Syncing %s from block %d to %d", name, from_block, head)
        batch_size = self._config.indexer.batch_size
        applied = 0

        start = from_block
        while start <= head:
            end = min(start + batch_size - 1, head)
            events = await self._source.fetch_events(start, end)
            applied += await self.apply_batch(events)
            await self._store.put_checkpoint(name, end)
            start = end + 1

        stats = self._engine.stats
        logger.info(
            "Synced to block %d: applied: %d  duplicates: %d  missing: %d  clamped: %d",
            head, applied, self._sequencer.duplicates_skipped,
            stats.missing_aggregate, stats.clamped,
        )
        return applied

    async def run_continuous(self, poll_interval_seconds: int | None = None) -> None:
        """Run continuous indexing loop."""
        interval = poll_interval_seconds or self._config.indexer.poll_interval_seconds
        logger.info("Starting continuous indexing (polling every %d seconds)", interval)

        while True:
            try:
                await self.sync()
                await asyncio.sleep(interval)
            except Exception as e:
                logger.error("Error in indexing loop: %s", e)
                await asyncio.sleep(max(interval, 60))
