"""Sync Runner - Keeps invoking the engine while runs are active.

The engine does one batch per call. The runner supplies the loop around
it: a fixed delay between batches, a growing backoff after failed
fetches, and a shutdown event so the process can stop between batches.

    drive(scope)    - run one scope until it stops being active
    run_forever()   - tick every active scope until shutdown
"""

import asyncio
import logging
from typing import Optional

from ...api.exceptions import CatalogSyncError
from ..domain.entities import BatchOutcome, BatchOutcomeKind
from ..domain.ports import ISyncStateStore
from .sync_engine import SyncEngine

logger = logging.getLogger(__name__)


class SyncRunner:
    """Batch driver for the sync engine.

    Args:
        engine: Sync engine
        state_store: Store used to discover active scopes
        batch_delay: Seconds between batches of a run
        max_backoff: Upper bound for the delay after failed fetches
    """

    def __init__(
        self,
        engine: SyncEngine,
        state_store: ISyncStateStore,
        batch_delay: float = 5.0,
        max_backoff: float = 60.0,
    ):
        self.engine = engine
        self.store = state_store
        self.batch_delay = batch_delay
        self.max_backoff = max_backoff
        self._not_before: dict[str, float] = {}

    def delay_after(self, outcome: BatchOutcome) -> float:
        """Seconds to wait before the next batch of the same run."""
        if outcome.kind == BatchOutcomeKind.FETCH_FAILED and outcome.state is not None:
            backoff = self.batch_delay * (2 ** max(0, outcome.state.failure_count - 1))
            return min(self.max_backoff, backoff)
        return self.batch_delay

    async def drive(
        self,
        scope: str,
        shutdown_event: Optional[asyncio.Event] = None,
        max_batches: Optional[int] = None,
    ) -> BatchOutcome:
        """Process batches for one scope until the run leaves the active states.

        Returns:
            The last batch outcome
        """
        shutdown_event = shutdown_event or asyncio.Event()
        batches = 0

        while True:
            outcome = await self.engine.process_batch(scope)
            batches += 1
            logger.debug(f"[{scope}] batch {batches}: {outcome.kind.value}")

            if not outcome.should_continue:
                return outcome
            if max_batches is not None and batches >= max_batches:
                return outcome

            if await self._wait(self.delay_after(outcome), shutdown_event):
                logger.info(f"Shutdown requested, leaving '{scope}' at batch {outcome.state.cursor}")
                return outcome

    async def tick(self) -> list[BatchOutcome]:
        """Run one batch for every active scope that is not backing off."""
        loop = asyncio.get_running_loop()
        now = loop.time()

        active = await self.store.list_active()
        due = [state.scope for state in active if self._not_before.get(state.scope, 0.0) <= now]
        if not due:
            return []

        outcomes = await asyncio.gather(*(self.engine.process_batch(scope) for scope in due))

        for scope, outcome in zip(due, outcomes):
            if outcome.kind == BatchOutcomeKind.FETCH_FAILED:
                self._not_before[scope] = loop.time() + self.delay_after(outcome)
            else:
                self._not_before.pop(scope, None)
        return list(outcomes)

    async def run_forever(self, shutdown_event: asyncio.Event, interval: Optional[float] = None) -> None:
        """Tick all active scopes until the shutdown event is set."""
        interval = self.batch_delay if interval is None else interval
        logger.info(f"Sync runner started (interval {interval}s)")

        while not shutdown_event.is_set():
            try:
                outcomes = await self.tick()
                for outcome in outcomes:
                    if outcome.kind in (BatchOutcomeKind.COMPLETED, BatchOutcomeKind.FAILED):
                        logger.info(f"Run finished: {outcome.kind.value} ({outcome.message or 'ok'})")
            except CatalogSyncError as e:
                logger.error(f"Sync runner tick failed: {e}")

            if await self._wait(interval, shutdown_event):
                break

        logger.info("Sync runner stopped")

    @staticmethod
    async def _wait(seconds: float, shutdown_event: asyncio.Event) -> bool:
        """Sleep up to ``seconds``; True if shutdown was requested."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return shutdown_event.is_set()
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False
