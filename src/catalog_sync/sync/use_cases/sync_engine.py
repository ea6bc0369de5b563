"""Sync Engine - One batch of the resumable catalog sync per invocation.

The engine holds no state between invocations. Every call to
process_batch() loads the scope's SyncState, does at most one batch of
work and commits a checkpoint, so a process can die at any point and the
next invocation continues from the last committed batch.

Per invocation:
1. Settle control intent: STOPPING -> stopped, PAUSING -> paused
2. On the first batch of a run, sync categories (failures are logged only)
3. Fetch one page at the current offset
4. Fetch failure: count it, shrink the batch, or fail the run at the threshold
5. Transform and upsert every item; item failures are isolated
6. Commit cursor, offset, counters and a grown batch size
7. Complete the run on the last page, or fail it at the max_items safety stop

Adaptive batching: batch_size halves after each failed fetch (never below
min_batch) and doubles after each clean batch (never above max_batch).
Each fetch uses the largest page size <= batch_size that divides the
offset, so page * page_size == offset and no item is skipped or fetched
twice when the size changes.
"""

import asyncio
import logging
from typing import Any, Optional

from ...api.client import format_newer_than
from ...api.exceptions import CatalogSyncError, ItemProcessingError, PersistenceError, TransportError
from ...config import EffectiveSettings, SettingsRegistry
from ..domain.entities import (
    BatchOutcome,
    BatchOutcomeKind,
    SyncCounters,
    SyncHistoryRecord,
    SyncState,
    SyncStatus,
    SyncType,
    UpsertOutcome,
    utc_now,
)
from ..domain.ports import (
    ICatalogAPI,
    IProductUpserter,
    ISyncHistoryRepository,
    ISyncLogRepository,
    ISyncStateStore,
)
from .sync_categories import SyncCategoriesUseCase
from .sync_logger import SyncLogger
from .transform_product import ProductTransformer

logger = logging.getLogger(__name__)


def aligned_page_size(offset: int, batch_size: int) -> int:
    """Largest page size <= batch_size whose page boundary falls on offset."""
    batch_size = max(1, batch_size)
    if offset == 0:
        return batch_size
    for size in range(batch_size, 0, -1):
        if offset % size == 0:
            return size
    return 1


class SyncEngine:
    """Drives one scope's sync run a batch at a time.

    Example:
        engine = SyncEngine(
            catalog_api=CatalogAPIAdapter(client),
            state_store=PostgresSyncStateStore(pool),
            product_upserter=PostgresProductRepository(pool),
            transformer=ProductTransformer(translator, resolver),
            history_repo=PostgresSyncHistoryRepository(pool),
            log_repo=PostgresSyncLogRepository(pool),
            settings=SettingsRegistry.from_env(),
        )
        outcome = await engine.process_batch("default")
    """

    def __init__(
        self,
        catalog_api: ICatalogAPI,
        state_store: ISyncStateStore,
        product_upserter: IProductUpserter,
        transformer: ProductTransformer,
        history_repo: ISyncHistoryRepository,
        log_repo: ISyncLogRepository,
        settings: SettingsRegistry,
        category_sync: Optional[SyncCategoriesUseCase] = None,
    ):
        self.api = catalog_api
        self.store = state_store
        self.upserter = product_upserter
        self.transformer = transformer
        self.history = history_repo
        self.logs = log_repo
        self.settings = settings
        self.category_sync = category_sync
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, scope: str) -> asyncio.Lock:
        if scope not in self._locks:
            self._locks[scope] = asyncio.Lock()
        return self._locks[scope]

    async def process_batch(self, scope: str) -> BatchOutcome:
        """Run one batch for a scope.

        Never raises for run-level problems; the outcome and the stored
        state describe what happened.
        """
        lock = self._lock_for(scope)
        if lock.locked():
            return BatchOutcome(BatchOutcomeKind.BUSY, message=f"A batch is already running for '{scope}'")

        async with lock:
            try:
                return await self._process(scope)
            except PersistenceError as e:
                logger.error(f"Sync state persistence failed for '{scope}', aborting run: {e}")
                return await self._abort(scope, e)

    # ============================================
    # Batch protocol
    # ============================================

    async def _process(self, scope: str) -> BatchOutcome:
        state = await self.store.load(scope)
        if state is None or not state.is_active:
            return BatchOutcome(BatchOutcomeKind.NOOP, state=state, message="No active sync")

        settings = self.settings.for_scope(scope)
        log = SyncLogger(self.logs, scope, state.run_id)

        if state.has_intent:
            return await self._settle_intent(state, log)

        if self._is_first_batch(state):
            await self._sync_categories(settings, log)

        page_size = aligned_page_size(state.offset, state.batch_size)
        page = state.offset // page_size
        filters = self.build_filters(state, settings)

        try:
            product_page = await self.api.fetch_products(page, page_size, filters)
        except TransportError as e:
            return await self._fetch_failed(state, settings, log, e)

        items = product_page.items
        truncated = False
        if state.limit:
            remaining = max(0, state.limit - state.counters.processed)
            truncated = len(items) > remaining
            items = items[:remaining]

        batch, errors = await self._process_items(items, settings, log)
        if product_page.skipped and not truncated:
            batch.processed += product_page.skipped
            batch.failed += product_page.skipped
            errors += product_page.skipped
            await log.error(f"Skipped {product_page.skipped} unreadable product records on page {page}")

        state.cursor += 1
        # The offset follows the vendor's records so page boundaries stay aligned
        state.offset += len(items) if truncated else product_page.fetched
        state.counters.add(batch)
        state.failure_count = 0
        state.batch_size = settings.batch.grow(state.batch_size)
        state.updated_at = utc_now()

        is_last = product_page.is_last_page or product_page.fetched == 0 or state.limit_reached
        if is_last:
            return await self._finish(state, SyncStatus.COMPLETED, log, batch=batch, new_errors=errors)

        max_items = settings.batch.max_items
        if max_items and state.offset >= max_items:
            # Never completed: last_synced_at must not cover the unfetched tail
            state.last_error = (
                f"Safety stop: {state.offset} items fetched without reaching the last page "
                f"(SYNC_MAX_ITEMS={max_items})"
            )
            return await self._finish(state, SyncStatus.FAILED, log, batch=batch, new_errors=errors + 1)

        saved = await self.store.save(state)
        await self._record_progress(saved, new_errors=errors)
        await log.info(
            f"Batch {saved.cursor} committed: {batch.processed} processed, "
            f"{batch.created} created, {batch.updated} updated, {batch.failed} failed"
        )

        if saved.has_intent:
            return await self._settle_intent(saved, log, batch)
        return BatchOutcome(BatchOutcomeKind.COMMITTED, state=saved, batch=batch)

    @staticmethod
    def _is_first_batch(state: SyncState) -> bool:
        return state.cursor == 0 and state.offset == 0 and state.failure_count == 0

    @staticmethod
    def build_filters(state: SyncState, settings: EffectiveSettings) -> dict[str, Any]:
        """Vendor filters for the run: profile filters, since-date, active flag."""
        filters = settings.api_filters()
        if state.sync_type == SyncType.INCREMENTAL and state.since:
            filters["NewerThan"] = format_newer_than(state.since)
        if not any(key.lower() == "active" for key in filters):
            filters["Active"] = 1
        return filters

    async def _sync_categories(self, settings: EffectiveSettings, log: SyncLogger) -> None:
        if self.category_sync is None:
            return
        try:
            result = await self.category_sync.execute(settings)
        except CatalogSyncError as e:
            await log.warning(f"Category sync failed, continuing with products: {e}")
            return
        if result.success:
            await log.info(f"Categories synced: {result.upserted} of {result.total}")
        else:
            await log.warning(
                f"Category sync finished with {result.errors} errors, continuing with products"
            )

    async def _process_items(
        self,
        items: list,
        settings: EffectiveSettings,
        log: SyncLogger,
    ) -> tuple[SyncCounters, int]:
        batch = SyncCounters()
        errors = 0

        for item in items:
            batch.processed += 1
            try:
                products = await self.transformer.transform(item, settings)
                for product in products:
                    result = await self.upserter.upsert(product.reference, product)
                    if result.outcome == UpsertOutcome.CREATED:
                        batch.created += 1
                    elif result.outcome == UpsertOutcome.UPDATED:
                        batch.updated += 1
                    else:
                        batch.unchanged += 1
            except Exception as e:
                error = e if isinstance(e, ItemProcessingError) else ItemProcessingError(
                    str(e), reference=item.reference, cause=e
                )
                batch.failed += 1
                errors += 1
                await log.error(
                    f"Failed to sync product {item.reference}: {error.message}",
                    reference=item.reference,
                )

        return batch, errors

    async def _fetch_failed(
        self,
        state: SyncState,
        settings: EffectiveSettings,
        log: SyncLogger,
        error: TransportError,
    ) -> BatchOutcome:
        policy = settings.batch
        state.failure_count += 1
        state.last_error = str(error)

        if state.failure_count >= policy.failure_threshold:
            await log.error(
                f"Fetch failed {state.failure_count} times in a row, giving up: {error}"
            )
            return await self._finish(state, SyncStatus.FAILED, log, new_errors=1)

        state.batch_size = policy.shrink(state.batch_size)
        state.updated_at = utc_now()
        saved = await self.store.save(state)
        await self._record_progress(saved, new_errors=1)
        await log.warning(
            f"Fetch failed ({saved.failure_count}/{policy.failure_threshold}), "
            f"batch size reduced to {saved.batch_size}: {error}"
        )

        if saved.has_intent:
            return await self._settle_intent(saved, log)
        return BatchOutcome(BatchOutcomeKind.FETCH_FAILED, state=saved, message=str(error))

    # ============================================
    # Status commits
    # ============================================

    async def _settle_intent(
        self,
        state: SyncState,
        log: SyncLogger,
        batch: Optional[SyncCounters] = None,
    ) -> BatchOutcome:
        """Commit a pending pause or cancel at the batch boundary."""
        batch = batch or SyncCounters()

        if state.status == SyncStatus.PAUSING:
            state.transition_to(SyncStatus.PAUSED)
            saved = await self.store.save(state)
            if saved.status == SyncStatus.STOPPING:
                return await self._finish(saved, SyncStatus.STOPPED, log, batch=batch)
            await self._record_progress(saved)
            await log.info(f"Sync paused after batch {saved.cursor}")
            return BatchOutcome(BatchOutcomeKind.PAUSED, state=saved, batch=batch)

        return await self._finish(state, SyncStatus.STOPPED, log, batch=batch)

    async def _finish(
        self,
        state: SyncState,
        status: SyncStatus,
        log: SyncLogger,
        batch: Optional[SyncCounters] = None,
        new_errors: int = 0,
    ) -> BatchOutcome:
        state.transition_to(status)
        saved = await self.store.save(state)
        await self._record_progress(saved, new_errors=new_errors, seal=True)

        counters = saved.counters
        summary = (
            f"{counters.processed} processed, {counters.created} created, "
            f"{counters.updated} updated, {counters.unchanged} unchanged, {counters.failed} failed"
        )
        if saved.status == SyncStatus.COMPLETED:
            await log.success(f"Sync completed: {summary}")
        elif saved.status == SyncStatus.STOPPED:
            await log.warning(f"Sync stopped after batch {saved.cursor}: {summary}")
        elif saved.status == SyncStatus.FAILED:
            await log.error(f"Sync failed: {saved.last_error}")
        await log.prune()

        kinds = {
            SyncStatus.COMPLETED: BatchOutcomeKind.COMPLETED,
            SyncStatus.STOPPED: BatchOutcomeKind.STOPPED,
            SyncStatus.FAILED: BatchOutcomeKind.FAILED,
        }
        return BatchOutcome(
            kinds.get(saved.status, BatchOutcomeKind.COMMITTED),
            state=saved,
            batch=batch or SyncCounters(),
            message=(saved.last_error or "") if saved.status == SyncStatus.FAILED else "",
        )

    async def _record_progress(self, state: SyncState, new_errors: int = 0, seal: bool = False) -> None:
        """Mirror the state into the run's history record.

        History is a side record: a write failure is logged and the run
        continues.
        """
        if not state.run_id:
            return

        try:
            await self._write_history(state, new_errors, seal)
        except PersistenceError as e:
            logger.warning(f"History update failed for run {state.run_id}: {e}")

    async def _write_history(self, state: SyncState, new_errors: int, seal: bool) -> None:
        record = await self.history.get(state.run_id)
        if record is None:
            record = SyncHistoryRecord.for_state(state)
            await self.history.create(record)
        if record.sealed:
            logger.debug(f"History for {state.run_id} already sealed")
            return

        record.counters = SyncCounters(**state.counters.to_dict())
        record.error_count += new_errors
        record.last_error = state.last_error
        if seal and state.is_terminal:
            record.seal(state.status, state.completed_at)
        else:
            record.status = state.status
        await self.history.update(record)

    async def _abort(self, scope: str, error: PersistenceError) -> BatchOutcome:
        """Best effort to mark the run failed after a persistence failure."""
        state = None
        try:
            state = await self.store.transition(
                scope,
                [SyncStatus.RUNNING, SyncStatus.PAUSING, SyncStatus.STOPPING],
                SyncStatus.FAILED,
            )
            if state is not None:
                await self._record_progress(state, new_errors=1, seal=True)
        except PersistenceError as e:
            logger.error(f"Could not mark sync '{scope}' as failed: {e}")
        return BatchOutcome(BatchOutcomeKind.FAILED, state=state, message=str(error))
