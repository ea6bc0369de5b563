"""Tests for the in-memory adapters.

These adapters back the CLI's --memory mode and the API without a
database, so they must honor the same contracts as the PostgreSQL ones.
"""

import pytest

from src.catalog_sync.sync.adapters.memory import (
    InMemoryProductStore,
    InMemorySyncHistoryRepository,
    InMemorySyncLogRepository,
    InMemorySyncStateStore,
    InMemoryTermRepository,
    InMemoryTranslationCache,
    fields_hash,
)
from src.catalog_sync.sync.domain.entities import (
    LogEntry,
    LogLevel,
    NormalizedProduct,
    SyncHistoryRecord,
    SyncState,
    SyncStatus,
    TranslationCacheEntry,
    UpsertOutcome,
)
from src.catalog_sync.sync.domain.ports import TermExistsError


class TestInMemorySyncStateStore:
    @pytest.fixture
    def store(self):
        return InMemorySyncStateStore()

    async def test_load_missing(self, store):
        assert await store.load("default") is None

    async def test_acquire_and_load(self, store):
        state = SyncState.begin("default", 10)

        assert await store.try_acquire("default", state)

        loaded = await store.load("default")
        assert loaded.run_id == state.run_id
        assert loaded is not state

    async def test_acquire_rejected_while_active(self, store):
        await store.try_acquire("default", SyncState.begin("default", 10))

        assert not await store.try_acquire("default", SyncState.begin("default", 10))

    async def test_returned_states_are_copies(self, store):
        await store.try_acquire("default", SyncState.begin("default", 10))

        loaded = await store.load("default")
        loaded.cursor = 42

        assert (await store.load("default")).cursor == 0

    async def test_save_checkpoint(self, store):
        state = SyncState.begin("default", 10)
        await store.try_acquire("default", state)
        state.cursor = 1
        state.offset = 10

        saved = await store.save(state)

        assert saved.cursor == 1
        assert (await store.load("default")).offset == 10

    async def test_running_checkpoint_keeps_pause_intent(self, store):
        state = SyncState.begin("default", 10)
        await store.try_acquire("default", state)
        await store.transition("default", [SyncStatus.RUNNING], SyncStatus.PAUSING)
        state.cursor = 1

        saved = await store.save(state)

        assert saved.status == SyncStatus.PAUSING
        assert saved.cursor == 1

    async def test_stale_run_checkpoint_is_ignored(self, store):
        old = SyncState.begin("default", 10)
        await store.try_acquire("default", old)
        await store.transition("default", [SyncStatus.RUNNING], SyncStatus.FAILED)
        new = SyncState.begin("default", 10)
        await store.try_acquire("default", new)
        old.cursor = 7

        saved = await store.save(old)

        assert saved.run_id == new.run_id
        assert saved.cursor == 0

    async def test_transition_guarded_by_from_statuses(self, store):
        await store.try_acquire("default", SyncState.begin("default", 10))

        assert await store.transition("default", [SyncStatus.PAUSED], SyncStatus.RUNNING) is None
        moved = await store.transition("default", [SyncStatus.RUNNING], SyncStatus.STOPPING)
        assert moved.status == SyncStatus.STOPPING

    async def test_transition_to_idle_resets(self, store):
        state = SyncState.begin("default", 10)
        state.cursor = 3
        await store.try_acquire("default", state)
        await store.transition("default", [SyncStatus.RUNNING], SyncStatus.COMPLETED)

        idle = await store.transition("default", [SyncStatus.COMPLETED], SyncStatus.IDLE)

        assert idle.status == SyncStatus.IDLE
        assert idle.cursor == 0
        assert idle.last_synced_at is not None

    async def test_list_active(self, store):
        await store.try_acquire("a", SyncState.begin("a", 10))
        await store.try_acquire("b", SyncState.begin("b", 10))
        await store.transition("b", [SyncStatus.RUNNING], SyncStatus.FAILED)

        active = await store.list_active()

        assert [s.scope for s in active] == ["a"]


class TestInMemoryTranslationCache:
    def entry(self, key: str, text: str) -> TranslationCacheEntry:
        return TranslationCacheEntry(
            key=key,
            source_text="Brake",
            translated_text=text,
            source_language="en",
            target_language="ro",
        )

    async def test_put_and_get(self):
        cache = InMemoryTranslationCache()

        await cache.put(self.entry("k1", "Frână"))

        assert await cache.get("k1") == "Frână"
        assert await cache.get("k2") is None
        assert cache.entries["k1"].created_at is not None

    async def test_entries_are_immutable(self):
        cache = InMemoryTranslationCache()
        await cache.put(self.entry("k1", "Frână"))

        await cache.put(self.entry("k1", "Something else"))

        assert await cache.get("k1") == "Frână"

    async def test_get_many_returns_hits_only(self):
        cache = InMemoryTranslationCache()
        await cache.put(self.entry("k1", "a"))
        await cache.put(self.entry("k2", "b"))

        assert await cache.get_many(["k1", "k3", "k2"]) == {"k1": "a", "k2": "b"}


class TestInMemorySyncHistoryRepository:
    async def test_sealed_record_rejects_updates(self):
        repo = InMemorySyncHistoryRepository()
        record = SyncHistoryRecord(run_id="sync_1", scope="a")
        await repo.create(record)

        record.seal(SyncStatus.COMPLETED)
        assert await repo.update(record)

        record.status = SyncStatus.FAILED
        assert not await repo.update(record)
        assert (await repo.get("sync_1")).status == SyncStatus.COMPLETED

    async def test_list_recent_by_scope(self):
        repo = InMemorySyncHistoryRepository()
        await repo.create(SyncHistoryRecord(run_id="r1", scope="a"))
        await repo.create(SyncHistoryRecord(run_id="r2", scope="b"))

        assert [r.run_id for r in await repo.list_recent("a")] == ["r1"]
        assert len(await repo.list_recent(None)) == 2


class TestInMemorySyncLogRepository:
    async def test_recent_newest_first_with_filters(self):
        repo = InMemorySyncLogRepository()
        await repo.append(LogEntry(message="one", scope="a", run_id="r1"))
        await repo.append(LogEntry(message="two", level=LogLevel.ERROR, scope="a", run_id="r1"))
        await repo.append(LogEntry(message="three", scope="a", run_id="r2"))
        await repo.append(LogEntry(message="other", scope="b"))

        assert [e.message for e in await repo.recent("a")] == ["three", "two", "one"]
        assert [e.message for e in await repo.recent("a", level=LogLevel.ERROR)] == ["two"]
        assert [e.message for e in await repo.recent("a", run_id="r1")] == ["two", "one"]
        assert [e.message for e in await repo.recent("a", limit=1)] == ["three"]
        assert await repo.count_errors("r1") == 1

    async def test_prune_keeps_newest(self):
        repo = InMemorySyncLogRepository()
        for i in range(5):
            await repo.append(LogEntry(message=f"m{i}", scope="a"))
        await repo.append(LogEntry(message="keep", scope="b"))

        deleted = await repo.prune("a", keep=2)

        assert deleted == 3
        assert [e.message for e in await repo.recent("a")] == ["m4", "m3"]
        assert len(await repo.recent("b")) == 1


class TestInMemoryTermRepository:
    async def test_create_and_find(self):
        repo = InMemoryTermRepository()

        term = await repo.create("scooter_model", "Xiaomi Mi 4 Lite", "110", external_id="110")

        assert (await repo.find_by_external_id("scooter_model", "110")).id == term.id
        assert (await repo.find_by_slug("scooter_model", "110")).name == "Xiaomi Mi 4 Lite"
        assert await repo.find_by_slug("product_cat", "110") is None

    async def test_duplicate_slug_raises(self):
        repo = InMemoryTermRepository()
        first = await repo.create("product_cat", "Brakes", "brakes")

        with pytest.raises(TermExistsError) as exc_info:
            await repo.create("product_cat", "Brakes again", "brakes")

        assert exc_info.value.existing_id == first.id

    async def test_attach_external_id(self):
        repo = InMemoryTermRepository()
        term = await repo.create("product_cat", "Brakes", "brakes")

        await repo.attach_external_id(term, "C-1")

        assert (await repo.find_by_external_id("product_cat", "C-1")).id == term.id


class TestInMemoryProductStore:
    def product(self, **fields) -> NormalizedProduct:
        return NormalizedProduct(
            reference="SKU-1",
            fields={"name": "Frână", "regular_price": "59.64", **fields},
            protected_fields={"description": "Original text"},
            meta={"_ewheel_reference": "SKU-1"},
        )

    async def test_created_then_unchanged_then_updated(self):
        store = InMemoryProductStore()

        created = await store.upsert("SKU-1", self.product())
        unchanged = await store.upsert("SKU-1", self.product())
        updated = await store.upsert("SKU-1", self.product(regular_price="60.00"))

        assert created.outcome == UpsertOutcome.CREATED
        assert unchanged.outcome == UpsertOutcome.UNCHANGED
        assert updated.outcome == UpsertOutcome.UPDATED
        assert created.local_id == unchanged.local_id == updated.local_id
        assert store.get("SKU-1")["fields"]["regular_price"] == "60.00"

    async def test_protected_fields_written_on_create_only(self):
        store = InMemoryProductStore()
        await store.upsert("SKU-1", self.product())
        store.products["SKU-1"]["fields"]["description"] = "Edited by hand"

        second = self.product(regular_price="61.00")
        second.protected_fields["description"] = "Vendor text"
        await store.upsert("SKU-1", second)

        assert store.get("SKU-1")["fields"]["description"] == "Edited by hand"

    def test_fields_hash_ignores_key_order(self):
        assert fields_hash({"a": 1, "b": [1, 2]}) == fields_hash({"b": [1, 2], "a": 1})
        assert fields_hash({"a": 1}) != fields_hash({"a": 2})
