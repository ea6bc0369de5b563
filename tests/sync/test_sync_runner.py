"""Tests for the SyncRunner batch driver."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest_asyncio

from src.catalog_sync.api.exceptions import PersistenceError
from src.catalog_sync.sync.adapters.memory import InMemorySyncStateStore
from src.catalog_sync.sync.domain.entities import BatchOutcome, BatchOutcomeKind, SyncState, SyncStatus
from src.catalog_sync.sync.use_cases.sync_runner import SyncRunner


def outcome(kind: BatchOutcomeKind, status: SyncStatus, failure_count: int = 0, scope: str = "default"):
    return BatchOutcome(kind, state=SyncState(scope=scope, status=status, failure_count=failure_count))


def mock_engine(*outcomes):
    engine = MagicMock()
    engine.process_batch = AsyncMock(side_effect=list(outcomes))
    return engine


class TestDelay:
    def test_fixed_delay_after_commit(self):
        runner = SyncRunner(mock_engine(), InMemorySyncStateStore(), batch_delay=2.0)

        assert runner.delay_after(outcome(BatchOutcomeKind.COMMITTED, SyncStatus.RUNNING)) == 2.0

    def test_backoff_grows_with_failures(self):
        runner = SyncRunner(mock_engine(), InMemorySyncStateStore(), batch_delay=1.0, max_backoff=60.0)

        delays = [
            runner.delay_after(outcome(BatchOutcomeKind.FETCH_FAILED, SyncStatus.RUNNING, failure_count=n))
            for n in (1, 2, 3, 4)
        ]

        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_backoff_is_capped(self):
        runner = SyncRunner(mock_engine(), InMemorySyncStateStore(), batch_delay=5.0, max_backoff=12.0)

        failed = outcome(BatchOutcomeKind.FETCH_FAILED, SyncStatus.RUNNING, failure_count=4)

        assert runner.delay_after(failed) == 12.0


class TestDrive:
    async def test_drives_until_run_leaves_active_states(self):
        engine = mock_engine(
            outcome(BatchOutcomeKind.COMMITTED, SyncStatus.RUNNING),
            outcome(BatchOutcomeKind.FETCH_FAILED, SyncStatus.RUNNING, failure_count=1),
            outcome(BatchOutcomeKind.COMMITTED, SyncStatus.RUNNING),
            outcome(BatchOutcomeKind.COMPLETED, SyncStatus.COMPLETED),
        )
        runner = SyncRunner(engine, InMemorySyncStateStore(), batch_delay=0)

        last = await runner.drive("default")

        assert last.kind == BatchOutcomeKind.COMPLETED
        assert engine.process_batch.await_count == 4

    async def test_stops_at_pause(self):
        engine = mock_engine(
            outcome(BatchOutcomeKind.COMMITTED, SyncStatus.RUNNING),
            outcome(BatchOutcomeKind.PAUSED, SyncStatus.PAUSED),
        )
        runner = SyncRunner(engine, InMemorySyncStateStore(), batch_delay=0)

        last = await runner.drive("default")

        assert last.kind == BatchOutcomeKind.PAUSED

    async def test_max_batches(self):
        engine = mock_engine(*[outcome(BatchOutcomeKind.COMMITTED, SyncStatus.RUNNING) for _ in range(5)])
        runner = SyncRunner(engine, InMemorySyncStateStore(), batch_delay=0)

        await runner.drive("default", max_batches=2)

        assert engine.process_batch.await_count == 2

    async def test_shutdown_stops_between_batches(self):
        engine = mock_engine(*[outcome(BatchOutcomeKind.COMMITTED, SyncStatus.RUNNING) for _ in range(5)])
        runner = SyncRunner(engine, InMemorySyncStateStore(), batch_delay=30.0)
        shutdown = asyncio.Event()
        shutdown.set()

        last = await asyncio.wait_for(runner.drive("default", shutdown_event=shutdown), timeout=5)

        assert last.kind == BatchOutcomeKind.COMMITTED
        assert engine.process_batch.await_count == 1


class TestTick:
    @pytest_asyncio.fixture
    async def store(self):
        store = InMemorySyncStateStore()
        await store.try_acquire("a", SyncState.begin("a", 10))
        await store.try_acquire("b", SyncState.begin("b", 10))
        await store.try_acquire("c", SyncState(scope="c", status=SyncStatus.COMPLETED))
        return store

    async def test_ticks_every_active_scope(self, store):
        engine = MagicMock()
        engine.process_batch = AsyncMock(
            side_effect=lambda scope: outcome(BatchOutcomeKind.COMMITTED, SyncStatus.RUNNING, scope=scope)
        )
        runner = SyncRunner(engine, store, batch_delay=0)

        outcomes = await runner.tick()

        assert len(outcomes) == 2
        called = sorted(call.args[0] for call in engine.process_batch.await_args_list)
        assert called == ["a", "b"]

    async def test_failed_scope_backs_off(self, store):
        def process(scope):
            if scope == "a":
                return outcome(BatchOutcomeKind.FETCH_FAILED, SyncStatus.RUNNING, failure_count=1, scope=scope)
            return outcome(BatchOutcomeKind.COMMITTED, SyncStatus.RUNNING, scope=scope)

        engine = MagicMock()
        engine.process_batch = AsyncMock(side_effect=process)
        runner = SyncRunner(engine, store, batch_delay=30.0)

        await runner.tick()
        engine.process_batch.reset_mock()
        await runner.tick()

        assert [call.args[0] for call in engine.process_batch.await_args_list] == ["b"]

    async def test_nothing_active(self):
        engine = mock_engine()
        runner = SyncRunner(engine, InMemorySyncStateStore())

        assert await runner.tick() == []
        engine.process_batch.assert_not_awaited()


class TestRunForever:
    async def test_runs_until_shutdown(self):
        store = InMemorySyncStateStore()
        await store.try_acquire("default", SyncState.begin("default", 10))
        shutdown = asyncio.Event()

        def process(scope):
            shutdown.set()
            return outcome(BatchOutcomeKind.COMPLETED, SyncStatus.COMPLETED, scope=scope)

        engine = MagicMock()
        engine.process_batch = AsyncMock(side_effect=process)
        runner = SyncRunner(engine, store)

        await asyncio.wait_for(runner.run_forever(shutdown, interval=30.0), timeout=5)

        engine.process_batch.assert_awaited_once_with("default")

    async def test_tick_errors_do_not_stop_the_loop(self):
        shutdown = asyncio.Event()
        store = MagicMock()
        calls = {"n": 0}

        async def list_active():
            calls["n"] += 1
            if calls["n"] == 1:
                raise PersistenceError("database restarting")
            shutdown.set()
            return []

        store.list_active = list_active
        runner = SyncRunner(mock_engine(), store)

        await asyncio.wait_for(runner.run_forever(shutdown, interval=0), timeout=5)

        assert calls["n"] == 2
