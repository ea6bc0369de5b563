"""Sync Control Use Case - Operator commands for a scope's sync run.

Commands only record intent in the state store. The engine acts on it at
the next batch boundary, so a pause or cancel never interrupts a batch
that is in flight.

No command raises to the caller: each returns a ControlResult saying
whether it was accepted, and read operations degrade to empty results
when storage is unavailable.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ...api.exceptions import CatalogSyncError, SyncInProgressError
from ...config import DEFAULT_SCOPE, SettingsRegistry
from ..domain.entities import (
    ACQUIRABLE_STATUSES,
    TERMINAL_STATUSES,
    LogEntry,
    LogLevel,
    SyncHistoryRecord,
    SyncState,
    SyncStatus,
    SyncType,
)
from ..domain.ports import ISyncHistoryRepository, ISyncLogRepository, ISyncStateStore
from .sync_engine import SyncEngine
from .sync_logger import SyncLogger

logger = logging.getLogger(__name__)


@dataclass
class ControlResult:
    """Result of a control command."""

    accepted: bool
    message: str
    state: Optional[SyncState] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "message": self.message,
            "state": self.state.to_dict() if self.state else None,
        }


class SyncControlService:
    """Start, pause, resume, cancel and inspect sync runs.

    Example:
        control = SyncControlService(store, history_repo, log_repo, settings, engine)
        result = await control.start("default", limit=100)
        if not result.accepted:
            print(result.message)
    """

    def __init__(
        self,
        state_store: ISyncStateStore,
        history_repo: ISyncHistoryRepository,
        log_repo: ISyncLogRepository,
        settings: SettingsRegistry,
        engine: Optional[SyncEngine] = None,
    ):
        self.store = state_store
        self.history = history_repo
        self.logs = log_repo
        self.settings = settings
        self.engine = engine

    async def start(self, scope: str = DEFAULT_SCOPE, limit: int = 0, incremental: bool = False) -> ControlResult:
        """Start a new run unless one is already in progress for the scope."""
        previous: Optional[SyncState] = None
        try:
            settings = self.settings.for_scope(scope)
            previous = await self.store.load(scope)
            if previous is not None and previous.status not in ACQUIRABLE_STATUSES:
                raise SyncInProgressError(scope, previous.status.value)

            state = SyncState.begin(
                scope,
                batch_size=settings.batch.max_batch,
                sync_type=SyncType.INCREMENTAL if incremental else SyncType.FULL,
                limit=limit or settings.limit,
                previous=previous,
            )
            if not await self.store.try_acquire(scope, state):
                # Another start won the race since the load above
                previous = await self.store.load(scope)
                raise SyncInProgressError(scope, previous.status.value if previous else None)

            await self.history.create(SyncHistoryRecord.for_state(state))

            description = f"{state.sync_type.value} sync"
            if state.limit:
                description += f" (limit {state.limit})"
            if incremental and state.sync_type == SyncType.FULL:
                description += ", no previous sync so running full"
            await SyncLogger(self.logs, scope, state.run_id).info(f"Started {description}")

            return ControlResult(True, f"Sync {state.run_id} started", state)
        except SyncInProgressError as e:
            logger.info(f"Start rejected: {e.message}")
            return ControlResult(False, e.message, previous)
        except CatalogSyncError as e:
            logger.error(f"Could not start sync for '{scope}': {e}")
            return ControlResult(False, f"Could not start sync: {e.message}")

    async def pause(self, scope: str = DEFAULT_SCOPE) -> ControlResult:
        """Request a pause; the run stops after its current batch."""
        return await self._request(
            scope,
            from_statuses=[SyncStatus.RUNNING],
            to_status=SyncStatus.PAUSING,
            verb="pause",
            log_message="Pause requested",
        )

    async def resume(self, scope: str = DEFAULT_SCOPE) -> ControlResult:
        """Resume a paused run from its last committed batch."""
        result = await self._request(
            scope,
            from_statuses=[SyncStatus.PAUSED],
            to_status=SyncStatus.RUNNING,
            verb="resume",
            log_message="Sync resumed",
        )
        if result.accepted and result.state is not None:
            await self._mirror_history_status(result.state)
        return result

    async def cancel(self, scope: str = DEFAULT_SCOPE) -> ControlResult:
        """Request cancellation; the run stops after its current batch.

        A paused run has no batch in flight, so it is stopped right away
        when an engine is available.
        """
        try:
            current = await self.store.load(scope)
        except CatalogSyncError as e:
            logger.error(f"Could not cancel sync for '{scope}': {e}")
            return ControlResult(False, f"Could not cancel sync: {e.message}")

        result = await self._request(
            scope,
            from_statuses=[SyncStatus.RUNNING, SyncStatus.PAUSING, SyncStatus.PAUSED],
            to_status=SyncStatus.STOPPING,
            verb="cancel",
            log_message="Cancel requested",
        )

        if result.accepted and self.engine and current is not None and current.status == SyncStatus.PAUSED:
            outcome = await self.engine.process_batch(scope)
            if outcome.state is not None:
                result.state = outcome.state
                result.message = f"Sync {outcome.state.status.value}"
        return result

    async def reset(self, scope: str = DEFAULT_SCOPE) -> ControlResult:
        """Move a finished run back to idle, clearing its progress."""
        return await self._request(
            scope,
            from_statuses=list(TERMINAL_STATUSES),
            to_status=SyncStatus.IDLE,
            verb="reset",
            log_message=None,
        )

    async def get_status(self, scope: str = DEFAULT_SCOPE) -> Optional[SyncState]:
        """Snapshot of the scope's state, or None if it never ran."""
        try:
            return await self.store.load(scope)
        except CatalogSyncError as e:
            logger.error(f"Could not load sync status for '{scope}': {e}")
            return None

    async def get_recent_logs(
        self,
        scope: str = DEFAULT_SCOPE,
        limit: int = 50,
        level: Optional[LogLevel] = None,
    ) -> list[LogEntry]:
        """Newest log entries first."""
        try:
            return await self.logs.recent(scope, limit=limit, level=level)
        except CatalogSyncError as e:
            logger.error(f"Could not load sync logs for '{scope}': {e}")
            return []

    async def get_history(self, scope: Optional[str] = None, limit: int = 20) -> list[SyncHistoryRecord]:
        """Most recent runs first."""
        try:
            return await self.history.list_recent(scope, limit=limit)
        except CatalogSyncError as e:
            logger.error(f"Could not load sync history: {e}")
            return []

    async def _request(
        self,
        scope: str,
        from_statuses: list[SyncStatus],
        to_status: SyncStatus,
        verb: str,
        log_message: Optional[str],
    ) -> ControlResult:
        try:
            state = await self.store.transition(scope, from_statuses, to_status)
            if state is None:
                current = await self.store.load(scope)
                if current is None:
                    return ControlResult(False, f"No sync has run for '{scope}'")
                return ControlResult(
                    False,
                    f"Cannot {verb} a sync that is {current.status.value}",
                    current,
                )

            if log_message:
                await SyncLogger(self.logs, scope, state.run_id).info(log_message)
            return ControlResult(True, f"Sync {state.status.value}", state)
        except CatalogSyncError as e:
            logger.error(f"Could not {verb} sync for '{scope}': {e}")
            return ControlResult(False, f"Could not {verb} sync: {e.message}")

    async def _mirror_history_status(self, state: SyncState) -> None:
        if not state.run_id:
            return
        try:
            record = await self.history.get(state.run_id)
            if record is not None and not record.sealed:
                record.status = state.status
                await self.history.update(record)
        except CatalogSyncError as e:
            logger.warning(f"Could not update history for {state.run_id}: {e}")
