"""PostgreSQL adapter for the per-scope sync state.

This adapter implements ISyncStateStore. Every write runs in a transaction
that locks the scope's row (SELECT ... FOR UPDATE), so control commands
and engine checkpoints never interleave.
"""

import json
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Optional

from ...api.database import database_connection, database_transaction
from ..domain.entities import (
    ACQUIRABLE_STATUSES,
    ACTIVE_STATUSES,
    SyncCounters,
    SyncState,
    SyncStatus,
    SyncType,
    checkpoint_status,
    utc_now,
)
from ..domain.ports import ISyncStateStore

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)

_COLUMNS = """
    scope, status, batch_cursor, batch_offset, batch_size, failure_count,
    counters, run_id, sync_type, since, item_limit, started_at, updated_at,
    completed_at, last_synced_at, last_error
"""

_UPSERT = f"""
    INSERT INTO sync_state ({_COLUMNS})
    VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9, $10, $11, $12, $13, $14, $15, $16)
    ON CONFLICT (scope) DO UPDATE SET
        status = EXCLUDED.status,
        batch_cursor = EXCLUDED.batch_cursor,
        batch_offset = EXCLUDED.batch_offset,
        batch_size = EXCLUDED.batch_size,
        failure_count = EXCLUDED.failure_count,
        counters = EXCLUDED.counters,
        run_id = EXCLUDED.run_id,
        sync_type = EXCLUDED.sync_type,
        since = EXCLUDED.since,
        item_limit = EXCLUDED.item_limit,
        started_at = EXCLUDED.started_at,
        updated_at = EXCLUDED.updated_at,
        completed_at = EXCLUDED.completed_at,
        last_synced_at = EXCLUDED.last_synced_at,
        last_error = EXCLUDED.last_error
"""


def state_to_record(state: SyncState) -> tuple[Any, ...]:
    return (
        state.scope,
        state.status.value,
        state.cursor,
        state.offset,
        state.batch_size,
        state.failure_count,
        json.dumps(state.counters.to_dict()),
        state.run_id,
        state.sync_type.value,
        state.since,
        state.limit,
        state.started_at,
        state.updated_at,
        state.completed_at,
        state.last_synced_at,
        state.last_error,
    )


def row_to_state(row: Any) -> SyncState:
    counters = row["counters"]
    if isinstance(counters, str):
        counters = json.loads(counters)
    return SyncState(
        scope=row["scope"],
        status=SyncStatus(row["status"]),
        cursor=row["batch_cursor"],
        offset=row["batch_offset"],
        batch_size=row["batch_size"],
        failure_count=row["failure_count"],
        counters=SyncCounters.from_dict(counters),
        run_id=row["run_id"],
        sync_type=SyncType(row["sync_type"]),
        since=row["since"],
        limit=row["item_limit"],
        started_at=row["started_at"],
        updated_at=row["updated_at"],
        completed_at=row["completed_at"],
        last_synced_at=row["last_synced_at"],
        last_error=row["last_error"],
    )


class PostgresSyncStateStore(ISyncStateStore):
    """PostgreSQL implementation of ISyncStateStore.

    One row per scope in ``sync_state``. Driver errors surface as
    PersistenceError subclasses through the database helpers.
    """

    def __init__(self, pool: "asyncpg.Pool"):
        """Initialize the store.

        Args:
            pool: asyncpg connection pool for database operations
        """
        self.pool = pool

    async def load(self, scope: str) -> Optional[SyncState]:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM sync_state WHERE scope = $1", scope)
        return row_to_state(row) if row else None

    async def save(self, state: SyncState) -> SyncState:
        async with database_transaction(self.pool) as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM sync_state WHERE scope = $1 FOR UPDATE",
                state.scope,
            )
            stored = row_to_state(row) if row else None

            if stored is not None and stored.run_id and state.run_id != stored.run_id:
                logger.warning(
                    f"Ignoring checkpoint for run {state.run_id} on '{state.scope}': "
                    f"current run is {stored.run_id}"
                )
                return stored

            incoming = state.snapshot()
            incoming.status = checkpoint_status(stored.status if stored else None, state.status)
            incoming.updated_at = utc_now()
            await conn.execute(_UPSERT, *state_to_record(incoming))
            return incoming

    async def try_acquire(self, scope: str, state: SyncState) -> bool:
        acquirable = [s.value for s in ACQUIRABLE_STATUSES]
        record = state_to_record(state)

        async with database_transaction(self.pool) as conn:
            acquired = await conn.fetchval(
                _UPSERT + " WHERE sync_state.status = ANY($17::text[]) RETURNING scope",
                *record,
                acquirable,
            )

        if acquired is None:
            logger.info(f"Sync for '{scope}' is already in progress")
            return False
        return True

    async def transition(
        self,
        scope: str,
        from_statuses: Iterable[SyncStatus],
        to_status: SyncStatus,
    ) -> Optional[SyncState]:
        allowed = set(from_statuses)

        async with database_transaction(self.pool) as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM sync_state WHERE scope = $1 FOR UPDATE",
                scope,
            )
            if row is None:
                return None

            state = row_to_state(row)
            if state.status not in allowed:
                return None

            if to_status == SyncStatus.IDLE:
                state = state.reset()
            else:
                state.transition_to(to_status)
            await conn.execute(_UPSERT, *state_to_record(state))
            return state

    async def list_active(self) -> list[SyncState]:
        active = [s.value for s in ACTIVE_STATUSES]
        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM sync_state WHERE status = ANY($1::text[]) ORDER BY scope",
                active,
            )
        return [row_to_state(row) for row in rows]
