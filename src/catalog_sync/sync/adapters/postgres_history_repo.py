"""PostgreSQL adapter for the sync run history."""

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

from ...api.database import database_connection
from ..domain.entities import TERMINAL_STATUSES, SyncCounters, SyncHistoryRecord, SyncStatus, SyncType
from ..domain.ports import ISyncHistoryRepository

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)

_COLUMNS = """
    run_id, scope, sync_type, status, counters, error_count,
    started_at, completed_at, duration_seconds, last_error
"""


def row_to_record(row: Any) -> SyncHistoryRecord:
    counters = row["counters"]
    if isinstance(counters, str):
        counters = json.loads(counters)
    return SyncHistoryRecord(
        run_id=row["run_id"],
        scope=row["scope"],
        sync_type=SyncType(row["sync_type"]),
        status=SyncStatus(row["status"]),
        counters=SyncCounters.from_dict(counters),
        error_count=row["error_count"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        duration_seconds=row["duration_seconds"],
        last_error=row["last_error"],
    )


class PostgresSyncHistoryRepository(ISyncHistoryRepository):
    """Append-only run history in ``sync_history``.

    Sealing is enforced in SQL: updates only touch rows whose status is
    not terminal yet.
    """

    def __init__(self, pool: "asyncpg.Pool"):
        self.pool = pool

    async def create(self, record: SyncHistoryRecord) -> None:
        async with database_connection(self.pool) as conn:
            await conn.execute(
                f"""
                INSERT INTO sync_history ({_COLUMNS})
                VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, $8, $9, $10)
                ON CONFLICT (run_id) DO NOTHING
                """,
                *self._record_values(record),
            )

    async def update(self, record: SyncHistoryRecord) -> bool:
        terminal = [s.value for s in TERMINAL_STATUSES]
        async with database_connection(self.pool) as conn:
            updated = await conn.fetchval(
                """
                UPDATE sync_history SET
                    status = $2,
                    counters = $3::jsonb,
                    error_count = $4,
                    completed_at = $5,
                    duration_seconds = $6,
                    last_error = $7
                WHERE run_id = $1 AND NOT (status = ANY($8::text[]))
                RETURNING run_id
                """,
                record.run_id,
                record.status.value,
                json.dumps(record.counters.to_dict()),
                record.error_count,
                record.completed_at,
                record.duration_seconds,
                record.last_error,
                terminal,
            )
        if updated is None:
            logger.debug(f"History for {record.run_id} is sealed or missing, update ignored")
            return False
        return True

    async def get(self, run_id: str) -> Optional[SyncHistoryRecord]:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM sync_history WHERE run_id = $1", run_id)
        return row_to_record(row) if row else None

    async def list_recent(self, scope: Optional[str] = None, limit: int = 20) -> list[SyncHistoryRecord]:
        async with database_connection(self.pool) as conn:
            if scope is None:
                rows = await conn.fetch(
                    f"SELECT {_COLUMNS} FROM sync_history ORDER BY started_at DESC LIMIT $1",
                    limit,
                )
            else:
                rows = await conn.fetch(
                    f"""
                    SELECT {_COLUMNS} FROM sync_history
                    WHERE scope = $1 ORDER BY started_at DESC LIMIT $2
                    """,
                    scope,
                    limit,
                )
        return [row_to_record(row) for row in rows]

    @staticmethod
    def _record_values(record: SyncHistoryRecord) -> tuple[Any, ...]:
        return (
            record.run_id,
            record.scope,
            record.sync_type.value,
            record.status.value,
            json.dumps(record.counters.to_dict()),
            record.error_count,
            record.started_at,
            record.completed_at,
            record.duration_seconds,
            record.last_error,
        )
