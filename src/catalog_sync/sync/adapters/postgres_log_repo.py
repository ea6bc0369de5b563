"""PostgreSQL adapter for the operator-facing sync log."""

import logging
from typing import TYPE_CHECKING, Any, Optional

from ...api.database import database_connection
from ..domain.entities import LogEntry, LogLevel
from ..domain.ports import ISyncLogRepository

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)


def row_to_entry(row: Any) -> LogEntry:
    return LogEntry(
        id=row["id"],
        scope=row["scope"],
        run_id=row["run_id"],
        level=LogLevel(row["level"]),
        message=row["message"],
        reference=row["reference"],
        timestamp=row["created_at"],
    )


class PostgresSyncLogRepository(ISyncLogRepository):
    def __init__(self, pool: "asyncpg.Pool"):
        self.pool = pool

    async def append(self, entry: LogEntry) -> None:
        async with database_connection(self.pool) as conn:
            await conn.execute(
                """
                INSERT INTO sync_logs (scope, run_id, level, message, reference, created_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                """,
                entry.scope,
                entry.run_id,
                entry.level.value,
                entry.message,
                entry.reference,
                entry.timestamp,
            )

    async def recent(
        self,
        scope: str,
        limit: int = 50,
        level: Optional[LogLevel] = None,
        run_id: Optional[str] = None,
    ) -> list[LogEntry]:
        conditions = ["scope = $1"]
        params: list[Any] = [scope]

        if level is not None:
            params.append(level.value)
            conditions.append(f"level = ${len(params)}")
        if run_id is not None:
            params.append(run_id)
            conditions.append(f"run_id = ${len(params)}")

        params.append(limit)
        query = f"""
            SELECT id, scope, run_id, level, message, reference, created_at
            FROM sync_logs
            WHERE {" AND ".join(conditions)}
            ORDER BY id DESC
            LIMIT ${len(params)}
        """

        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(query, *params)
        return [row_to_entry(row) for row in rows]

    async def count_errors(self, run_id: str) -> int:
        async with database_connection(self.pool) as conn:
            return await conn.fetchval(
                "SELECT COUNT(*) FROM sync_logs WHERE run_id = $1 AND level = $2",
                run_id,
                LogLevel.ERROR.value,
            )

    async def prune(self, scope: str, keep: int = 1000) -> int:
        async with database_connection(self.pool) as conn:
            result = await conn.execute(
                """
                DELETE FROM sync_logs
                WHERE scope = $1 AND id NOT IN (
                    SELECT id FROM sync_logs WHERE scope = $1 ORDER BY id DESC LIMIT $2
                )
                """,
                scope,
                max(0, keep),
            )
        # asyncpg returns the command tag, e.g. "DELETE 12"
        deleted = int(result.split()[-1]) if result else 0
        if deleted:
            logger.debug(f"Pruned {deleted} log entries for '{scope}'")
        return deleted
