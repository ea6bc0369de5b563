"""Operator-facing sync log feed.

SyncLogger writes each message to the module logger and to the
persistent log repository, tagged with the scope, run id and optional
product reference. A failing log write is reported but never interrupts
the sync.
"""

import logging
from typing import Optional

from ...api.exceptions import PersistenceError
from ..domain.entities import LogEntry, LogLevel
from ..domain.ports import ISyncLogRepository

logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 1000

_PY_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class SyncLogger:
    def __init__(self, log_repo: ISyncLogRepository, scope: str, run_id: Optional[str] = None):
        self.repo = log_repo
        self.scope = scope
        self.run_id = run_id

    async def log(self, level: LogLevel, message: str, reference: Optional[str] = None) -> None:
        logger.log(_PY_LEVELS[level], f"[{self.scope}] {message}")
        try:
            await self.repo.append(
                LogEntry(
                    message=message,
                    level=level,
                    scope=self.scope,
                    run_id=self.run_id,
                    reference=reference,
                )
            )
        except PersistenceError as e:
            logger.warning(f"Could not write sync log entry for {self.scope}: {e}")

    async def info(self, message: str, reference: Optional[str] = None) -> None:
        await self.log(LogLevel.INFO, message, reference)

    async def success(self, message: str, reference: Optional[str] = None) -> None:
        await self.log(LogLevel.SUCCESS, message, reference)

    async def warning(self, message: str, reference: Optional[str] = None) -> None:
        await self.log(LogLevel.WARNING, message, reference)

    async def error(self, message: str, reference: Optional[str] = None) -> None:
        await self.log(LogLevel.ERROR, message, reference)

    async def prune(self, keep: int = MAX_LOG_ENTRIES) -> None:
        try:
            deleted = await self.repo.prune(self.scope, keep)
        except PersistenceError as e:
            logger.warning(f"Could not prune sync logs for {self.scope}: {e}")
            return
        if deleted:
            logger.debug(f"Pruned {deleted} old log entries for {self.scope}")
