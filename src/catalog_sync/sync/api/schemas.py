"""Pydantic schemas for sync API request/response validation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..domain.entities import LogEntry, LogLevel, SyncHistoryRecord, SyncState, SyncStatus, SyncType


class StartSyncRequest(BaseModel):
    """Body of POST /api/sync/{scope}/start."""

    limit: int = Field(default=0, ge=0, description="Maximum items to process (0 = no limit)")
    incremental: bool = Field(default=False, description="Only fetch products changed since the last sync")


class CountersDTO(BaseModel):
    processed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0


class SyncStateDTO(BaseModel):
    """Snapshot of a scope's sync state."""

    scope: str
    status: SyncStatus
    cursor: int = 0
    offset: int = 0
    batch_size: int = 0
    failure_count: int = 0
    counters: CountersDTO = Field(default_factory=CountersDTO)
    run_id: Optional[str] = None
    sync_type: SyncType = SyncType.FULL
    since: Optional[datetime] = None
    limit: int = 0
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    last_error: Optional[str] = None

    @classmethod
    def from_state(cls, state: SyncState) -> "SyncStateDTO":
        return cls(
            scope=state.scope,
            status=state.status,
            cursor=state.cursor,
            offset=state.offset,
            batch_size=state.batch_size,
            failure_count=state.failure_count,
            counters=CountersDTO(**state.counters.to_dict()),
            run_id=state.run_id,
            sync_type=state.sync_type,
            since=state.since,
            limit=state.limit,
            started_at=state.started_at,
            updated_at=state.updated_at,
            completed_at=state.completed_at,
            last_synced_at=state.last_synced_at,
            last_error=state.last_error,
        )


class ControlResponse(BaseModel):
    """Result of a start/pause/resume/cancel/reset command."""

    accepted: bool
    message: str
    state: Optional[SyncStateDTO] = None


class StatusResponse(BaseModel):
    scope: str
    status: SyncStatus
    state: Optional[SyncStateDTO] = None


class LogEntryDTO(BaseModel):
    id: Optional[int] = None
    timestamp: datetime
    level: LogLevel
    message: str
    run_id: Optional[str] = None
    reference: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: LogEntry) -> "LogEntryDTO":
        return cls(
            id=entry.id,
            timestamp=entry.timestamp,
            level=entry.level,
            message=entry.message,
            run_id=entry.run_id,
            reference=entry.reference,
        )


class LogsResponse(BaseModel):
    scope: str
    items: list[LogEntryDTO]


class HistoryRecordDTO(BaseModel):
    run_id: str
    scope: str
    sync_type: SyncType
    status: SyncStatus
    counters: CountersDTO
    error_count: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    last_error: Optional[str] = None

    @classmethod
    def from_record(cls, record: SyncHistoryRecord) -> "HistoryRecordDTO":
        return cls(
            run_id=record.run_id,
            scope=record.scope,
            sync_type=record.sync_type,
            status=record.status,
            counters=CountersDTO(**record.counters.to_dict()),
            error_count=record.error_count,
            started_at=record.started_at,
            completed_at=record.completed_at,
            duration_seconds=record.duration_seconds,
            last_error=record.last_error,
        )


class HistoryResponse(BaseModel):
    items: list[HistoryRecordDTO]


class HealthResponse(BaseModel):
    status: str
    storage: str
    database: Optional[dict] = None
    active_scopes: list[str] = Field(default_factory=list)
