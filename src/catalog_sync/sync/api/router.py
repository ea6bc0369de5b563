"""FastAPI router for sync control endpoints.

Every command only records intent; the background runner does the work.
Rejected commands (for example pausing a sync that is not running) answer
409 with the same body shape as accepted ones.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status

from ...api.database import check_database_health
from ..domain.entities import LogLevel, SyncStatus
from ..services import SyncServices
from ..use_cases import ControlResult, SyncControlService
from .dependencies import get_control_service, get_services, verify_api_key
from .schemas import (
    ControlResponse,
    HealthResponse,
    HistoryRecordDTO,
    HistoryResponse,
    LogEntryDTO,
    LogsResponse,
    StartSyncRequest,
    StatusResponse,
    SyncStateDTO,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["Catalog Sync"])

ScopeParam = Annotated[str, Path(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")]


def _to_response(result: ControlResult, response: Response) -> ControlResponse:
    if not result.accepted:
        response.status_code = status.HTTP_409_CONFLICT
    return ControlResponse(
        accepted=result.accepted,
        message=result.message,
        state=SyncStateDTO.from_state(result.state) if result.state else None,
    )


# ========== Health ==========


@router.get("/health", response_model=HealthResponse)
async def health(services: SyncServices = Depends(get_services)):
    """Liveness plus storage health. No authentication required."""
    if services.pool is None:
        active = await services.state_store.list_active()
        return HealthResponse(
            status="healthy",
            storage="memory",
            active_scopes=[s.scope for s in active],
        )

    db = await check_database_health(services.pool)
    active = await services.state_store.list_active() if db.get("healthy") else []
    return HealthResponse(
        status="healthy" if db.get("healthy") else "degraded",
        storage="postgres",
        database=db,
        active_scopes=[s.scope for s in active],
    )


# ========== Commands ==========


@router.post("/{scope}/start", response_model=ControlResponse)
async def start_sync(
    response: Response,
    scope: ScopeParam,
    request: Optional[StartSyncRequest] = None,
    control: SyncControlService = Depends(get_control_service),
    _auth: bool = Depends(verify_api_key),
):
    """Start a sync run for a scope (409 if one is already in progress)."""
    request = request or StartSyncRequest()
    result = await control.start(scope, limit=request.limit, incremental=request.incremental)
    return _to_response(result, response)


@router.post("/{scope}/pause", response_model=ControlResponse)
async def pause_sync(
    response: Response,
    scope: ScopeParam,
    control: SyncControlService = Depends(get_control_service),
    _auth: bool = Depends(verify_api_key),
):
    """Request a pause; takes effect after the batch in flight."""
    return _to_response(await control.pause(scope), response)


@router.post("/{scope}/resume", response_model=ControlResponse)
async def resume_sync(
    response: Response,
    scope: ScopeParam,
    control: SyncControlService = Depends(get_control_service),
    _auth: bool = Depends(verify_api_key),
):
    """Resume a paused sync from its last committed batch."""
    return _to_response(await control.resume(scope), response)


@router.post("/{scope}/cancel", response_model=ControlResponse)
async def cancel_sync(
    response: Response,
    scope: ScopeParam,
    control: SyncControlService = Depends(get_control_service),
    _auth: bool = Depends(verify_api_key),
):
    """Request cancellation; takes effect after the batch in flight."""
    return _to_response(await control.cancel(scope), response)


@router.post("/{scope}/reset", response_model=ControlResponse)
async def reset_sync(
    response: Response,
    scope: ScopeParam,
    control: SyncControlService = Depends(get_control_service),
    _auth: bool = Depends(verify_api_key),
):
    """Return a finished sync to idle, clearing its progress."""
    return _to_response(await control.reset(scope), response)


# ========== Queries ==========


@router.get("/{scope}/status", response_model=StatusResponse)
async def get_status(
    scope: ScopeParam,
    control: SyncControlService = Depends(get_control_service),
    _auth: bool = Depends(verify_api_key),
):
    """Current state of a scope; idle with no state if it never ran."""
    state = await control.get_status(scope)
    if state is None:
        return StatusResponse(scope=scope, status=SyncStatus.IDLE)
    return StatusResponse(scope=scope, status=state.status, state=SyncStateDTO.from_state(state))


@router.get("/{scope}/logs", response_model=LogsResponse)
async def get_logs(
    scope: ScopeParam,
    limit: int = Query(50, ge=1, le=500),
    level: Optional[LogLevel] = Query(None),
    control: SyncControlService = Depends(get_control_service),
    _auth: bool = Depends(verify_api_key),
):
    """Newest log entries first."""
    entries = await control.get_recent_logs(scope, limit=limit, level=level)
    return LogsResponse(scope=scope, items=[LogEntryDTO.from_entry(e) for e in entries])


@router.get("/history", response_model=HistoryResponse)
async def get_all_history(
    limit: int = Query(20, ge=1, le=200),
    control: SyncControlService = Depends(get_control_service),
    _auth: bool = Depends(verify_api_key),
):
    """Most recent runs across all scopes."""
    records = await control.get_history(None, limit=limit)
    return HistoryResponse(items=[HistoryRecordDTO.from_record(r) for r in records])


@router.get("/{scope}/history", response_model=HistoryResponse)
async def get_history(
    scope: ScopeParam,
    limit: int = Query(20, ge=1, le=200),
    control: SyncControlService = Depends(get_control_service),
    _auth: bool = Depends(verify_api_key),
):
    """Most recent runs of a scope."""
    records = await control.get_history(scope, limit=limit)
    return HistoryResponse(items=[HistoryRecordDTO.from_record(r) for r in records])
