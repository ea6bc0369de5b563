"""API layer for sync control.

Contains:
- FastAPI router with endpoints
- Pydantic schemas for request/response validation
"""

from .router import router
from .schemas import (
    ControlResponse,
    HistoryResponse,
    LogsResponse,
    StartSyncRequest,
    StatusResponse,
    SyncStateDTO,
)

__all__ = [
    "router",
    "ControlResponse",
    "HistoryResponse",
    "LogsResponse",
    "StartSyncRequest",
    "StatusResponse",
    "SyncStateDTO",
]
