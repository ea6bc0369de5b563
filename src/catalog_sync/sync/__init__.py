"""Sync module - Clean Architecture implementation of the catalog sync.

This module implements the resumable, pausable and cancellable sync of the
vendor catalog into the local store, with translation, price conversion
and adaptive batching.

Architecture:
    domain/     - Pure domain entities and port interfaces
    use_cases/  - Business logic orchestration (engine, control, runner)
    adapters/   - Infrastructure implementations (PostgreSQL, in-memory, vendor API)
    api/        - FastAPI control endpoints
"""

from .domain.entities import (
    BatchOutcome,
    CatalogItem,
    CategoryRecord,
    NormalizedProduct,
    SyncHistoryRecord,
    SyncResult,
    SyncState,
    SyncStatus,
)
from .domain.ports import (
    ICatalogAPI,
    IProductUpserter,
    ISyncHistoryRepository,
    ISyncLogRepository,
    ISyncStateStore,
    ITermRepository,
    ITranslationCache,
    ITranslationProvider,
)

__all__ = [
    # State Entities
    "SyncState",
    "SyncStatus",
    "SyncHistoryRecord",
    # Catalog Entities
    "CatalogItem",
    "CategoryRecord",
    "NormalizedProduct",
    # Result Entities
    "BatchOutcome",
    "SyncResult",
    # Ports
    "ICatalogAPI",
    "IProductUpserter",
    "ISyncStateStore",
    "ISyncHistoryRepository",
    "ISyncLogRepository",
    "ITermRepository",
    "ITranslationCache",
    "ITranslationProvider",
]
