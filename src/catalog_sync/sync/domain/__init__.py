"""Domain layer - Pure domain entities and port interfaces.

This layer contains:
- Entities: Sync state machine, catalog records and store records
- Ports: Abstract interfaces defining contracts for adapters

No infrastructure dependencies allowed in this layer.
"""

from .entities import (
    ACQUIRABLE_STATUSES,
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    INTENT_STATUSES,
    TERMINAL_STATUSES,
    BatchOutcome,
    BatchOutcomeKind,
    CatalogItem,
    CatalogVariant,
    CategoryRecord,
    LocalTerm,
    LogEntry,
    LogLevel,
    NormalizedProduct,
    ProductAttribute,
    ProductPage,
    SyncCounters,
    SyncHistoryRecord,
    SyncResult,
    SyncState,
    SyncStatus,
    SyncType,
    TranslationCacheEntry,
    UpsertOutcome,
    UpsertResult,
    can_transition,
    checkpoint_status,
    new_run_id,
    utc_now,
)
from .ports import (
    ICatalogAPI,
    IProductUpserter,
    ISyncHistoryRepository,
    ISyncLogRepository,
    ISyncStateStore,
    ITermRepository,
    ITranslationCache,
    ITranslationProvider,
    TermExistsError,
)

__all__ = [
    # State Machine
    "SyncState",
    "SyncStatus",
    "SyncType",
    "SyncCounters",
    "ALLOWED_TRANSITIONS",
    "ACTIVE_STATUSES",
    "ACQUIRABLE_STATUSES",
    "INTENT_STATUSES",
    "TERMINAL_STATUSES",
    "can_transition",
    "checkpoint_status",
    "new_run_id",
    "utc_now",
    # Catalog Entities
    "CatalogItem",
    "CatalogVariant",
    "CategoryRecord",
    "ProductAttribute",
    "ProductPage",
    # Store Entities
    "LocalTerm",
    "NormalizedProduct",
    "TranslationCacheEntry",
    "UpsertOutcome",
    "UpsertResult",
    # History and Logs
    "SyncHistoryRecord",
    "LogEntry",
    "LogLevel",
    # Result Entities
    "BatchOutcome",
    "BatchOutcomeKind",
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
    "TermExistsError",
]
