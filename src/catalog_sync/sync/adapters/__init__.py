"""Adapters layer - Infrastructure implementations for sync operations.

This layer contains concrete implementations of the ports defined in the domain layer:
- CatalogAPIAdapter: vendor catalog implementation of ICatalogAPI
- CatalogFieldMapper: vendor record to domain entity mapping
- PostgresSyncStateStore / PostgresSyncHistoryRepository / PostgresSyncLogRepository:
  PostgreSQL implementations of the sync bookkeeping ports
- PostgresTranslationCache, PostgresTermRepository, PostgresProductRepository
- InMemory*: dict-backed implementations of every port
"""

from .catalog_api_adapter import CatalogAPIAdapter
from .field_mapper import CatalogFieldMapper
from .memory import (
    InMemoryProductStore,
    InMemorySyncHistoryRepository,
    InMemorySyncLogRepository,
    InMemorySyncStateStore,
    InMemoryTermRepository,
    InMemoryTranslationCache,
    fields_hash,
)
from .postgres_history_repo import PostgresSyncHistoryRepository
from .postgres_log_repo import PostgresSyncLogRepository
from .postgres_product_repo import PostgresProductRepository
from .postgres_state_store import PostgresSyncStateStore
from .postgres_term_repo import PostgresTermRepository
from .postgres_translation_cache import PostgresTranslationCache

__all__ = [
    # Vendor API
    "CatalogAPIAdapter",
    "CatalogFieldMapper",
    # PostgreSQL
    "PostgresProductRepository",
    "PostgresSyncHistoryRepository",
    "PostgresSyncLogRepository",
    "PostgresSyncStateStore",
    "PostgresTermRepository",
    "PostgresTranslationCache",
    # In-memory
    "InMemoryProductStore",
    "InMemorySyncHistoryRepository",
    "InMemorySyncLogRepository",
    "InMemorySyncStateStore",
    "InMemoryTermRepository",
    "InMemoryTranslationCache",
    "fields_hash",
]
