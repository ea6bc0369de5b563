"""Catalog Sync infrastructure modules.

This package provides the transport and storage plumbing shared by the
sync engine, the translation providers and the control API.

Classes:
    CatalogClient: Vendor catalog HTTP client with retry and circuit breaker

Exceptions:
    CatalogSyncError: Base exception for all catalog sync errors
    ConfigurationError / ValidationError: Missing or invalid configuration
    TransportError: Failure reaching an external API (drives adaptive batching)
    PersistenceError: Storage failure (fatal for a sync run)
    SyncError: State machine and run-level failures
    TranslationError: Translation provider failures
    InvalidPriceError: Rejected price conversion input

Resilience:
    CircuitBreaker: Prevent cascading failures
    retry_async: Inline retry with exponential backoff
"""
from .client import (
    CATEGORIES_PAGINATION,
    CatalogClient,
    PaginationConfig,
    format_newer_than,
)
from .database import (
    apply_schema,
    check_database_health,
    close_pool,
    create_pool,
    database_connection,
    database_transaction,
)
from .exceptions import (
    APIError,
    BadRequestError,
    CatalogSyncError,
    CircuitOpenError,
    ConfigurationError,
    ConnectionError,
    ConnectionPoolError,
    EmptyInputError,
    ExchangeRateError,
    IntegrityError,
    InvalidPriceError,
    InvalidTransitionError,
    ItemProcessingError,
    NetworkError,
    NotFoundError,
    PersistenceError,
    ProviderError,
    RateLimitError,
    ServerError,
    SyncError,
    SyncInProgressError,
    TimeoutError,
    TransactionError,
    TranslationError,
    TransportError,
    ValidationError,
)
from .resilience import (
    DEFAULT_RETRYABLE_EXCEPTIONS,
    CircuitBreaker,
    CircuitState,
    process_concurrent,
    retry_async,
)

__all__ = [
    # Client
    "CatalogClient",
    "PaginationConfig",
    "CATEGORIES_PAGINATION",
    "format_newer_than",
    # Exceptions - Base
    "CatalogSyncError",
    "ConfigurationError",
    "ValidationError",
    # Exceptions - Transport
    "TransportError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "BadRequestError",
    "ServerError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    # Exceptions - Persistence
    "PersistenceError",
    "ConnectionPoolError",
    "TransactionError",
    "IntegrityError",
    # Exceptions - Sync
    "SyncError",
    "InvalidTransitionError",
    "SyncInProgressError",
    "ItemProcessingError",
    "CircuitOpenError",
    # Exceptions - Translation / Pricing
    "TranslationError",
    "ProviderError",
    "EmptyInputError",
    "InvalidPriceError",
    "ExchangeRateError",
    # Resilience
    "CircuitBreaker",
    "CircuitState",
    "retry_async",
    "process_concurrent",
    "DEFAULT_RETRYABLE_EXCEPTIONS",
    # Database utilities
    "database_transaction",
    "database_connection",
    "create_pool",
    "close_pool",
    "apply_schema",
    "check_database_health",
]
