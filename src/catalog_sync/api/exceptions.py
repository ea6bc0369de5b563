#!/usr/bin/env python3
"""Exception Hierarchy for the Catalog Sync service.

This module provides a structured exception hierarchy for handling errors
across the vendor catalog client, the translation providers, the sync state
store and the sync engine itself.

Design Principles:
    - All exceptions inherit from CatalogSyncError base class
    - Exceptions preserve context (original error, timestamps, details)
    - Exceptions are categorized by recoverability
    - The sync engine decides run-level behavior by exception family:
      TransportError shrinks the batch, PersistenceError aborts the run,
      ItemProcessingError is counted and skipped

Exception Hierarchy:
    CatalogSyncError (base)
    ├── ConfigurationError (unrecoverable - fix config)
    │   └── ValidationError
    ├── TransportError (recoverable - retry with a smaller batch)
    │   ├── APIError
    │   │   ├── RateLimitError
    │   │   ├── NotFoundError
    │   │   ├── BadRequestError
    │   │   └── ServerError
    │   └── NetworkError
    │       ├── ConnectionError
    │       └── TimeoutError
    ├── PersistenceError (fatal for a sync run)
    │   ├── ConnectionPoolError
    │   ├── TransactionError
    │   └── IntegrityError
    ├── SyncError
    │   ├── InvalidTransitionError
    │   ├── SyncInProgressError
    │   ├── ItemProcessingError
    │   └── CircuitOpenError (also a TransportError)
    ├── TranslationError
    │   ├── ProviderError
    │   └── EmptyInputError
    ├── InvalidPriceError (also a ValueError)
    └── ExchangeRateError

Author: Catalog Sync Team
"""
from datetime import datetime, timezone
from typing import Any, Optional

# ============================================
# Base Exception
# ============================================

class CatalogSyncError(Exception):
    """Base exception for all catalog sync errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "RATE_LIMIT_EXCEEDED")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether this error might be recoverable with retry
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration Errors (Unrecoverable)
# ============================================

class ConfigurationError(CatalogSyncError):
    """Raised when configuration is missing or invalid.

    These errors require fixing configuration before retry.
    """

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        kwargs.setdefault("code", "CONFIGURATION_ERROR")
        super().__init__(
            message,
            details=details,
            recoverable=False,
            **kwargs,
        )


class ValidationError(ConfigurationError):
    """Raised when a configuration value is malformed (e.g. negative markup).

    Validation happens while settings are loaded, so a run never starts
    with an invalid configuration.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details=details,
            **kwargs,
        )
        self.field = field
        self.value = value


# ============================================
# Transport Errors (Recoverable)
# ============================================

class TransportError(CatalogSyncError):
    """Base class for failures reaching an external API.

    The sync engine treats every TransportError as a failed fetch:
    the batch is shrunk and the same cursor is retried.
    """

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class APIError(TransportError):
    """Base class for API response errors.

    Attributes:
        status_code: HTTP status code
        endpoint: API endpoint that was called
        response_body: Raw response body (may be truncated)
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        endpoint: Optional[str] = None,
        response_body: Optional[str] = None,
        method: str = "GET",
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["status_code"] = status_code
        if endpoint:
            details["endpoint"] = endpoint
        if method:
            details["method"] = method
        if response_body:
            details["response_body"] = response_body[:500] if len(response_body) > 500 else response_body

        kwargs.setdefault("recoverable", status_code in (429, 500, 502, 503, 504))
        kwargs.setdefault("code", f"API_ERROR_{status_code}")

        super().__init__(
            message,
            details=details,
            **kwargs,
        )
        self.status_code = status_code
        self.endpoint = endpoint
        self.response_body = response_body
        self.method = method


class RateLimitError(APIError):
    """Raised when API rate limit is exceeded (HTTP 429).

    Attributes:
        retry_after: Seconds to wait before retrying (from Retry-After header)
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("status_code", 429)
        details = kwargs.pop("details", {})
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(
            message,
            code="RATE_LIMIT_EXCEEDED",
            details=details,
            **kwargs,
        )
        self.retry_after = retry_after or 60


class NotFoundError(APIError):
    """Raised when requested resource is not found (HTTP 404)."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        **kwargs,
    ):
        message = f"{resource_type} not found"
        if resource_id:
            message = f"{resource_type} '{resource_id}' not found"

        kwargs.setdefault("status_code", 404)
        details = kwargs.pop("details", {})
        details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id

        super().__init__(
            message,
            code="NOT_FOUND",
            details=details,
            recoverable=False,
            **kwargs,
        )


class BadRequestError(APIError):
    """Raised when the vendor API rejects a request (HTTP 400/401/403/422)."""

    def __init__(
        self,
        message: str,
        **kwargs,
    ):
        kwargs.setdefault("status_code", 400)
        super().__init__(
            message,
            code="BAD_REQUEST",
            recoverable=False,
            **kwargs,
        )


class ServerError(APIError):
    """Raised when server returns 5xx error."""

    def __init__(
        self,
        message: str = "Server error",
        **kwargs,
    ):
        kwargs.setdefault("status_code", 500)
        super().__init__(
            message,
            code="SERVER_ERROR",
            recoverable=True,
            **kwargs,
        )


class NetworkError(TransportError):
    """Base class for network-related errors.

    These errors are typically transient and recoverable with retry.
    """


class ConnectionError(NetworkError):
    """Raised when connection to server fails."""

    def __init__(
        self,
        message: str = "Failed to connect to server",
        host: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if host:
            details["host"] = host
        super().__init__(
            message,
            code="CONNECTION_ERROR",
            details=details,
            **kwargs,
        )


class TimeoutError(NetworkError):
    """Raised when request times out."""

    def __init__(
        self,
        message: str = "Request timed out",
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(
            message,
            code="TIMEOUT_ERROR",
            details=details,
            **kwargs,
        )


# ============================================
# Persistence Errors (Fatal for a run)
# ============================================

class PersistenceError(CatalogSyncError):
    """Base class for storage failures.

    A failed checkpoint write means resume and pause can no longer be
    trusted, so the engine aborts the run on this error.
    """

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", False)
        super().__init__(message, **kwargs)


class ConnectionPoolError(PersistenceError):
    """Raised when database connection pool is exhausted or unavailable."""

    def __init__(
        self,
        message: str = "Database connection pool error",
        **kwargs,
    ):
        super().__init__(message, code="CONNECTION_POOL_ERROR", **kwargs)


class TransactionError(PersistenceError):
    """Raised when database transaction fails."""

    def __init__(
        self,
        message: str = "Database transaction failed",
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        super().__init__(
            message,
            code="TRANSACTION_ERROR",
            details=details,
            **kwargs,
        )


class IntegrityError(PersistenceError):
    """Raised when database integrity constraint is violated."""

    def __init__(
        self,
        message: str = "Database integrity error",
        constraint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if constraint:
            details["constraint"] = constraint
        super().__init__(
            message,
            code="INTEGRITY_ERROR",
            details=details,
            **kwargs,
        )


# ============================================
# Sync Errors
# ============================================

class SyncError(CatalogSyncError):
    """Base class for synchronization errors."""


class InvalidTransitionError(SyncError):
    """Raised when a sync state change is not allowed by the state machine.

    Attributes:
        from_status: Current status value
        to_status: Requested status value
    """

    def __init__(self, from_status: str, to_status: str, **kwargs):
        details = kwargs.pop("details", {})
        details["from_status"] = from_status
        details["to_status"] = to_status
        super().__init__(
            f"Cannot transition sync state from '{from_status}' to '{to_status}'",
            code="INVALID_TRANSITION",
            details=details,
            **kwargs,
        )
        self.from_status = from_status
        self.to_status = to_status


class SyncInProgressError(SyncError):
    """Raised when a run is requested while another is active for a scope."""

    def __init__(self, scope: str, status: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["scope"] = scope
        if status:
            details["status"] = status
        super().__init__(
            f"Sync already {status or 'active'} for '{scope}'",
            code="SYNC_IN_PROGRESS",
            details=details,
            **kwargs,
        )
        self.scope = scope
        self.status = status


class ItemProcessingError(SyncError):
    """Raised when a single catalog item fails mapping, translation or upsert.

    Attributes:
        reference: External reference of the failing item
    """

    def __init__(self, message: str, reference: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if reference:
            details["reference"] = reference
        super().__init__(
            message,
            code="ITEM_PROCESSING_ERROR",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.reference = reference


class CircuitOpenError(SyncError, TransportError):
    """Raised when circuit breaker is open and requests are being rejected.

    Attributes:
        reset_at: When the circuit breaker will attempt to close
    """

    def __init__(
        self,
        message: str = "Circuit breaker is open, requests rejected",
        reset_at: Optional[datetime] = None,
        failure_count: int = 0,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if reset_at:
            details["reset_at"] = reset_at.isoformat()
        details["failure_count"] = failure_count

        super().__init__(
            message,
            code="CIRCUIT_OPEN",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.reset_at = reset_at
        self.failure_count = failure_count


# ============================================
# Translation Errors
# ============================================

class TranslationError(CatalogSyncError):
    """Base class for translation failures."""


class ProviderError(TranslationError):
    """Raised when a translation provider is unreachable or rejects a request.

    Attributes:
        provider: Name of the provider that failed
    """

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if provider:
            details["provider"] = provider
        kwargs.setdefault("recoverable", True)
        super().__init__(
            message,
            code="PROVIDER_ERROR",
            details=details,
            **kwargs,
        )
        self.provider = provider


class EmptyInputError(TranslationError):
    """Raised when empty text is translated and the caller requires text."""

    def __init__(self, message: str = "Cannot translate empty text", **kwargs):
        super().__init__(message, code="EMPTY_INPUT", **kwargs)


# ============================================
# Pricing Errors
# ============================================

class InvalidPriceError(CatalogSyncError, ValueError):
    """Raised for a negative amount or a non-finite/negative rate."""

    def __init__(self, message: str, value: Any = None, **kwargs):
        details = kwargs.pop("details", {})
        if value is not None:
            details["value"] = value
        super().__init__(message, code="INVALID_PRICE", details=details, **kwargs)


class ExchangeRateError(CatalogSyncError):
    """Raised when no exchange rate is known for a currency pair."""

    def __init__(self, source: str, target: str, **kwargs):
        super().__init__(
            f"No exchange rate available for {source} to {target}",
            code="EXCHANGE_RATE_UNAVAILABLE",
            details={"source": source, "target": target},
            **kwargs,
        )
        self.source = source
        self.target = target


# ============================================
# Exports
# ============================================

__all__ = [
    # Base
    "CatalogSyncError",
    # Configuration
    "ConfigurationError",
    "ValidationError",
    # Transport
    "TransportError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "BadRequestError",
    "ServerError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    # Persistence
    "PersistenceError",
    "ConnectionPoolError",
    "TransactionError",
    "IntegrityError",
    # Sync
    "SyncError",
    "InvalidTransitionError",
    "SyncInProgressError",
    "ItemProcessingError",
    "CircuitOpenError",
    # Translation
    "TranslationError",
    "ProviderError",
    "EmptyInputError",
    # Pricing
    "InvalidPriceError",
    "ExchangeRateError",
]
