#!/usr/bin/env python3
"""HTTP Client for the vendor catalog API.

This module provides the async HTTP client used to page through the remote
product catalog. It handles the transport concerns of the vendor API:

    - API key authentication via the X-API-KEY header
    - Rate limit handling with backoff on 429 responses
    - Exponential backoff retry on 5xx and network errors
    - Zero-indexed Page/PageSize pagination
    - Connection pooling via shared aiohttp session
    - Circuit breaker for resilience against API outages
    - Typed TransportError exceptions, distinct from empty result pages

Design Philosophy:
    This client knows HOW to talk to the vendor, but not what a product
    means to the sync. Mapping raw records to CatalogItem entities belongs
    to the sync adapters that compose this client.

Usage:
    async with CatalogClient(api_key) as client:
        page = await client.get_products(page=0, page_size=10, filters={"Active": 1})
        categories = await client.get_all_categories()

Author: Catalog Sync Team
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import aiohttp

from .exceptions import (
    APIError,
    BadRequestError,
    ConfigurationError,
    ConnectionError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
)
from .resilience import CircuitBreaker

logger = logging.getLogger(__name__)

# ============================================
# Configuration
# ============================================

DEFAULT_BASE_URL = "https://api.ewheel.es"
CATEGORIES_ENDPOINT = "/api/v1/catalog/categories"
PRODUCTS_ENDPOINT = "/api/v1/catalog/products/filter"

# Format expected by the NewerThan filter
NEWER_THAN_FORMAT = "%Y-%m-%dT%H:%M:%S"


@dataclass
class PaginationConfig:
    """Configuration for paginated API requests.

    Attributes:
        page_size: Number of items per request
        delay_between_pages: Seconds to wait between requests (rate limiting)
        max_pages: Safety limit to prevent infinite loops (None = no limit)
    """
    page_size: int = 50
    delay_between_pages: float = 0.5
    max_pages: Optional[int] = 500


CATEGORIES_PAGINATION = PaginationConfig(
    page_size=50,
    delay_between_pages=0.5,
    max_pages=100,
)


def format_newer_than(since: datetime) -> str:
    """Format a timestamp for the vendor's NewerThan filter."""
    return since.strftime(NEWER_THAN_FORMAT)


def extract_items(data: Any, endpoint: Optional[str] = None) -> list[dict[str, Any]]:
    """Return the list of records from a vendor response.

    The vendor returns a bare JSON array; wrapped payloads are accepted too.
    An empty body is an empty page.

    Raises:
        APIError: For any other payload shape, such as an error envelope
            served with a 200 status (recoverable)
    """
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("Data", "data", "Items", "items"):
            value = data.get(key)
            if isinstance(value, list):
                return value
    raise APIError(
        f"Unexpected response shape: {type(data).__name__} without a record list",
        status_code=200,
        endpoint=endpoint,
        response_body=str(data),
        recoverable=True,
    )


# ============================================
# The Client
# ============================================

class CatalogClient:
    """Async HTTP client for the vendor catalog API.

    This client is designed to be used as an async context manager to ensure
    proper session lifecycle management:

        async with CatalogClient(api_key) as client:
            products = await client.get_products(0, 10)

    Attributes:
        api_key: Vendor API key sent in the X-API-KEY header
        base_url: Base URL for API requests
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        enable_circuit_breaker: bool = True,
        circuit_failure_threshold: int = 5,
        circuit_timeout: float = 60.0,
        max_retries: int = 3,
        request_timeout: float = 60.0,
    ):
        """Initialize the CatalogClient.

        Args:
            api_key: Vendor API key. If not provided, reads CATALOG_API_KEY.
            base_url: API base URL. If not provided, reads CATALOG_API_URL.
            enable_circuit_breaker: Enable circuit breaker for resilience
            circuit_failure_threshold: Failures before circuit opens
            circuit_timeout: Seconds before circuit attempts to close
            max_retries: Attempts per request before giving up
            request_timeout: Total request timeout in seconds

        Raises:
            ConfigurationError: If no API key is available.
        """
        self.api_key = api_key if api_key is not None else os.getenv("CATALOG_API_KEY", "")
        self.base_url = (base_url or os.getenv("CATALOG_API_URL", "") or DEFAULT_BASE_URL).rstrip("/")
        self.max_retries = max_retries
        self.request_timeout = request_timeout

        if not self.api_key:
            raise ConfigurationError(
                "Catalog API key is required. Provide api_key or set CATALOG_API_KEY.",
                missing_keys=["CATALOG_API_KEY"],
            )

        self._session: Optional[aiohttp.ClientSession] = None

        self._circuit_breaker: Optional[CircuitBreaker] = None
        if enable_circuit_breaker:
            self._circuit_breaker = CircuitBreaker(
                failure_threshold=circuit_failure_threshold,
                timeout=circuit_timeout,
                name="catalog_api",
            )

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "CatalogClient":
        """Enter async context: create the HTTP session."""
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(
                limit=10,
                limit_per_host=10,
            ),
            timeout=aiohttp.ClientTimeout(
                total=self.request_timeout,
                connect=10,
            ),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context: close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Low-Level Request Methods
    # ----------------------------------------

    def _headers(self) -> dict[str, str]:
        return {
            "X-API-KEY": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> Any:
        """Make a single HTTP request (no retry logic).

        Args:
            method: HTTP method (GET, POST)
            endpoint: API endpoint path
            params: Query parameters
            json_body: JSON request body

        Returns:
            Parsed JSON response (list or dict)

        Raises:
            APIError: If response status is not 2xx
            RuntimeError: If called outside of async context manager
            ConnectionError: If connection to server fails
            TimeoutError: If request times out
        """
        if not self._session:
            raise RuntimeError(
                "CatalogClient must be used as async context manager: "
                "async with CatalogClient(...) as client:"
            )

        url = f"{self.base_url}{endpoint}"

        try:
            async with self._session.request(
                method=method,
                url=url,
                headers=self._headers(),
                params=params,
                json=json_body,
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise self._create_api_error(
                        status=response.status,
                        method=method,
                        endpoint=endpoint,
                        response_body=error_text,
                        retry_after=response.headers.get("Retry-After"),
                    )

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise APIError(
                        f"Invalid JSON from {method} {endpoint}",
                        status_code=response.status,
                        endpoint=endpoint,
                        method=method,
                        recoverable=True,
                        cause=e,
                    )

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(
                f"Failed to connect to {self.base_url}",
                host=self.base_url,
                cause=e,
            )

        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Request to {endpoint} timed out",
                timeout_seconds=self.request_timeout,
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during {method} {endpoint}: {e}",
                cause=e,
            )

    def _create_api_error(
        self,
        status: int,
        method: str,
        endpoint: str,
        response_body: str,
        retry_after: Optional[str] = None,
    ) -> APIError:
        """Create appropriate APIError subclass based on status code."""
        if status == 404:
            return NotFoundError(
                resource_type="Resource",
                resource_id=endpoint,
                endpoint=endpoint,
                response_body=response_body,
            )

        if status == 429:
            seconds = int(retry_after) if retry_after and retry_after.isdigit() else 60
            return RateLimitError(
                f"Rate limit exceeded for {endpoint}",
                retry_after=seconds,
                endpoint=endpoint,
                response_body=response_body,
            )

        if status in (400, 401, 403, 422):
            return BadRequestError(
                f"{method} {endpoint} rejected with {status}",
                status_code=status,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status >= 500:
            return ServerError(
                f"Server error ({status}) for {method} {endpoint}",
                status_code=status,
                endpoint=endpoint,
                response_body=response_body,
            )

        return APIError(
            f"{method} {endpoint} failed",
            status_code=status,
            endpoint=endpoint,
            method=method,
            response_body=response_body,
        )

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> Any:
        """Make an HTTP request with automatic retry and circuit breaker.

        Resilience logic:
            - Circuit breaker: Fail fast if the vendor API is down
            - 429 Rate Limited: Wait for Retry-After, retry
            - 5xx Server Errors / network errors: Exponential backoff retry
            - 4xx client errors: Fail immediately

        Raises:
            CircuitOpenError: If circuit breaker is open
            TransportError: If request fails after all retries
        """
        if self._circuit_breaker:
            await self._circuit_breaker.before_call()

        backoff_delay = 1.0

        for attempt in range(1, self.max_retries + 1):
            try:
                result = await self._request(method, endpoint, params, json_body)

            except RateLimitError as e:
                if attempt >= self.max_retries:
                    await self._record_failure(e)
                    raise
                logger.warning(
                    f"Rate limited, waiting {e.retry_after}s "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                await asyncio.sleep(e.retry_after)
                continue

            except (NotFoundError, BadRequestError):
                raise

            except (APIError, NetworkError) as e:
                if e.recoverable and attempt < self.max_retries:
                    logger.warning(
                        f"Request failed: {e}. Retrying in {backoff_delay}s "
                        f"(attempt {attempt}/{self.max_retries})"
                    )
                    await asyncio.sleep(backoff_delay)
                    backoff_delay = min(backoff_delay * 2, 60.0)
                    continue

                await self._record_failure(e)
                raise

            if self._circuit_breaker:
                await self._circuit_breaker.record_success()
            return result

        raise APIError(
            "Request failed after all retries",
            status_code=0,
            endpoint=endpoint,
            method=method,
        )

    async def _record_failure(self, error: Exception) -> None:
        if self._circuit_breaker:
            await self._circuit_breaker.record_failure(error)

    @property
    def circuit_status(self) -> Optional[dict[str, Any]]:
        """Get circuit breaker status for monitoring."""
        if self._circuit_breaker:
            return self._circuit_breaker.get_status()
        return None

    # ----------------------------------------
    # Catalog Endpoints
    # ----------------------------------------

    async def get_categories(
        self,
        page: int = 0,
        page_size: int = 50,
    ) -> list[dict[str, Any]]:
        """Fetch one page of categories (zero-indexed page)."""
        data = await self._request_with_retry(
            "GET",
            CATEGORIES_ENDPOINT,
            params={"Page": page, "PageSize": page_size},
        )
        return extract_items(data, CATEGORIES_ENDPOINT)

    async def get_all_categories(
        self,
        config: Optional[PaginationConfig] = None,
    ) -> list[dict[str, Any]]:
        """Fetch every category, stopping at the first short page."""
        config = config or CATEGORIES_PAGINATION
        all_categories: list[dict[str, Any]] = []
        page = 0

        while True:
            items = await self.get_categories(page, config.page_size)
            all_categories.extend(items)
            page += 1

            if len(items) < config.page_size:
                break
            if config.max_pages and page >= config.max_pages:
                logger.info(f"Reached max_pages limit ({config.max_pages}) for categories")
                break
            if config.delay_between_pages > 0:
                await asyncio.sleep(config.delay_between_pages)

        logger.info(f"Fetched {len(all_categories)} categories in {page} pages")
        return all_categories

    async def get_products(
        self,
        page: int = 0,
        page_size: int = 50,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """Fetch one page of products.

        Args:
            page: Zero-indexed page number
            page_size: Items per page
            filters: Vendor filters merged into the request body
                (e.g. Active, NewerThan, Category)

        Returns:
            Raw product records (empty list past the last page)
        """
        body: dict[str, Any] = {"Page": page, "PageSize": page_size}
        body.update(filters or {})

        logger.debug(f"POST {PRODUCTS_ENDPOINT} (Page: {page}, PageSize: {page_size})")
        data = await self._request_with_retry("POST", PRODUCTS_ENDPOINT, json_body=body)
        return extract_items(data, PRODUCTS_ENDPOINT)

    async def get_products_since(
        self,
        since: datetime,
        page: int = 0,
        page_size: int = 50,
    ) -> list[dict[str, Any]]:
        """Fetch one page of products modified after ``since``."""
        return await self.get_products(
            page,
            page_size,
            {"NewerThan": format_newer_than(since)},
        )


__all__ = [
    "CatalogClient",
    "PaginationConfig",
    "CATEGORIES_PAGINATION",
    "DEFAULT_BASE_URL",
    "NEWER_THAN_FORMAT",
    "extract_items",
    "format_newer_than",
]
