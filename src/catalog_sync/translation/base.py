"""
Base Translation Provider Implementation.

Provides common functionality for all translation providers.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp

from ..api.exceptions import (
    APIError,
    NetworkError,
    ProviderError,
    RateLimitError,
    ServerError,
    TransportError,
)
from ..api.resilience import retry_async
from ..sync.domain.ports import ITranslationProvider

logger = logging.getLogger(__name__)

RETRY_INITIAL_DELAY = 1.0


@dataclass
class TranslationProviderConfig:
    """Configuration for translation providers.

    Attributes:
        api_key: API key for the provider
        model: Model name (LLM providers only)
        base_url: Optional custom endpoint
        timeout: Request timeout in seconds
        max_retries: Retries after the first attempt for 429, 5xx and network errors
        max_concurrent: Parallel requests when translating a batch
    """

    api_key: str
    model: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 2
    max_concurrent: int = 5
    extra: dict[str, Any] = field(default_factory=dict)


class BaseTranslationProvider(ITranslationProvider, ABC):
    """Base class for HTTP translation providers.

    Owns a lazily created aiohttp session and maps transport failures
    to ProviderError. Subclasses implement translate_batch; translate is
    a one-element batch unless overridden.
    """

    provider_name = "base"

    def __init__(self, config: TranslationProviderConfig):
        if not config.api_key:
            raise ProviderError(
                f"{self.provider_name} translation requires an API key",
                provider=self.provider_name,
                recoverable=False,
            )
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def name(self) -> str:
        return self.provider_name

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        results = await self.translate_batch([text], source_lang, target_lang)
        return results[0]

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        """POST a JSON payload and return the decoded response.

        429, 5xx and network failures are retried up to config.max_retries
        times with exponential backoff.

        Raises:
            ProviderError: On a non-2xx status or network failure after the
                retries, or on invalid JSON
        """
        try:
            return await retry_async(
                self._post_once,
                url,
                payload,
                headers,
                params,
                max_attempts=self.config.max_retries + 1,
                initial_delay=RETRY_INITIAL_DELAY,
            )
        except TransportError as e:
            details = {"status_code": e.status_code} if isinstance(e, APIError) else {}
            raise ProviderError(
                f"{self.provider_name} request failed: {e.message}",
                provider=self.provider_name,
                recoverable=e.recoverable,
                details=details,
                cause=e,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"{self.provider_name} request timed out after {self.config.timeout}s",
                provider=self.provider_name,
                cause=e,
            )

    async def _post_once(
        self,
        url: str,
        payload: dict[str, Any],
        headers: Optional[dict[str, str]],
        params: Optional[dict[str, str]],
    ) -> Any:
        session = self._get_session()
        try:
            async with session.post(url, json=payload, headers=headers, params=params) as response:
                body = await response.text()
                if response.status >= 400:
                    raise self._http_error(url, response.status, body, response.headers)
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderError(
                        f"{self.provider_name} returned invalid JSON",
                        provider=self.provider_name,
                        cause=e,
                    )
        except aiohttp.ClientError as e:
            raise NetworkError(f"{self.provider_name} network error: {e}", cause=e)

    def _http_error(self, url: str, status: int, body: str, headers: Any) -> APIError:
        message = f"HTTP {status}: {body[:200]}"
        if status == 429:
            retry_after = (headers or {}).get("Retry-After")
            return RateLimitError(
                message,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                endpoint=url,
                response_body=body,
                method="POST",
            )
        if status >= 500:
            return ServerError(message, status_code=status, endpoint=url, response_body=body, method="POST")
        return APIError(message, status_code=status, endpoint=url, response_body=body, method="POST")

    def _expect_count(self, translations: list[str], expected: int) -> list[str]:
        if len(translations) != expected:
            raise ProviderError(
                f"{self.provider_name} returned {len(translations)} translations for {expected} texts",
                provider=self.provider_name,
            )
        return translations
