"""
Google Cloud Translation (v2) provider.
"""

from __future__ import annotations

import html
import logging

from ..api.exceptions import ProviderError
from .base import BaseTranslationProvider

logger = logging.getLogger(__name__)

GOOGLE_TRANSLATE_URL = "https://translation.googleapis.com/language/translate/v2"


class GoogleTranslationProvider(BaseTranslationProvider):
    """Translates through the Google Translation v2 REST endpoint.

    All texts of a batch go out in a single request as repeated ``q``
    values, and results come back in the same order.
    """

    provider_name = "google"

    async def translate_batch(
        self,
        texts: list[str],
        source_lang: str,
        target_lang: str,
    ) -> list[str]:
        if not texts:
            return []

        data = await self._post_json(
            self.config.base_url or GOOGLE_TRANSLATE_URL,
            payload={
                "q": texts,
                "source": source_lang,
                "target": target_lang,
                "format": "text",
            },
            params={"key": self.config.api_key},
        )

        try:
            translations = data["data"]["translations"]
            results = [html.unescape(t["translatedText"]) for t in translations]
        except (KeyError, TypeError) as e:
            raise ProviderError(
                "Unexpected Google Translate response",
                provider=self.provider_name,
                cause=e,
            )

        logger.debug(f"Google translated {len(results)} texts {source_lang}->{target_lang}")
        return self._expect_count(results, len(texts))
