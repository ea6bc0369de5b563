"""
DeepL translation provider.
"""

from __future__ import annotations

import logging

from ..api.exceptions import ProviderError
from .base import BaseTranslationProvider

logger = logging.getLogger(__name__)

DEEPL_FREE_URL = "https://api-free.deepl.com/v2/translate"
DEEPL_PRO_URL = "https://api.deepl.com/v2/translate"


def deepl_endpoint(api_key: str) -> str:
    """Free-plan keys end with ``:fx`` and must use the free endpoint."""
    return DEEPL_FREE_URL if api_key.endswith(":fx") else DEEPL_PRO_URL


class DeepLTranslationProvider(BaseTranslationProvider):
    """Translates through the DeepL v2 API.

    Language codes are sent upper-cased, as DeepL expects.
    """

    provider_name = "deepl"

    @property
    def endpoint(self) -> str:
        return self.config.base_url or deepl_endpoint(self.config.api_key)

    async def translate_batch(
        self,
        texts: list[str],
        source_lang: str,
        target_lang: str,
    ) -> list[str]:
        if not texts:
            return []

        data = await self._post_json(
            self.endpoint,
            payload={
                "text": texts,
                "source_lang": source_lang.upper(),
                "target_lang": target_lang.upper(),
            },
            headers={"Authorization": f"DeepL-Auth-Key {self.config.api_key}"},
        )

        try:
            results = [t["text"] for t in data["translations"]]
        except (KeyError, TypeError) as e:
            raise ProviderError(
                "Unexpected DeepL response",
                provider=self.provider_name,
                cause=e,
            )

        return self._expect_count(results, len(texts))
