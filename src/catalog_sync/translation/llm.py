"""
LLM Translation Provider.

Translates product text with an OpenAI-compatible chat completion API.
Defaults to OpenRouter, which exposes many models behind the OpenAI
wire format; any compatible endpoint works through ``base_url``.
"""

from __future__ import annotations

import logging

import openai
from openai import AsyncOpenAI

from ..api.exceptions import ProviderError
from ..api.resilience import process_concurrent
from .base import BaseTranslationProvider, TranslationProviderConfig

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

SYSTEM_PROMPT = (
    "You are a professional translator. Translate the following e-commerce "
    "product text from {source} to {target}. Return ONLY the translation, "
    "no extra text, no quotes."
)


class LLMTranslationProvider(BaseTranslationProvider):
    """Chat-completion based translator.

    One text per request; batches run with bounded concurrency.
    """

    provider_name = "llm"

    DEFAULT_MODEL = "openai/gpt-4o-mini"

    def __init__(self, config: TranslationProviderConfig):
        super().__init__(config)
        self.model = config.model or self.DEFAULT_MODEL
        self.client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url or OPENROUTER_BASE_URL,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                temperature=0.1,
                messages=[
                    {
                        "role": "system",
                        "content": SYSTEM_PROMPT.format(source=source_lang, target=target_lang),
                    },
                    {"role": "user", "content": text},
                ],
            )
        except openai.RateLimitError as e:
            logger.warning(f"Rate limited during translation: {e}")
            raise ProviderError(f"Rate limited: {e}", provider=self.provider_name, cause=e)
        except openai.APIError as e:
            logger.error(f"LLM translation error: {e}")
            raise ProviderError(f"Translation failed: {e}", provider=self.provider_name, cause=e)

        if not response.choices:
            raise ProviderError("LLM returned no choices", provider=self.provider_name)

        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise ProviderError("LLM returned an empty translation", provider=self.provider_name)
        return content

    async def translate_batch(
        self,
        texts: list[str],
        source_lang: str,
        target_lang: str,
    ) -> list[str]:
        if not texts:
            return []

        async def translate_one(text: str) -> str:
            return await self.translate(text, source_lang, target_lang)

        return await process_concurrent(
            texts,
            translate_one,
            max_concurrent=self.config.max_concurrent,
        )

    async def close(self) -> None:
        await self.client.close()
        await super().close()
