"""Cached translation of catalog text.

The Translator sits between the sync and a translation provider. Every
translation is looked up in a persistent cache first, so a product text
is paid for once no matter how many syncs see it.

Cache keys are md5("{text}|{source}|{target}") over the stripped text.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from ..api.exceptions import (
    CatalogSyncError,
    EmptyInputError,
    PersistenceError,
    ProviderError,
    TranslationError,
)
from ..sync.domain.entities import TranslationCacheEntry
from ..sync.domain.ports import ITranslationCache, ITranslationProvider

logger = logging.getLogger(__name__)

# Source language preference when a multilingual field lacks the target
LANGUAGE_PRIORITY = ("en", "es", "de", "fr", "it")


def cache_key(text: str, source_lang: str, target_lang: str) -> str:
    raw = f"{text.strip()}|{source_lang.lower()}|{target_lang.lower()}"
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def normalize_multilingual(values: Any) -> dict[str, str]:
    """Flatten the vendor's multilingual shapes into ``{lang: text}``.

    Accepts a plain mapping, or the complex form
    ``{"defaultLanguageCode": "es", "translations": [{"reference": "en", "value": ...}]}``.
    Language codes are lower-cased.
    """
    if not isinstance(values, dict):
        return {}

    translations = values.get("translations", values.get("Translations"))
    if isinstance(translations, list):
        flat: dict[str, str] = {}
        for entry in translations:
            if not isinstance(entry, dict):
                continue
            lang = entry.get("reference", entry.get("Reference"))
            value = entry.get("value", entry.get("Value"))
            if lang and isinstance(value, str):
                flat[str(lang).lower()] = value
        return flat

    return {
        str(lang).lower(): value
        for lang, value in values.items()
        if isinstance(value, str)
    }


def pick_source(values: dict[str, str]) -> Optional[tuple[str, str]]:
    """Choose the (language, text) to translate from."""
    for lang in LANGUAGE_PRIORITY:
        text = values.get(lang)
        if text and text.strip():
            return lang, text
    for lang, text in values.items():
        if text and text.strip():
            return lang, text
    return None


class Translator:
    """Translates text through a cache-first provider pipeline.

    Example:
        translator = Translator(
            provider=GoogleTranslationProvider(config),
            cache=PostgresTranslationCache(pool),
            default_source="en",
        )
        name = await translator.translate("Brake pad", "en", "ro")

    Args:
        provider: Translation backend
        cache: Persistent translation cache
        default_source: Language assumed for plain (non-multilingual) text
        require_text: Raise EmptyInputError instead of returning "" for empty text
    """

    def __init__(
        self,
        provider: ITranslationProvider,
        cache: ITranslationCache,
        default_source: str = "en",
        require_text: bool = False,
    ):
        self.provider = provider
        self.cache = cache
        self.default_source = default_source.lower()
        self.require_text = require_text

    def _empty(self) -> str:
        if self.require_text:
            raise EmptyInputError()
        return ""

    async def translate(self, text: Optional[str], source_lang: str, target_lang: str) -> str:
        """Translate one text.

        Raises:
            EmptyInputError: For empty text when require_text is set
            ProviderError: If the provider fails on a cache miss
        """
        text = (text or "").strip()
        if not text:
            return self._empty()

        if source_lang.lower() == target_lang.lower():
            return text

        key = cache_key(text, source_lang, target_lang)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        translated = await self._call_provider([text], source_lang, target_lang)
        await self._store(key, text, translated[0], source_lang, target_lang)
        return translated[0]

    async def translate_batch(
        self,
        texts: list[Optional[str]],
        source_lang: str,
        target_lang: str,
    ) -> list[str]:
        """Translate several texts, preserving order.

        Only unique cache misses are sent to the provider, in one call.
        """
        stripped = [(text or "").strip() for text in texts]
        if source_lang.lower() == target_lang.lower():
            return stripped

        keys = {text: cache_key(text, source_lang, target_lang) for text in stripped if text}
        cached = await self.cache.get_many(list(set(keys.values()))) if keys else {}

        misses = [text for text in keys if keys[text] not in cached]
        if misses:
            translated = await self._call_provider(misses, source_lang, target_lang)
            for text, result in zip(misses, translated):
                cached[keys[text]] = result
                await self._store(keys[text], text, result, source_lang, target_lang)
            logger.debug(f"Translated {len(misses)} new texts ({len(keys) - len(misses)} cached)")

        return [cached[keys[text]] if text else self._empty() for text in stripped]

    async def translate_multilingual(self, values: Any, target_lang: str) -> str:
        """Translate a vendor multilingual field into the target language.

        A value already present in the target language is returned as is.
        Otherwise the source is chosen in the order en, es, de, fr, it and
        then the first language available. Plain strings are treated as
        ``default_source`` text.
        """
        if isinstance(values, str):
            return await self.translate(values, self.default_source, target_lang)

        flat = normalize_multilingual(values)
        existing = flat.get(target_lang.lower())
        if existing and existing.strip():
            return existing.strip()

        source = pick_source(flat)
        if source is None:
            return self._empty()

        source_lang, text = source
        return await self.translate(text, source_lang, target_lang)

    async def _call_provider(self, texts: list[str], source_lang: str, target_lang: str) -> list[str]:
        try:
            return await self.provider.translate_batch(texts, source_lang, target_lang)
        except TranslationError:
            raise
        except CatalogSyncError as e:
            raise ProviderError(str(e), provider=self.provider.name, cause=e)
        except Exception as e:
            logger.exception(f"Unexpected error from translation provider {self.provider.name}")
            raise ProviderError(
                f"Translation provider failed: {e}",
                provider=self.provider.name,
                cause=e,
            )

    async def _store(self, key: str, text: str, translated: str, source_lang: str, target_lang: str) -> None:
        entry = TranslationCacheEntry(
            key=key,
            source_text=text,
            translated_text=translated,
            source_language=source_lang.lower(),
            target_language=target_lang.lower(),
            provider=self.provider.name,
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self.cache.put(entry)
        except PersistenceError as e:
            logger.warning(f"Could not cache translation {key}: {e}")

    async def close(self) -> None:
        await self.provider.close()
