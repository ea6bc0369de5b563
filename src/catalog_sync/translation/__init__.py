"""Translation - cached machine translation of catalog text.

Providers:
    GoogleTranslationProvider: Google Translation v2
    DeepLTranslationProvider: DeepL v2 (free and pro endpoints)
    LLMTranslationProvider: OpenAI-compatible chat completions (OpenRouter by default)

Use create_provider() to build the provider named by TRANSLATION_DRIVER.
"""

from typing import Optional

from ..api.exceptions import ConfigurationError
from .base import BaseTranslationProvider, TranslationProviderConfig
from .deepl import DeepLTranslationProvider, deepl_endpoint
from .google import GoogleTranslationProvider
from .llm import LLMTranslationProvider
from .translator import LANGUAGE_PRIORITY, Translator, cache_key, normalize_multilingual

PROVIDERS: dict[str, type[BaseTranslationProvider]] = {
    "google": GoogleTranslationProvider,
    "deepl": DeepLTranslationProvider,
    "llm": LLMTranslationProvider,
}


def create_provider(
    driver: str,
    api_key: str,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
) -> BaseTranslationProvider:
    """Build a translation provider by driver name.

    Raises:
        ConfigurationError: If the driver is unknown or the API key is missing
    """
    provider_cls = PROVIDERS.get(driver.lower())
    if provider_cls is None:
        raise ConfigurationError(f"Unknown translation driver '{driver}'")
    if not api_key:
        raise ConfigurationError(
            f"Translation driver '{driver}' requires an API key",
            missing_keys=["TRANSLATION_API_KEY"],
        )
    return provider_cls(
        TranslationProviderConfig(
            api_key=api_key,
            model=model or None,
            base_url=base_url or None,
        )
    )


__all__ = [
    "BaseTranslationProvider",
    "TranslationProviderConfig",
    "GoogleTranslationProvider",
    "DeepLTranslationProvider",
    "LLMTranslationProvider",
    "Translator",
    "LANGUAGE_PRIORITY",
    "PROVIDERS",
    "cache_key",
    "create_provider",
    "deepl_endpoint",
    "normalize_multilingual",
]
