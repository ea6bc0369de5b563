#!/usr/bin/env python3
"""Configuration for the Catalog Sync service.

Settings come from two layers:

    GlobalSettings   - loaded from environment variables (.env supported)
    ProfileSettings  - optional per-scope overrides loaded from a JSON file

resolve_settings(profile, global_settings) merges them into an immutable
EffectiveSettings that is handed to the sync engine at construction. Profile
values win; anything a profile leaves unset falls back to the global value.
All validation happens here, so malformed values (negative markup, an empty
batch range, unknown field names) never reach a running sync.

Environment Variables:
    CATALOG_API_KEY, CATALOG_API_URL: Vendor API credentials
    TRANSLATION_DRIVER: google | deepl | llm (default: google)
    TRANSLATION_API_KEY, TRANSLATION_MODEL, TRANSLATION_BASE_URL
    SOURCE_LANGUAGE (default: en), TARGET_LANGUAGE (default: ro)
    SOURCE_CURRENCY (default: EUR), TARGET_CURRENCY (default: RON)
    EXCHANGE_RATE (default: 4.97), MARKUP_PERCENT (default: 20)
    PRICE_ROUNDING: none | ceil | 99 | nearest5 | nearest10
    VARIATION_MODE: variable | simple
    SYNC_FIELDS, PROTECTED_FIELDS: comma-separated field names
    SYNC_MIN_BATCH (1), SYNC_MAX_BATCH (10), SYNC_FAILURE_THRESHOLD (5)
    SYNC_MAX_ITEMS (25000), SYNC_BATCH_DELAY_SECONDS (5)
    SYNC_PROFILES_FILE: JSON file with profile definitions
    DATABASE_URL: PostgreSQL connection string (in-memory storage if unset)

Author: Catalog Sync Team
"""
import json
import logging
import math
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from .api.exceptions import ConfigurationError, ValidationError
from .pricing.converter import RoundingMode

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "default"


# ============================================
# Field Flags
# ============================================

class SyncField(str, Enum):
    """Product fields the sync can write to the store."""

    NAME = "name"
    DESCRIPTION = "description"
    PRICE = "price"
    IMAGES = "images"
    CATEGORIES = "categories"
    MODELS = "models"
    ATTRIBUTES = "attributes"


class VariationMode(str, Enum):
    """How products with variants are written to the store."""

    VARIABLE = "variable"
    SIMPLE = "simple"


class TranslationDriver(str, Enum):
    GOOGLE = "google"
    DEEPL = "deepl"
    LLM = "llm"


FieldFlags = dict[SyncField, bool]


def all_fields(enabled: bool) -> FieldFlags:
    return {f: enabled for f in SyncField}


def parse_field_flags(raw: Any, default: bool) -> FieldFlags:
    """Parse field flags from a mapping or a list of enabled field names.

    Args:
        raw: ``{"name": true, ...}``, ``["name", "price"]`` or a
            comma-separated string
        default: Value for fields a mapping does not mention

    Returns:
        A flag for every SyncField

    Raises:
        ValidationError: If a field name is unknown
    """
    if isinstance(raw, str):
        raw = [part.strip() for part in raw.split(",") if part.strip()]

    if isinstance(raw, (list, tuple, set)):
        flags = all_fields(False)
        for name in raw:
            flags[_parse_field(name)] = True
        return flags

    if isinstance(raw, dict):
        flags = all_fields(default)
        for name, value in raw.items():
            flags[_parse_field(name)] = bool(value)
        return flags

    raise ValidationError("Field flags must be a mapping or a list", field="sync_fields", value=raw)


def _parse_field(name: Any) -> SyncField:
    try:
        return SyncField(str(name).lower())
    except ValueError:
        raise ValidationError(f"Unknown sync field '{name}'", field="sync_fields", value=name)


def _parse_enum(enum_cls, value: Any, field_name: str):
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(
            f"Invalid {field_name} '{value}' (expected one of: {allowed})",
            field=field_name,
            value=value,
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a number", field=name, value=raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", field=name, value=raw)


# ============================================
# Batch Policy
# ============================================

@dataclass(frozen=True)
class BatchPolicy:
    """Adaptive batching bounds and the fatal failure threshold.

    Attributes:
        min_batch: Smallest page size the engine shrinks to
        max_batch: Page size of a healthy run
        failure_threshold: Consecutive fetch failures that fail the run
        max_items: Items a run may fetch before it is failed as runaway (0 = no limit)
    """

    min_batch: int = 1
    max_batch: int = 10
    failure_threshold: int = 5
    max_items: int = 25_000

    def validate(self) -> None:
        if self.min_batch < 1:
            raise ValidationError("min_batch must be at least 1", field="min_batch", value=self.min_batch)
        if self.max_batch < self.min_batch:
            raise ValidationError(
                "max_batch must be greater than or equal to min_batch",
                field="max_batch",
                value=self.max_batch,
            )
        if self.failure_threshold < 1:
            raise ValidationError(
                "failure_threshold must be at least 1",
                field="failure_threshold",
                value=self.failure_threshold,
            )
        if self.max_items < 0:
            raise ValidationError("max_items cannot be negative", field="max_items", value=self.max_items)

    def shrink(self, batch_size: int) -> int:
        """Halve the batch size, never going below min_batch."""
        return max(self.min_batch, batch_size // 2)

    def grow(self, batch_size: int) -> int:
        """Double the batch size, never going above max_batch."""
        return min(self.max_batch, max(self.min_batch, batch_size * 2))


# ============================================
# Global Settings
# ============================================

@dataclass
class GlobalSettings:
    """Service-wide defaults, usually loaded from the environment."""

    catalog_api_key: str = ""
    catalog_api_url: str = ""
    translation_driver: TranslationDriver = TranslationDriver.GOOGLE
    translation_api_key: str = ""
    translation_model: str = "openai/gpt-4o-mini"
    translation_base_url: str = ""
    source_language: str = "en"
    target_language: str = "ro"
    source_currency: str = "EUR"
    target_currency: str = "RON"
    exchange_rate: float = 4.97
    markup_percent: float = 20.0
    rounding_mode: RoundingMode = RoundingMode.NONE
    variation_mode: VariationMode = VariationMode.VARIABLE
    sync_fields: FieldFlags = field(default_factory=lambda: all_fields(True))
    protected_fields: FieldFlags = field(default_factory=lambda: all_fields(False))
    batch: BatchPolicy = field(default_factory=BatchPolicy)
    batch_delay_seconds: float = 5.0
    database_url: str = ""
    profiles_file: str = ""

    @classmethod
    def from_env(cls) -> "GlobalSettings":
        """Load and validate settings from environment variables.

        Raises:
            ValidationError: If a value is malformed
        """
        sync_fields_raw = os.getenv("SYNC_FIELDS")
        protected_raw = os.getenv("PROTECTED_FIELDS")

        settings = cls(
            catalog_api_key=os.getenv("CATALOG_API_KEY", ""),
            catalog_api_url=os.getenv("CATALOG_API_URL", ""),
            translation_driver=_parse_enum(
                TranslationDriver, os.getenv("TRANSLATION_DRIVER", "google"), "translation_driver"
            ),
            translation_api_key=os.getenv("TRANSLATION_API_KEY", ""),
            translation_model=os.getenv("TRANSLATION_MODEL", "openai/gpt-4o-mini"),
            translation_base_url=os.getenv("TRANSLATION_BASE_URL", ""),
            source_language=os.getenv("SOURCE_LANGUAGE", "en").lower(),
            target_language=os.getenv("TARGET_LANGUAGE", "ro").lower(),
            source_currency=os.getenv("SOURCE_CURRENCY", "EUR").upper(),
            target_currency=os.getenv("TARGET_CURRENCY", "RON").upper(),
            exchange_rate=_env_float("EXCHANGE_RATE", 4.97),
            markup_percent=_env_float("MARKUP_PERCENT", 20.0),
            rounding_mode=_parse_enum(RoundingMode, os.getenv("PRICE_ROUNDING", "none"), "rounding_mode"),
            variation_mode=_parse_enum(VariationMode, os.getenv("VARIATION_MODE", "variable"), "variation_mode"),
            sync_fields=parse_field_flags(sync_fields_raw, True) if sync_fields_raw else all_fields(True),
            protected_fields=parse_field_flags(protected_raw, False) if protected_raw else all_fields(False),
            batch=BatchPolicy(
                min_batch=_env_int("SYNC_MIN_BATCH", 1),
                max_batch=_env_int("SYNC_MAX_BATCH", 10),
                failure_threshold=_env_int("SYNC_FAILURE_THRESHOLD", 5),
                max_items=_env_int("SYNC_MAX_ITEMS", 25_000),
            ),
            batch_delay_seconds=_env_float("SYNC_BATCH_DELAY_SECONDS", 5.0),
            database_url=os.getenv("DATABASE_URL", ""),
            profiles_file=os.getenv("SYNC_PROFILES_FILE", ""),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        _validate_pricing(self.exchange_rate, self.markup_percent)
        self.batch.validate()
        if self.batch_delay_seconds < 0:
            raise ValidationError(
                "batch_delay_seconds cannot be negative",
                field="batch_delay_seconds",
                value=self.batch_delay_seconds,
            )
        if not self.target_language:
            raise ValidationError("target_language is required", field="target_language")

    def require_catalog_credentials(self) -> None:
        if not self.catalog_api_key:
            raise ConfigurationError(
                "Catalog API key is not configured",
                missing_keys=["CATALOG_API_KEY"],
            )

    def __repr__(self) -> str:
        return (
            f"GlobalSettings("
            f"target_language={self.target_language}, "
            f"rate={self.exchange_rate}, "
            f"markup={self.markup_percent}%, "
            f"batch={self.batch.min_batch}-{self.batch.max_batch}, "
            f"translation={self.translation_driver.value})"
        )


def _validate_pricing(exchange_rate: Optional[float], markup_percent: Optional[float]) -> None:
    if exchange_rate is not None and (not math.isfinite(exchange_rate) or exchange_rate <= 0):
        raise ValidationError("exchange_rate must be a positive number", field="exchange_rate", value=exchange_rate)
    if markup_percent is not None and (not math.isfinite(markup_percent) or markup_percent < 0):
        raise ValidationError("markup_percent cannot be negative", field="markup_percent", value=markup_percent)


# ============================================
# Profile Settings
# ============================================

@dataclass
class ProfileSettings:
    """Per-scope overrides. ``None`` means "use the global value"."""

    scope: str
    name: str = ""
    is_active: bool = True
    filters: dict[str, Any] = field(default_factory=dict)
    exchange_rate: Optional[float] = None
    markup_percent: Optional[float] = None
    rounding_mode: Optional[RoundingMode] = None
    variation_mode: Optional[VariationMode] = None
    target_language: Optional[str] = None
    sync_fields: Optional[FieldFlags] = None
    protected_fields: Optional[FieldFlags] = None
    limit: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProfileSettings":
        """Build a profile from its JSON representation.

        Raises:
            ValidationError: If the profile is malformed
        """
        scope = data.get("scope") or data.get("slug")
        if not scope:
            raise ValidationError("Profile is missing 'scope'", field="scope")

        settings = data.get("settings", {})

        def pick(key: str) -> Any:
            return settings.get(key, data.get(key))

        rounding = pick("rounding_mode")
        variation = pick("variation_mode")
        sync_fields = pick("sync_fields")
        protected = pick("protected_fields")
        if protected is None:
            protected = pick("sync_protection")

        profile = cls(
            scope=str(scope),
            name=data.get("name", str(scope)),
            is_active=bool(data.get("is_active", True)),
            filters=dict(data.get("filters") or {}),
            exchange_rate=float(pick("exchange_rate")) if pick("exchange_rate") is not None else None,
            markup_percent=float(pick("markup_percent")) if pick("markup_percent") is not None else None,
            rounding_mode=_parse_enum(RoundingMode, rounding, "rounding_mode") if rounding else None,
            variation_mode=_parse_enum(VariationMode, variation, "variation_mode") if variation else None,
            target_language=pick("target_language"),
            sync_fields=parse_field_flags(sync_fields, True) if sync_fields is not None else None,
            protected_fields=parse_field_flags(protected, False) if protected is not None else None,
            limit=int(pick("limit") or pick("test_limit") or 0),
        )
        _validate_pricing(profile.exchange_rate, profile.markup_percent)
        if profile.limit < 0:
            raise ValidationError("limit cannot be negative", field="limit", value=profile.limit)
        return profile


def load_profiles(path: str | Path) -> dict[str, ProfileSettings]:
    """Load profile definitions from a JSON file (a list of profile objects).

    Raises:
        ConfigurationError: If the file cannot be read or parsed
        ValidationError: If a profile is malformed
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot load profiles from {path}: {e}", cause=e)

    if isinstance(raw, dict):
        raw = raw.get("profiles", [])

    profiles = {}
    for entry in raw:
        profile = ProfileSettings.from_dict(entry)
        profiles[profile.scope] = profile

    logger.info(f"Loaded {len(profiles)} sync profiles from {path}")
    return profiles


# ============================================
# Effective Settings
# ============================================

@dataclass(frozen=True)
class EffectiveSettings:
    """Settings for one scope after profile overrides are applied."""

    scope: str
    source_language: str
    target_language: str
    source_currency: str
    target_currency: str
    exchange_rate: float
    markup_percent: float
    rounding_mode: RoundingMode
    variation_mode: VariationMode
    sync_fields: FieldFlags
    protected_fields: FieldFlags
    batch: BatchPolicy
    filters: dict[str, Any] = field(default_factory=dict)
    limit: int = 0
    profile_name: str = ""

    def field_enabled(self, sync_field: SyncField) -> bool:
        return self.sync_fields.get(sync_field, True)

    def is_protected(self, sync_field: SyncField) -> bool:
        return self.protected_fields.get(sync_field, False)

    def api_filters(self) -> dict[str, Any]:
        """Vendor filters with empty values dropped."""
        api_filters: dict[str, Any] = {}
        for key, value in self.filters.items():
            if value in (None, "", [], False):
                continue
            api_filters[key] = value
        return api_filters


def resolve_settings(
    profile: Optional[ProfileSettings],
    global_settings: GlobalSettings,
) -> EffectiveSettings:
    """Merge a profile over the global settings.

    The fallback order is fixed: profile value, then global value.
    Filters and limit only come from the profile.
    """

    def layered(profile_value, global_value):
        return global_value if profile_value is None else profile_value

    return EffectiveSettings(
        scope=profile.scope if profile else DEFAULT_SCOPE,
        source_language=global_settings.source_language,
        target_language=layered(profile.target_language if profile else None, global_settings.target_language),
        source_currency=global_settings.source_currency,
        target_currency=global_settings.target_currency,
        exchange_rate=layered(profile.exchange_rate if profile else None, global_settings.exchange_rate),
        markup_percent=layered(profile.markup_percent if profile else None, global_settings.markup_percent),
        rounding_mode=layered(profile.rounding_mode if profile else None, global_settings.rounding_mode),
        variation_mode=layered(profile.variation_mode if profile else None, global_settings.variation_mode),
        sync_fields=dict(layered(profile.sync_fields if profile else None, global_settings.sync_fields)),
        protected_fields=dict(
            layered(profile.protected_fields if profile else None, global_settings.protected_fields)
        ),
        batch=global_settings.batch,
        filters=dict(profile.filters) if profile else {},
        limit=profile.limit if profile else 0,
        profile_name=profile.name if profile else DEFAULT_SCOPE,
    )


class SettingsRegistry:
    """Resolves EffectiveSettings for any scope.

    Unknown scopes fall back to the global defaults, so the default scope
    works without any profile file.
    """

    def __init__(
        self,
        global_settings: GlobalSettings,
        profiles: Optional[dict[str, ProfileSettings]] = None,
    ):
        self.global_settings = global_settings
        self.profiles = dict(profiles or {})

    @classmethod
    def from_env(cls) -> "SettingsRegistry":
        global_settings = GlobalSettings.from_env()
        profiles = load_profiles(global_settings.profiles_file) if global_settings.profiles_file else {}
        return cls(global_settings, profiles)

    def for_scope(self, scope: str) -> EffectiveSettings:
        return resolve_settings(self.profiles.get(scope), self.global_settings)

    def with_global(self, **changes: Any) -> "SettingsRegistry":
        """Return a registry with some global values replaced (validated)."""
        updated = replace(self.global_settings, **changes)
        updated.validate()
        return SettingsRegistry(updated, self.profiles)


__all__ = [
    "DEFAULT_SCOPE",
    "BatchPolicy",
    "EffectiveSettings",
    "GlobalSettings",
    "ProfileSettings",
    "SettingsRegistry",
    "SyncField",
    "TranslationDriver",
    "VariationMode",
    "load_profiles",
    "parse_field_flags",
    "resolve_settings",
]
