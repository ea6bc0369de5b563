"""PostgreSQL adapter for the translation cache."""

import logging
from typing import TYPE_CHECKING, Optional

from ...api.database import database_connection
from ..domain.entities import TranslationCacheEntry
from ..domain.ports import ITranslationCache

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)


class PostgresTranslationCache(ITranslationCache):
    """Translations keyed by md5(text|source|target).

    Entries are immutable: writing a key that already exists does nothing.
    """

    def __init__(self, pool: "asyncpg.Pool"):
        self.pool = pool

    async def get(self, key: str) -> Optional[str]:
        async with database_connection(self.pool) as conn:
            return await conn.fetchval(
                "SELECT translated_text FROM translation_cache WHERE cache_key = $1",
                key,
            )

    async def get_many(self, keys: list[str]) -> dict[str, str]:
        if not keys:
            return {}
        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                "SELECT cache_key, translated_text FROM translation_cache WHERE cache_key = ANY($1::text[])",
                list(keys),
            )
        return {row["cache_key"]: row["translated_text"] for row in rows}

    async def put(self, entry: TranslationCacheEntry) -> None:
        async with database_connection(self.pool) as conn:
            await conn.execute(
                """
                INSERT INTO translation_cache (
                    cache_key, source_text, translated_text,
                    source_language, target_language, provider, created_at
                ) VALUES ($1, $2, $3, $4, $5, $6, COALESCE($7, NOW()))
                ON CONFLICT (cache_key) DO NOTHING
                """,
                entry.key,
                entry.source_text,
                entry.translated_text,
                entry.source_language,
                entry.target_language,
                entry.provider,
                entry.created_at,
            )
