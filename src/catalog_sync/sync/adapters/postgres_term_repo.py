"""PostgreSQL adapter for taxonomy terms (categories and scooter models)."""

import logging
from typing import Any, Optional

import asyncpg

from ...api.database import database_connection
from ..domain.entities import LocalTerm
from ..domain.ports import ITermRepository, TermExistsError

logger = logging.getLogger(__name__)

_COLUMNS = "id, taxonomy, name, slug, external_id, parent_id"


def row_to_term(row: Any) -> LocalTerm:
    return LocalTerm(
        id=row["id"],
        taxonomy=row["taxonomy"],
        name=row["name"],
        slug=row["slug"],
        external_id=row["external_id"],
        parent_id=row["parent_id"],
    )


class PostgresTermRepository(ITermRepository):
    """Terms in ``taxonomy_terms``, unique per (taxonomy, slug)."""

    def __init__(self, pool: "asyncpg.Pool"):
        self.pool = pool

    async def find_by_external_id(self, taxonomy: str, external_id: str) -> Optional[LocalTerm]:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM taxonomy_terms WHERE taxonomy = $1 AND external_id = $2 LIMIT 1",
                taxonomy,
                external_id,
            )
        return row_to_term(row) if row else None

    async def find_by_slug(self, taxonomy: str, slug: str) -> Optional[LocalTerm]:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM taxonomy_terms WHERE taxonomy = $1 AND slug = $2",
                taxonomy,
                slug,
            )
        return row_to_term(row) if row else None

    async def attach_external_id(self, term: LocalTerm, external_id: str) -> LocalTerm:
        async with database_connection(self.pool) as conn:
            try:
                row = await conn.fetchrow(
                    f"""
                    UPDATE taxonomy_terms SET external_id = $2
                    WHERE id = $1 AND (external_id IS NULL OR external_id = $2)
                    RETURNING {_COLUMNS}
                    """,
                    term.id,
                    external_id,
                )
            except asyncpg.UniqueViolationError:
                # Another term already carries this vendor id
                raise TermExistsError(term.taxonomy, term.slug, term.id)
        if row is None:
            raise TermExistsError(term.taxonomy, term.slug, term.id)
        return row_to_term(row)

    async def create(
        self,
        taxonomy: str,
        name: str,
        slug: str,
        external_id: Optional[str] = None,
        parent_id: Optional[int] = None,
    ) -> LocalTerm:
        async with database_connection(self.pool) as conn:
            try:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO taxonomy_terms (taxonomy, name, slug, external_id, parent_id)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING {_COLUMNS}
                    """,
                    taxonomy,
                    name,
                    slug,
                    external_id,
                    parent_id,
                )
            except asyncpg.UniqueViolationError:
                existing_id = await conn.fetchval(
                    "SELECT id FROM taxonomy_terms WHERE taxonomy = $1 AND slug = $2",
                    taxonomy,
                    slug,
                )
                raise TermExistsError(taxonomy, slug, existing_id)

        logger.debug(f"Created {taxonomy} term '{slug}' (id {row['id']})")
        return row_to_term(row)
