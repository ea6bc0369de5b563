"""PostgreSQL adapter for the local product store.

This adapter implements IProductUpserter against ``catalog_products``,
keyed by the vendor reference. A hash of the synced fields decides
between updated and unchanged, so re-running a sync over an unchanged
catalog writes nothing.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

from ...api.database import database_connection, database_transaction
from ..domain.entities import NormalizedProduct, UpsertOutcome, UpsertResult
from ..domain.ports import IProductUpserter
from .memory import fields_hash

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)


class PostgresProductRepository(IProductUpserter):
    """PostgreSQL implementation of IProductUpserter.

    Protected fields are part of the INSERT only. Updates merge the synced
    fields into the stored JSONB, leaving protected keys untouched.
    """

    def __init__(self, pool: "asyncpg.Pool"):
        """Initialize the repository.

        Args:
            pool: asyncpg connection pool for database operations
        """
        self.pool = pool

    async def upsert(self, reference: str, product: NormalizedProduct) -> UpsertResult:
        digest = fields_hash(product.fields)

        async with database_transaction(self.pool) as conn:
            row = await conn.fetchrow(
                """
                SELECT id, product_type, fields_hash
                FROM catalog_products WHERE reference = $1
                FOR UPDATE
                """,
                reference,
            )

            if row is None:
                local_id = await conn.fetchval(
                    """
                    INSERT INTO catalog_products (reference, product_type, fields, meta, fields_hash)
                    VALUES ($1, $2, $3::jsonb, $4::jsonb, $5)
                    RETURNING id
                    """,
                    reference,
                    product.product_type,
                    json.dumps({**product.protected_fields, **product.fields}, default=str),
                    json.dumps(product.meta, default=str),
                    digest,
                )
                return UpsertResult(UpsertOutcome.CREATED, local_id)

            if row["fields_hash"] == digest and row["product_type"] == product.product_type:
                return UpsertResult(UpsertOutcome.UNCHANGED, row["id"])

            await conn.execute(
                """
                UPDATE catalog_products SET
                    product_type = $2,
                    fields = fields || $3::jsonb,
                    meta = meta || $4::jsonb,
                    fields_hash = $5,
                    updated_at = NOW()
                WHERE id = $1
                """,
                row["id"],
                product.product_type,
                json.dumps(product.fields, default=str),
                json.dumps(product.meta, default=str),
                digest,
            )
            return UpsertResult(UpsertOutcome.UPDATED, row["id"])

    async def get(self, reference: str) -> Optional[dict[str, Any]]:
        """Stored product by reference (used by the CLI and tests)."""
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                "SELECT id, reference, product_type, fields, meta FROM catalog_products WHERE reference = $1",
                reference,
            )
        if row is None:
            return None

        def _json(value: Any) -> Any:
            return json.loads(value) if isinstance(value, str) else value

        return {
            "id": row["id"],
            "type": row["product_type"],
            "fields": _json(row["fields"]),
            "meta": _json(row["meta"]),
        }
