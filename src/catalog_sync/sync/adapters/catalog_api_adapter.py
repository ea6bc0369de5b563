"""Catalog API adapter for fetching products and categories from the vendor.

This adapter implements ICatalogAPI and wraps the CatalogClient, mapping
raw records to domain entities with CatalogFieldMapper.
"""

import logging
from typing import TYPE_CHECKING, Any, Optional

from ..domain.entities import CategoryRecord, ProductPage
from ..domain.ports import ICatalogAPI
from .field_mapper import CatalogFieldMapper

if TYPE_CHECKING:
    from ...api.client import CatalogClient

logger = logging.getLogger(__name__)


class CatalogAPIAdapter(ICatalogAPI):
    """Vendor catalog adapter.

    A page shorter than requested marks the end of the catalog.
    Transport errors from the client propagate unchanged.
    """

    def __init__(
        self,
        client: "CatalogClient",
        field_mapper: Optional[CatalogFieldMapper] = None,
    ):
        """Initialize the API adapter.

        Args:
            client: Configured CatalogClient instance
            field_mapper: Optional mapper override
        """
        self.client = client
        self.mapper = field_mapper or CatalogFieldMapper()

    async def fetch_products(
        self,
        page: int,
        page_size: int,
        filters: Optional[dict[str, Any]] = None,
    ) -> ProductPage:
        raw_items = await self.client.get_products(page=page, page_size=page_size, filters=filters)
        items = [self.mapper.map_item(raw) for raw in raw_items if isinstance(raw, dict)]
        skipped = len(raw_items) - len(items)
        if skipped:
            logger.warning(f"Skipped {skipped} non-object product records on page {page}")
        logger.debug(f"Fetched {len(items)} products (page {page}, size {page_size})")
        return ProductPage(
            items=items,
            page=page,
            page_size=page_size,
            is_last_page=len(raw_items) < page_size,
            skipped=skipped,
        )

    async def fetch_categories(self, page: int, page_size: int) -> list[CategoryRecord]:
        raw_categories = await self.client.get_categories(page=page, page_size=page_size)
        return [
            self.mapper.map_category(raw)
            for raw in raw_categories
            if isinstance(raw, dict)
        ]
