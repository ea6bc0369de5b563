"""Sync Categories Use Case - Mirrors the vendor category tree locally.

Workflow:
1. Page through all categories (via ICatalogAPI)
2. Order them so parents are resolved before their children
3. Translate each name and resolve it into the category taxonomy
4. Return sync statistics; one bad category never aborts the rest
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ...config import EffectiveSettings
from ...translation.translator import Translator
from ..domain.entities import CategoryRecord, SyncResult
from ..domain.ports import ICatalogAPI
from .resolve_terms import TermResolver

logger = logging.getLogger(__name__)

CATEGORY_PAGE_SIZE = 50


def parents_first(categories: list[CategoryRecord]) -> list[CategoryRecord]:
    """Order categories so every known parent precedes its children.

    Categories whose parent is unknown (or part of a cycle) keep their
    original relative order at the end.
    """
    by_ref = {c.reference: c for c in categories}
    ordered: list[CategoryRecord] = []
    placed: set[str] = set()
    pending = list(categories)

    while pending:
        remaining = []
        for category in pending:
            parent = category.parent_reference
            if not parent or parent not in by_ref or parent in placed:
                ordered.append(category)
                placed.add(category.reference)
            else:
                remaining.append(category)
        if len(remaining) == len(pending):
            ordered.extend(remaining)
            break
        pending = remaining

    return ordered


class SyncCategoriesUseCase:
    """Orchestrates the category sync.

    Example:
        use_case = SyncCategoriesUseCase(
            catalog_api=CatalogAPIAdapter(client),
            term_resolver=TermResolver(term_repo),
            translator=translator,
        )
        result = await use_case.execute(settings)
    """

    def __init__(
        self,
        catalog_api: ICatalogAPI,
        term_resolver: TermResolver,
        translator: Translator,
        page_size: int = CATEGORY_PAGE_SIZE,
        max_pages: int = 100,
    ):
        self.api = catalog_api
        self.terms = term_resolver
        self.translator = translator
        self.page_size = page_size
        self.max_pages = max_pages

    async def fetch_all(self) -> list[CategoryRecord]:
        categories: list[CategoryRecord] = []
        for page in range(self.max_pages):
            batch = await self.api.fetch_categories(page, self.page_size)
            categories.extend(batch)
            if len(batch) < self.page_size:
                break
        return categories

    async def execute(self, settings: EffectiveSettings) -> SyncResult:
        """Execute the category sync workflow.

        Returns:
            SyncResult with statistics about the sync operation
        """
        started_at = datetime.now(timezone.utc)
        errors: list[str] = []

        try:
            categories = await self.fetch_all()
            logger.info(f"Fetched {len(categories)} categories from API")
        except Exception as e:
            logger.error(f"Failed to fetch categories from API: {e}")
            return SyncResult(
                success=False,
                total=0,
                upserted=0,
                errors=1,
                synced_at=started_at,
                error_details=[f"API fetch failed: {e}"],
            )

        upserted = 0
        parent_ids: dict[str, int] = {}

        for category in parents_first(categories):
            try:
                name = await self.translator.translate_multilingual(
                    category.name,
                    settings.target_language,
                )
                parent_id: Optional[int] = None
                if category.parent_reference:
                    parent_id = parent_ids.get(category.parent_reference)

                term = await self.terms.resolve_category(
                    category.reference,
                    name=name or category.reference,
                    parent_id=parent_id,
                )
                if term is not None:
                    parent_ids[category.reference] = term.id
                    upserted += 1
            except Exception as e:
                logger.warning(f"Error syncing category {category.reference}: {e}")
                errors.append(f"Category {category.reference}: {e}")

        logger.info(f"Category sync complete: {upserted} categories, {len(errors)} errors")

        return SyncResult(
            success=len(errors) == 0,
            total=len(categories),
            upserted=upserted,
            errors=len(errors),
            synced_at=started_at,
            error_details=errors,
        )
