"""Resolve Terms Use Case - Maps vendor category/model ids to local terms.

Lookup is always by the vendor id stored on the term, never by name, so
operators can rename terms in the store without the next sync creating
duplicates.

Resolution order:
1. Term carrying the external id
2. Unbound term whose slug equals the external id (the external id is attached)
3. New term; a slug already bound to another vendor id gets a numeric suffix
   New terms are named from the known-name table or the id itself
"""

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Optional

from ..domain.entities import LocalTerm
from ..domain.ports import ITermRepository, TermExistsError

logger = logging.getLogger(__name__)

MODEL_TAXONOMY = "scooter_model"
CATEGORY_TAXONOMY = "product_cat"
MAX_SLUG_ATTEMPTS = 50

# Vendor scooter model ids with known display names
KNOWN_MODEL_NAMES: dict[str, str] = {
    "1": "Ninebot ES2",
    "2": "Ninebot ES4",
    "3": "Ninebot ES1",
    "7": "Xiaomi Pro 2",
    "8": "Xiaomi Mi 3",
    "13": "Xiaomi Pro",
    "14": "Ninebot MAX G30",
    "25": "Dualtron Speedway 4",
    "26": "SmartGyro Rockway Pro V2.0",
    "29": "Ninebot KickScooter MAX G2",
    "52": "Xiaomi Mi 4 Pro (1st Gen)",
    "57": "Ninebot F2",
    "59": "SmartGyro SpeedWay PRO",
    "62": "Wispeed T850",
    "67": "Ninebot KickScooter E22",
    "68": "Ninebot KickScooter E25",
    "69": "Ninebot KickScooter E45",
    "71": "Dualtron Mini",
    "79": "Dualtron Thunder",
    "80": "Dualtron Raptor",
    "81": "Dualtron Thunder 2",
    "82": "Dualtron Compact",
    "83": "Dualtron Storm",
    "85": "Dualtron Spider",
    "87": "Dualtron Speedway",
    "88": "Dualtron Achilleus",
    "90": "Dualtron Eagle",
    "91": "Dualtron Eagle",
    "93": "Dualtron 3",
    "95": "Dualtron Storm",
    "96": "Dualtron Victor Luxury",
    "102": "Xiaomi Mi 3 Lite",
    "110": "Xiaomi Mi 4 Lite",
    "112": "Dualtron Thunder",
    "113": "Dualtron Victor",
    "116": "Dualtron Raptor",
    "117": "Dualtron Victor Luxury Plus",
    "118": "NIU KQi3",
    "119": "NIU KQi2 Pro",
    "120": "NIU KQi1",
    "122": "Xiaomi Mi 4",
    "124": "Kukirin G2 Max",
    "125": "Kukirin G3 Pro",
    "127": "Xiaomi Mi 4 Ultra",
    "129": "NIU KQi3 Max",
    "130": "NIU KQi3 Pro",
    "140": "Dualtron Mini",
    "146": "Dualtron Speedway 5 Dual Motor",
    "147": "Xiaomi Mi 4 GO",
    "152": "Dualtron Mini Special Long Body Single Motor",
    "153": "Dualtron Mini Special Long Body Dual Motor",
    "158": "Dualtron Popular Dual Motor",
    "159": "Dualtron Popular Single Motor",
    "204": "Ninebot KickScooter MAX G2",
    "205": "Ninebot KickScooter MAX G2 D",
    "243": "Wispeed T850",
    "327": "Kugoo G2 Pro",
    "444": "Navee N40",
    "452": "Navee N65",
    "459": "Xiaomi Mi 4 Lite (2nd Generation)",
    "485": "Xiaomi Mi 4 Pro (2nd Generation)",
    "486": "Xiaomi Mi 4 Pro Max",
    "899": "Xiaomi Mi 4 - Versión FR",
    "920": "Niu KQi300X",
    "921": "Niu KQi4 Sport",
    "923": "Niu KQi AIR",
    "924": "Niu KQi300P",
    "925": "Niu KQi100",
    "926": "Niu KQi3 Sport",
    "932": "Wispeed T865",
    "934": "Ninebot F3 E",
    "937": "Ninebot F3 E",
    "947": "Ninebot ZT3 Pro EU",
    "956": "Niu KQi1 Pro",
    "961": "Smartgyro Crossover Dual Max 2",
    "973": "Xiaomi Mi4 Lite Gen2 (IT/DE)",
    "974": "Xiaomi Mi4 Pro Gen1 (IT)",
    "975": "Xiaomi Mi4 Pro Gen1 (IT)",
    "976": "Xiaomi Mi4 Pro Plus",
    "978": "Xiaomi Mi 5 Max",
    "980": "Xiaomi Mi 5",
    "981": "Navee N20",
    "990": "Niu KQi2",
}


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.strip().lower())
    return slug.strip("-")


class TermResolver:
    """Resolves vendor ids to local taxonomy terms.

    Results are memoized per instance, so a batch touching the same model
    on many products hits the repository once.

    Example:
        resolver = TermResolver(PostgresTermRepository(pool))
        term = await resolver.resolve_model("110")  # "Xiaomi Mi 4 Lite"
    """

    def __init__(self, term_repo: ITermRepository):
        self.repo = term_repo
        self._memo: dict[tuple[str, str], LocalTerm] = {}

    def clear_cache(self) -> None:
        self._memo.clear()

    async def resolve(
        self,
        taxonomy: str,
        external_id: str,
        known_names: Optional[Mapping[str, str]] = None,
        name: Optional[str] = None,
        parent_id: Optional[int] = None,
    ) -> Optional[LocalTerm]:
        """Find or create the local term for a vendor id.

        Args:
            taxonomy: Term taxonomy
            external_id: Vendor id (stored on the term)
            known_names: Display names by vendor id
            name: Display name to use when creating (overrides known_names)
            parent_id: Parent term for new terms

        Returns:
            The local term, or None for an empty id
        """
        external_id = str(external_id or "").strip()
        if not external_id:
            return None

        memo_key = (taxonomy, external_id)
        if memo_key in self._memo:
            return self._memo[memo_key]

        term = await self.repo.find_by_external_id(taxonomy, external_id)

        if term is None:
            display_name = name or (known_names or {}).get(external_id) or external_id
            slug = slugify(external_id) or external_id
            term = await self._adopt_or_create(taxonomy, display_name, slug, external_id, parent_id)

        self._memo[memo_key] = term
        return term

    async def _adopt_or_create(
        self,
        taxonomy: str,
        name: str,
        slug: str,
        external_id: str,
        parent_id: Optional[int],
    ) -> LocalTerm:
        """Adopt an unbound term with the slug, or create a new one.

        A term bound to another vendor id is never rebound: the new id moves
        on to a suffixed slug (acc-01, acc-01-2, acc-01-3, ...).
        """
        for attempt in range(1, MAX_SLUG_ATTEMPTS + 1):
            candidate = slug if attempt == 1 else f"{slug}-{attempt}"
            existing = await self.repo.find_by_slug(taxonomy, candidate)

            if existing is None:
                try:
                    term = await self.repo.create(taxonomy, name, candidate, external_id, parent_id)
                    logger.info(f"Created {taxonomy} term '{name}' for external id {external_id}")
                    return term
                except TermExistsError:
                    # Another writer created the slug between lookup and insert
                    existing = await self.repo.find_by_slug(taxonomy, candidate)
                    if existing is None:
                        raise
                    logger.debug(f"Term {candidate} already existed in {taxonomy}")

            if existing.external_id == external_id:
                return existing
            if existing.external_id is None:
                try:
                    return await self.repo.attach_external_id(existing, external_id)
                except TermExistsError:
                    bound = await self.repo.find_by_external_id(taxonomy, external_id)
                    if bound is not None:
                        return bound
                    logger.debug(f"Term {candidate} in {taxonomy} was bound concurrently")
                    continue
            logger.debug(
                f"Slug {candidate} in {taxonomy} belongs to external id {existing.external_id}, "
                f"trying another for {external_id}"
            )

        raise TermExistsError(taxonomy, slug)

    async def resolve_model(self, model_id: str) -> Optional[LocalTerm]:
        return await self.resolve(MODEL_TAXONOMY, model_id, KNOWN_MODEL_NAMES)

    async def resolve_category(
        self,
        reference: str,
        name: Optional[str] = None,
        parent_id: Optional[int] = None,
    ) -> Optional[LocalTerm]:
        return await self.resolve(CATEGORY_TAXONOMY, reference, name=name, parent_id=parent_id)

    async def resolve_many(
        self,
        taxonomy: str,
        external_ids: Iterable[str],
        known_names: Optional[Mapping[str, str]] = None,
    ) -> list[LocalTerm]:
        """Resolve several ids, returning each local term once, in input order."""
        terms: list[LocalTerm] = []
        seen: set[int] = set()
        for external_id in external_ids:
            term = await self.resolve(taxonomy, external_id, known_names)
            if term is not None and term.id not in seen:
                seen.add(term.id)
                terms.append(term)
        return terms
