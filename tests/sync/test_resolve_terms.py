"""Tests for the TermResolver use case."""

from typing import Optional

import pytest

from src.catalog_sync.sync.adapters.memory import InMemoryTermRepository
from src.catalog_sync.sync.domain.entities import LocalTerm
from src.catalog_sync.sync.domain.ports import TermExistsError
from src.catalog_sync.sync.use_cases.resolve_terms import (
    CATEGORY_TAXONOMY,
    MODEL_TAXONOMY,
    TermResolver,
    slugify,
)


class CountingTermRepository(InMemoryTermRepository):
    """Counts lookups so memoization can be observed."""

    def __init__(self):
        super().__init__()
        self.lookups = 0

    async def find_by_external_id(self, taxonomy: str, external_id: str) -> Optional[LocalTerm]:
        self.lookups += 1
        return await super().find_by_external_id(taxonomy, external_id)


class RacingTermRepository(InMemoryTermRepository):
    """Another writer takes the slug between lookup and insert."""

    async def create(self, taxonomy, name, slug, external_id=None, parent_id=None):
        await super().create(taxonomy, "Created elsewhere", slug)
        raise TermExistsError(taxonomy, slug)


class TestSlugify:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("110", "110"),
            ("Dualtron Mini!", "dualtron-mini"),
            ("  Brake / Pads  ", "brake-pads"),
            ("C_12", "c-12"),
        ],
    )
    def test_slugify(self, value, expected):
        assert slugify(value) == expected


class TestTermResolver:
    @pytest.fixture
    def repo(self):
        return CountingTermRepository()

    @pytest.fixture
    def resolver(self, repo):
        return TermResolver(repo)

    async def test_creates_model_with_known_name(self, resolver, repo):
        term = await resolver.resolve_model("110")

        assert term.name == "Xiaomi Mi 4 Lite"
        assert term.taxonomy == MODEL_TAXONOMY
        assert term.external_id == "110"
        assert len(repo.terms) == 1

    async def test_unknown_model_uses_its_id(self, resolver):
        term = await resolver.resolve_model("99999")

        assert term.name == "99999"

    async def test_memoizes_per_instance(self, resolver, repo):
        first = await resolver.resolve_model("110")
        second = await resolver.resolve_model("110")

        assert first.id == second.id
        assert repo.lookups == 1

        resolver.clear_cache()
        await resolver.resolve_model("110")
        assert repo.lookups == 2

    async def test_finds_renamed_term_by_external_id(self, repo):
        created = await TermResolver(repo).resolve_model("110")
        repo.terms[0].name = "Mi 4 Lite (renamed)"

        found = await TermResolver(repo).resolve_model("110")

        assert found.id == created.id
        assert found.name == "Mi 4 Lite (renamed)"
        assert len(repo.terms) == 1

    async def test_attaches_external_id_to_matching_slug(self, resolver, repo):
        existing = await repo.create(CATEGORY_TAXONOMY, "Brakes", "c-1")

        term = await resolver.resolve_category("C-1")

        assert term.id == existing.id
        assert term.external_id == "C-1"
        assert len(repo.terms) == 1

    async def test_category_with_name_and_parent(self, resolver):
        parent = await resolver.resolve_category("C-1", name="Frâne")
        child = await resolver.resolve_category("C-2", name="Plăcuțe", parent_id=parent.id)

        assert child.name == "Plăcuțe"
        assert child.parent_id == parent.id

    async def test_empty_id(self, resolver, repo):
        assert await resolver.resolve_model("") is None
        assert await resolver.resolve_model(None) is None
        assert repo.lookups == 0

    async def test_resolve_many_dedupes_in_order(self, resolver):
        terms = await resolver.resolve_many(MODEL_TAXONOMY, ["122", "110", "122", ""])

        assert [t.external_id for t in terms] == ["122", "110"]

    async def test_concurrent_create_reuses_existing_term(self):
        repo = RacingTermRepository()

        term = await TermResolver(repo).resolve_model("110")

        assert term.name == "Created elsewhere"
        assert term.external_id == "110"
        assert len(repo.terms) == 1

    async def test_bound_slug_is_not_rebound(self, repo):
        first = await TermResolver(repo).resolve_category("ACC_01")

        second = await TermResolver(repo).resolve_category("acc-01")

        assert second.id != first.id
        assert second.slug == "acc-01-2"
        assert second.external_id == "acc-01"
        kept = await repo.find_by_external_id(CATEGORY_TAXONOMY, "ACC_01")
        assert kept.id == first.id
        assert kept.slug == "acc-01"

    async def test_suffixed_slug_is_found_again(self, repo):
        await TermResolver(repo).resolve_category("ACC_01")
        second = await TermResolver(repo).resolve_category("acc-01")

        again = await TermResolver(repo).resolve_category("acc-01")

        assert again.id == second.id
        assert len(repo.terms) == 2

    async def test_attach_refuses_bound_term(self, repo):
        term = await repo.create(MODEL_TAXONOMY, "Mi 4", "110", external_id="110")

        with pytest.raises(TermExistsError):
            await repo.attach_external_id(term, "other")
