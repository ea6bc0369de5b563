"""Tests for the ProductTransformer use case."""

import pytest

from src.catalog_sync.api.exceptions import ItemProcessingError, ProviderError
from src.catalog_sync.config import (
    GlobalSettings,
    ProfileSettings,
    SettingsRegistry,
    SyncField,
    VariationMode,
    parse_field_flags,
)
from src.catalog_sync.pricing.converter import RoundingMode
from src.catalog_sync.sync.adapters.memory import InMemoryTermRepository, InMemoryTranslationCache
from src.catalog_sync.sync.domain.entities import CatalogItem, CatalogVariant, ProductAttribute
from src.catalog_sync.sync.domain.ports import ITranslationProvider
from src.catalog_sync.sync.use_cases.resolve_terms import TermResolver
from src.catalog_sync.sync.use_cases.transform_product import DEFAULT_VARIANT_STOCK, ProductTransformer
from src.catalog_sync.translation.translator import Translator


class FakeProvider(ITranslationProvider):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[list[str]] = []

    @property
    def name(self) -> str:
        return "fake"

    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        return (await self.translate_batch([text], source_lang, target_lang))[0]

    async def translate_batch(self, texts: list[str], source_lang: str, target_lang: str) -> list[str]:
        if self.fail:
            raise ProviderError("quota exceeded", provider="fake")
        self.calls.append(list(texts))
        return [f"{target_lang}:{text}" for text in texts]

    async def close(self) -> None:
        pass


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def terms():
    return InMemoryTermRepository()


@pytest.fixture
def transformer(provider, terms):
    return ProductTransformer(Translator(provider, InMemoryTranslationCache()), TermResolver(terms))


def settings_for(**profile_values):
    registry = SettingsRegistry(GlobalSettings(), {"p": ProfileSettings(scope="p", **profile_values)})
    return registry.for_scope("p")


@pytest.fixture
def item():
    return CatalogItem(
        reference="BRK-001",
        id="4711",
        name={"es": "Pastillas", "en": "Brake pads"},
        description={"en": "Organic compound"},
        price=10.0,
        category_refs=["C-1"],
        model_ids=["110"],
        images=["https://cdn.test/1.jpg", "https://cdn.test/2.jpg"],
        attributes=[
            ProductAttribute(alias="marca", value="Xiaomi"),
            ProductAttribute(alias="color", value="Black"),
        ],
    )


@pytest.fixture
def variant_item():
    return CatalogItem(
        reference="TYRE",
        name={"en": "Tyre"},
        description={"en": "Pneumatic tyre"},
        price=0.0,
        images=["https://cdn.test/tyre.jpg"],
        variants=[
            CatalogVariant(
                id="v1",
                reference="TYRE-8",
                net_price=10.0,
                attributes=[ProductAttribute(alias="size", value="8.5")],
                images=["https://cdn.test/8.jpg"],
                stock=7,
            ),
            CatalogVariant(
                net_price=20.0,
                attributes=[ProductAttribute(alias="size", value="10")],
            ),
        ],
    )


class TestSimpleProducts:
    async def test_full_transform(self, transformer, item, terms):
        [product] = await transformer.transform(item, settings_for())

        assert product.reference == "BRK-001"
        assert product.product_type == "simple"
        assert product.fields["status"] == "publish"
        assert product.fields["name"] == "ro:Brake pads"
        assert product.fields["description"] == "ro:Organic compound"
        assert product.fields["regular_price"] == "59.64"
        assert product.fields["images"] == [
            {"src": "https://cdn.test/1.jpg", "position": 0},
            {"src": "https://cdn.test/2.jpg", "position": 1},
        ]
        assert product.fields["attributes"] == [
            {"name": "marca", "value": "Xiaomi"},
            {"name": "color", "value": "ro:Black"},
        ]
        assert product.meta == {"_ewheel_reference": "BRK-001", "_ewheel_id": "4711"}
        assert product.protected_fields == {}

        category, model = terms.terms
        assert product.fields["categories"] == [category.id]
        assert product.fields["models"] == [model.id]
        assert model.name == "Xiaomi Mi 4 Lite"

    async def test_target_language_text_is_used_as_is(self, transformer, item, provider):
        item.name = {"en": "Brake pads", "ro": "Plăcuțe de frână"}

        [product] = await transformer.transform(item, settings_for())

        assert product.fields["name"] == "Plăcuțe de frână"
        assert ["Brake pads"] not in provider.calls

    async def test_missing_description_falls_back_to_name(self, transformer, item):
        item.description = {}

        [product] = await transformer.transform(item, settings_for())

        assert product.fields["description"] == "ro:Brake pads"

    async def test_inactive_is_draft(self, transformer, item):
        item.active = False

        [product] = await transformer.transform(item, settings_for())

        assert product.fields["status"] == "draft"

    async def test_zero_price(self, transformer, item):
        item.price = 0

        [product] = await transformer.transform(item, settings_for())

        assert product.fields["regular_price"] == "0"

    async def test_profile_pricing(self, transformer, item):
        settings = settings_for(exchange_rate=5.0, markup_percent=0, rounding_mode=RoundingMode.CEIL)
        item.price = 10.1

        [product] = await transformer.transform(item, settings)

        assert product.fields["regular_price"] == "51.00"

    async def test_disabled_fields_are_not_written(self, transformer, item, provider):
        settings = settings_for(sync_fields=parse_field_flags(["price"], True))

        [product] = await transformer.transform(item, settings)

        assert set(product.fields) == {"status", "regular_price"}
        assert provider.calls == []

    async def test_protected_fields_are_separated(self, transformer, item):
        settings = settings_for(protected_fields=parse_field_flags(["description", "images"], False))

        [product] = await transformer.transform(item, settings)

        assert "description" not in product.fields
        assert set(product.protected_fields) == {"description", "images"}
        assert settings.is_protected(SyncField.DESCRIPTION)

    async def test_missing_reference(self, transformer, item):
        item.reference = ""

        with pytest.raises(ItemProcessingError):
            await transformer.transform(item, settings_for())

    async def test_provider_failure_propagates(self, terms, item):
        transformer = ProductTransformer(
            Translator(FakeProvider(fail=True), InMemoryTranslationCache()),
            TermResolver(terms),
        )

        with pytest.raises(ProviderError):
            await transformer.transform(item, settings_for())


class TestVariants:
    async def test_variable_mode(self, transformer, variant_item):
        [product] = await transformer.transform(variant_item, settings_for())

        assert product.product_type == "variable"
        assert product.reference == "TYRE"
        assert product.fields["regular_price"] == "0"
        first, second = product.fields["variations"]
        assert first == {
            "sku": "TYRE-8",
            "regular_price": "59.64",
            "stock_quantity": 7,
            "attributes": [{"name": "size", "option": "ro:8.5"}],
            "image": "https://cdn.test/8.jpg",
        }
        assert second["stock_quantity"] == DEFAULT_VARIANT_STOCK
        assert second["regular_price"] == "119.28"
        assert "image" not in second

    async def test_simple_mode_splits_variants(self, transformer, variant_item):
        settings = settings_for(variation_mode=VariationMode.SIMPLE)

        first, second = await transformer.transform(variant_item, settings)

        assert first.reference == "TYRE-8"
        assert first.product_type == "simple"
        assert first.fields["name"] == "ro:Tyre - 8.5"
        assert first.fields["stock_quantity"] == 7
        assert first.fields["images"] == [{"src": "https://cdn.test/8.jpg", "position": 0}]
        assert first.fields["attributes"] == [{"name": "size", "value": "ro:8.5"}]
        assert first.meta["_ewheel_product_group"] == "TYRE"
        assert first.meta["_ewheel_reference"] == "TYRE-8"
        assert first.meta["_ewheel_id"] == "v1"

        assert second.reference == "TYRE-2"
        assert second.fields["images"] == [{"src": "https://cdn.test/tyre.jpg", "position": 0}]
        assert second.fields["stock_quantity"] == DEFAULT_VARIANT_STOCK

    async def test_translations_are_cached_across_items(self, transformer, variant_item, provider):
        await transformer.transform(variant_item, settings_for())
        calls = len(provider.calls)

        await transformer.transform(variant_item, settings_for())

        assert len(provider.calls) == calls
