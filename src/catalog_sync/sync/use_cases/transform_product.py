"""Transform Product Use Case - Turns a CatalogItem into store products.

Each catalog item becomes one or more NormalizedProduct:

- items without variants -> one simple product
- items with variants, variable mode -> one variable product with variations
- items with variants, simple mode -> one simple product per variant,
  grouped by the parent reference

Text fields are translated, prices converted, categories and models
resolved to local terms. Sync-field settings decide which fields are
written at all and which are only written when the product is created.
"""

import logging
from typing import Any, Optional

from ...api.exceptions import ItemProcessingError
from ...config import EffectiveSettings, SyncField, VariationMode
from ...pricing.converter import FixedExchangeRateProvider, PriceConverter
from ...translation.translator import Translator
from ..domain.entities import CatalogItem, CatalogVariant, NormalizedProduct, ProductAttribute
from .resolve_terms import CATEGORY_TAXONOMY, MODEL_TAXONOMY, KNOWN_MODEL_NAMES, TermResolver

logger = logging.getLogger(__name__)

BRAND_ALIASES = frozenset({"marca", "brand"})
DEFAULT_VARIANT_STOCK = 100

META_ID = "_ewheel_id"
META_REFERENCE = "_ewheel_reference"
META_PRODUCT_GROUP = "_ewheel_product_group"


class ProductTransformer:
    """Builds NormalizedProduct records from catalog items.

    Example:
        transformer = ProductTransformer(translator, TermResolver(term_repo))
        products = await transformer.transform(item, settings)
    """

    def __init__(self, translator: Translator, term_resolver: TermResolver):
        self.translator = translator
        self.terms = term_resolver
        self._converters: dict[tuple, PriceConverter] = {}

    def converter_for(self, settings: EffectiveSettings) -> PriceConverter:
        """Price converter for the settings' currency pair, rate and markup."""
        key = (
            settings.source_currency,
            settings.target_currency,
            settings.exchange_rate,
            settings.markup_percent,
            settings.rounding_mode,
        )
        if key not in self._converters:
            self._converters[key] = PriceConverter(
                FixedExchangeRateProvider(
                    {f"{settings.source_currency}_{settings.target_currency}": settings.exchange_rate}
                ),
                source_currency=settings.source_currency,
                target_currency=settings.target_currency,
                markup_percent=settings.markup_percent,
                rounding_mode=settings.rounding_mode,
            )
        return self._converters[key]

    async def transform(self, item: CatalogItem, settings: EffectiveSettings) -> list[NormalizedProduct]:
        """Transform one catalog item.

        Raises:
            ItemProcessingError: If the item has no usable reference
            ProviderError: If translation fails
        """
        if not item.reference:
            raise ItemProcessingError("Catalog item has no reference", reference=item.id)

        shared = await self._shared_fields(item, settings)

        if item.has_variants and settings.variation_mode == VariationMode.SIMPLE:
            return [
                await self._variant_product(item, variant, index, shared, settings)
                for index, variant in enumerate(item.variants)
            ]

        product = NormalizedProduct(
            reference=item.reference,
            product_type="variable" if item.has_variants else "simple",
            meta=self._meta(item),
        )
        product.fields["status"] = self._status(item)
        self._place(product, SyncField.NAME, "name", shared["name"], settings)
        self._place(product, SyncField.DESCRIPTION, "description", shared["description"], settings)
        self._place(product, SyncField.PRICE, "regular_price", self._price(item.price, settings), settings)
        self._place(product, SyncField.IMAGES, "images", self._images(item.images), settings)
        self._place(product, SyncField.CATEGORIES, "categories", shared["categories"], settings)
        self._place(product, SyncField.MODELS, "models", shared["models"], settings)
        self._place(product, SyncField.ATTRIBUTES, "attributes", shared["attributes"], settings)

        if item.has_variants:
            product.fields["variations"] = [
                await self._variation(variant, settings) for variant in item.variants
            ]

        return [product]

    async def _shared_fields(self, item: CatalogItem, settings: EffectiveSettings) -> dict[str, Any]:
        target = settings.target_language
        shared: dict[str, Any] = {
            "name": None,
            "description": None,
            "categories": None,
            "models": None,
            "attributes": None,
        }

        if settings.field_enabled(SyncField.NAME) or settings.field_enabled(SyncField.DESCRIPTION):
            shared["name"] = await self.translator.translate_multilingual(item.name, target)

        if settings.field_enabled(SyncField.DESCRIPTION):
            description = await self.translator.translate_multilingual(item.description, target)
            shared["description"] = description or shared["name"]

        if settings.field_enabled(SyncField.CATEGORIES):
            terms = await self.terms.resolve_many(CATEGORY_TAXONOMY, item.category_refs)
            shared["categories"] = [term.id for term in terms]

        if settings.field_enabled(SyncField.MODELS):
            terms = await self.terms.resolve_many(MODEL_TAXONOMY, item.model_ids, KNOWN_MODEL_NAMES)
            shared["models"] = [term.id for term in terms]

        if settings.field_enabled(SyncField.ATTRIBUTES):
            shared["attributes"] = await self._attributes(item.attributes, settings)

        return shared

    async def _variant_product(
        self,
        item: CatalogItem,
        variant: CatalogVariant,
        index: int,
        shared: dict[str, Any],
        settings: EffectiveSettings,
    ) -> NormalizedProduct:
        reference = variant.reference or f"{item.reference}-{index + 1}"
        suffix = ", ".join(attr.value for attr in variant.attributes if attr.value)

        name = shared["name"]
        if name and suffix:
            name = f"{name} - {suffix}"

        meta = self._meta(item)
        meta[META_REFERENCE] = reference
        meta[META_PRODUCT_GROUP] = item.reference
        if variant.id:
            meta[META_ID] = variant.id

        product = NormalizedProduct(reference=reference, product_type="simple", meta=meta)
        product.fields["status"] = self._status(item)
        product.fields["stock_quantity"] = self._stock(variant)

        attributes = shared["attributes"]
        if attributes is not None:
            attributes = attributes + await self._attributes(variant.attributes, settings)

        self._place(product, SyncField.NAME, "name", name, settings)
        self._place(product, SyncField.DESCRIPTION, "description", shared["description"], settings)
        self._place(product, SyncField.PRICE, "regular_price", self._price(variant.net_price, settings), settings)
        self._place(product, SyncField.IMAGES, "images", self._images(variant.images or item.images), settings)
        self._place(product, SyncField.CATEGORIES, "categories", shared["categories"], settings)
        self._place(product, SyncField.MODELS, "models", shared["models"], settings)
        self._place(product, SyncField.ATTRIBUTES, "attributes", attributes, settings)
        return product

    async def _variation(self, variant: CatalogVariant, settings: EffectiveSettings) -> dict[str, Any]:
        variation: dict[str, Any] = {
            "sku": variant.reference,
            "regular_price": self._price(variant.net_price, settings),
            "stock_quantity": self._stock(variant),
            "attributes": [
                {"name": attr["name"], "option": attr["value"]}
                for attr in await self._attributes(variant.attributes, settings)
            ],
        }
        if variant.images:
            variation["image"] = variant.images[0]
        return variation

    async def _attributes(
        self,
        attributes: list[ProductAttribute],
        settings: EffectiveSettings,
    ) -> list[dict[str, str]]:
        """Translate attribute values; brand names are kept as they are."""
        attributes = [attr for attr in attributes if attr.alias and attr.value]
        to_translate = [attr.value for attr in attributes if attr.alias.lower() not in BRAND_ALIASES]
        translated_values: list[str] = []
        if to_translate:
            translated_values = await self.translator.translate_batch(
                to_translate,
                settings.source_language,
                settings.target_language,
            )
        translated = iter(translated_values)

        result = []
        for attr in attributes:
            if attr.alias.lower() in BRAND_ALIASES:
                value = attr.value
            else:
                value = next(translated) or attr.value
            result.append({"name": attr.alias, "value": value})
        return result

    def _price(self, amount: float, settings: EffectiveSettings) -> str:
        if not amount or amount <= 0:
            return "0"
        converter = self.converter_for(settings)
        return converter.format_price(converter.convert(amount))

    @staticmethod
    def _images(images: list[str]) -> list[dict[str, Any]]:
        return [{"src": src, "position": position} for position, src in enumerate(images) if src]

    @staticmethod
    def _status(item: CatalogItem) -> str:
        return "publish" if item.active else "draft"

    @staticmethod
    def _stock(variant: CatalogVariant) -> int:
        return DEFAULT_VARIANT_STOCK if variant.stock is None else variant.stock

    @staticmethod
    def _meta(item: CatalogItem) -> dict[str, Any]:
        meta: dict[str, Any] = {META_REFERENCE: item.reference}
        if item.id:
            meta[META_ID] = item.id
        return meta

    @staticmethod
    def _place(
        product: NormalizedProduct,
        sync_field: SyncField,
        key: str,
        value: Optional[Any],
        settings: EffectiveSettings,
    ) -> None:
        if value is None or not settings.field_enabled(sync_field):
            return
        if settings.is_protected(sync_field):
            product.protected_fields[key] = value
        else:
            product.fields[key] = value
