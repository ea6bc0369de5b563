"""Field mapper adapter for transforming vendor records into domain entities.

The vendor API is inconsistent about key casing ("Reference" vs
"reference") and about shapes (attributes as a map or as a list of
alias/value pairs, images as URLs or objects). This mapper absorbs all of
that so the rest of the sync only sees CatalogItem and CategoryRecord.
"""

import json
from typing import Any, Optional

from ...translation.translator import normalize_multilingual, pick_source
from ..domain.entities import CatalogItem, CatalogVariant, CategoryRecord, ProductAttribute

# Attribute holding a JSON map of compatible scooter model ids
MODEL_ATTRIBUTE_ALIASES = frozenset({"modelos-compatibles", "modelos_compatibles", "compatible-models"})


def lower_keys(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    return {str(key).lower(): value for key, value in raw.items()}


def to_float(value: Any) -> float:
    if value in (None, ""):
        return 0.0
    try:
        return float(str(value).replace(",", "."))
    except ValueError:
        return 0.0


def to_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def clean_attribute_value(value: Any) -> Optional[str]:
    """Reduce a vendor attribute value to display text, or None to skip it.

    Handles selection objects ({"value": ...}), multilingual maps, lists
    and JSON-encoded objects (file links and id/name maps).
    """
    if isinstance(value, dict):
        lowered = lower_keys(value)
        if "value" in lowered:
            value = lowered["value"]
        else:
            source = pick_source(normalize_multilingual(value))
            value = source[1] if source else ""

    if isinstance(value, (list, tuple)):
        value = " | ".join(str(v) for v in value if v not in (None, ""))

    text = str(value if value is not None else "").strip()

    if text.startswith("{") or text.startswith("["):
        try:
            decoded = json.loads(text)
        except ValueError:
            return text
        if isinstance(decoded, dict):
            if "FILE" in decoded:
                return str(decoded["FILE"])
            parts = [str(v) for v in decoded.values() if isinstance(v, (str, int, float))]
        elif isinstance(decoded, list):
            parts = [str(v) for v in decoded if isinstance(v, (str, int, float))]
        else:
            parts = []
        return " | ".join(parts) if parts else None

    return text or None


class CatalogFieldMapper:
    """Maps vendor catalog API records to domain entities.

    This class handles:
    - Case-insensitive key lookup
    - Container products whose data lives on the first variant
    - Attribute shapes (map or alias/value list) and value cleanup
    - Compatible-model ids carried in a JSON attribute
    """

    def map_item(self, raw: dict[str, Any]) -> CatalogItem:
        """Transform a vendor product record into a CatalogItem.

        Args:
            raw: Raw product dictionary from the vendor API

        Returns:
            CatalogItem with normalized fields
        """
        p = lower_keys(raw)
        variants_raw = [v for v in (p.get("variants") or []) if isinstance(v, dict)]

        # Container products carry their data on the first variant
        if not p.get("reference") and not p.get("name") and variants_raw:
            first = lower_keys(variants_raw[0])
            for key in ("name", "description", "images", "attributes", "reference"):
                if not p.get(key):
                    p[key] = first.get(key)

        attributes, model_ids = self.map_attributes(p.get("attributes"))
        explicit_models = p.get("models") or []
        if isinstance(explicit_models, list):
            model_ids = [str(m) for m in explicit_models if m not in (None, "")] + model_ids

        return CatalogItem(
            reference=str(p.get("reference") or "").strip(),
            id=str(p["id"]) if p.get("id") not in (None, "") else None,
            name=p.get("name") or {},
            description=p.get("description") or {},
            price=to_float(p.get("rrp", p.get("price"))),
            currency=p.get("currency"),
            active=to_bool(p.get("active", True)),
            category_refs=self.map_references(p.get("categories")),
            model_ids=list(dict.fromkeys(model_ids)),
            images=self.map_images(p.get("images")),
            attributes=attributes,
            variants=[self.map_variant(v) for v in variants_raw],
            raw=raw,
        )

    def map_variant(self, raw: dict[str, Any]) -> CatalogVariant:
        v = lower_keys(raw)
        attributes, _ = self.map_attributes(v.get("attributes"))
        return CatalogVariant(
            id=str(v["id"]) if v.get("id") not in (None, "") else None,
            reference=str(v.get("reference") or "").strip(),
            net_price=to_float(v.get("net")),
            attributes=attributes,
            images=self.map_images(v.get("images")),
            stock=to_int(v.get("stock")),
        )

    def map_category(self, raw: dict[str, Any]) -> CategoryRecord:
        c = lower_keys(raw)
        reference = str(c.get("reference") or "").strip()
        parent = c.get("parentreference") or c.get("parent_reference")
        return CategoryRecord(
            reference=reference,
            name=c.get("name") or reference,
            parent_reference=str(parent) if parent else None,
            raw=raw,
        )

    def map_attributes(self, raw: Any) -> tuple[list[ProductAttribute], list[str]]:
        """Normalize attributes; split out compatible-model ids.

        Returns:
            (attributes, model_ids)
        """
        pairs: list[tuple[str, Any]] = []
        if isinstance(raw, dict):
            pairs = [(str(key), value) for key, value in raw.items()]
        elif isinstance(raw, list):
            for entry in raw:
                e = lower_keys(entry)
                if e.get("alias"):
                    pairs.append((str(e["alias"]), e.get("value")))

        attributes: list[ProductAttribute] = []
        model_ids: list[str] = []
        for alias, value in pairs:
            if alias.lower() in MODEL_ATTRIBUTE_ALIASES:
                model_ids.extend(self._model_ids(value))
                continue
            cleaned = clean_attribute_value(value)
            if cleaned is not None:
                attributes.append(ProductAttribute(alias=alias, value=cleaned))
        return attributes, model_ids

    @staticmethod
    def _model_ids(value: Any) -> list[str]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, dict):
            return [str(key) for key in value]
        if isinstance(value, list):
            return [str(v) for v in value if v not in (None, "")]
        return []

    @staticmethod
    def map_images(raw: Any) -> list[str]:
        images = []
        for entry in raw or []:
            url = lower_keys(entry).get("url") if isinstance(entry, dict) else entry
            if url:
                images.append(str(url))
        return images

    @staticmethod
    def map_references(raw: Any) -> list[str]:
        refs = []
        for entry in raw or []:
            ref = lower_keys(entry).get("reference") if isinstance(entry, dict) else entry
            if ref not in (None, ""):
                refs.append(str(ref))
        return refs
