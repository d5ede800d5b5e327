import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session, selectinload

from app.core import cache
from app.core.config import settings
from app.models.product import Product
from app.models.variant import ProductVariant
from app.models.variant_option import VariantOption
from app.services.products import resolve_product

logger = logging.getLogger(__name__)


def extract_attributes(variants: Sequence[ProductVariant]) -> Tuple[List[Dict[str, Any]], Optional[int]]:
    """
    Collect the distinct attributes and values used by ``variants``.

    Attributes and their values keep the order in which they are first seen.
    Returns the attribute list and the id of the primary attribute, if any.
    """
    attributes: Dict[int, Dict[str, Any]] = {}
    seen_values = set()
    primary_id = None

    for variant in variants:
        for option in variant.options:
            attribute = option.attribute
            entry = attributes.get(attribute.id)
            if entry is None:
                entry = attributes[attribute.id] = {
                    "id": attribute.id,
                    "name": attribute.name,
                    "is_primary": bool(attribute.is_primary),
                    "display_order": attribute.display_order,
                    "values": [],
                }
                if attribute.is_primary and primary_id is None:
                    primary_id = attribute.id
            value = option.attribute_value
            if (attribute.id, value.id) in seen_values:
                continue
            seen_values.add((attribute.id, value.id))
            entry["values"].append({
                "id": value.id,
                "value": value.value,
                "image_url": value.image_url,
            })

    return list(attributes.values()), primary_id


def match_variant(variants: Sequence[ProductVariant], selection: Dict[int, int]) -> Optional[ProductVariant]:
    """Return the variant whose every option agrees with ``selection``."""
    for variant in variants:
        if not variant.options:
            continue
        if all(selection.get(opt.attribute_id) == opt.attribute_value_id for opt in variant.options):
            return variant
    return None


def display_image(
    attributes: Sequence[Dict[str, Any]],
    primary_attribute_id: Optional[int],
    selection: Dict[int, int],
    fallback: Optional[str] = None,
    images: Optional[Dict[int, str]] = None,
) -> Optional[str]:
    """Image for the selected primary value, else ``fallback``."""
    if primary_attribute_id is None or primary_attribute_id not in selection:
        return fallback
    value_id = selection[primary_attribute_id]
    if images and images.get(value_id):
        return images[value_id]
    for attribute in attributes:
        if attribute["id"] != primary_attribute_id:
            continue
        for value in attribute["values"]:
            if value["id"] == value_id and value.get("image_url"):
                return value["image_url"]
    return fallback


def active_variants(db: Session, product: Product) -> List[ProductVariant]:
    return (
        db.query(ProductVariant)
        .options(
            selectinload(ProductVariant.options).selectinload(VariantOption.attribute),
            selectinload(ProductVariant.options).selectinload(VariantOption.attribute_value),
        )
        .filter(ProductVariant.product_id == product.id, ProductVariant.is_active.is_(True))
        .order_by(ProductVariant.id)
        .all()
    )


def _variant_payload(variant: ProductVariant) -> Dict[str, Any]:
    return {
        "id": variant.id,
        "combination_key": variant.combination_key,
        "price": variant.price,
        "compare_at_price": variant.compare_at_price,
        "sku": variant.sku,
        "stock_quantity": variant.stock_quantity,
        "shopify_variant_id": variant.shopify_variant_id,
        "image_url": variant.image_url,
        "options": {str(opt.attribute_id): opt.attribute_value_id for opt in variant.options},
    }


def storefront_payload(db: Session, platform_product_id: str) -> Dict[str, Any]:
    """Everything the storefront widget needs to render a product's options."""
    product = resolve_product(db, platform_product_id=platform_product_id)
    cache_key = cache.storefront_key(product.shopify_product_id)
    cached = cache.get_cache(cache_key)
    if cached:
        return cached

    variants = active_variants(db, product)
    attributes, primary_id = extract_attributes(variants)
    payload = {
        "product": {
            "id": product.id,
            "shopify_product_id": product.shopify_product_id,
            "title": product.title,
            "handle": product.shopify_handle,
            "image_url": product.image_url,
            "is_ring": bool(product.is_ring),
            "ring_sizes": product.ring_sizes,
        },
        "attributes": attributes,
        "primary_attribute_id": primary_id,
        "variants": [_variant_payload(v) for v in variants],
        "images": {str(img.attribute_value_id): img.image_url for img in product.images},
        "recommendations": [
            {
                "id": rec.recommended_product.id,
                "shopify_product_id": rec.recommended_product.shopify_product_id,
                "handle": rec.recommended_product.shopify_handle,
                "title": rec.recommended_product.title,
                "image_url": rec.recommended_product.image_url,
            }
            for rec in product.recommendations
        ],
    }
    cache.set_cache(cache_key, payload, expire=settings.CACHE_TTL)
    return payload


def match_selection(db: Session, platform_product_id: str, selection: Dict[int, int]) -> Dict[str, Any]:
    product = resolve_product(db, platform_product_id=platform_product_id)
    variants = active_variants(db, product)
    attributes, primary_id = extract_attributes(variants)
    images = {img.attribute_value_id: img.image_url for img in product.images}
    variant = match_variant(variants, selection)
    return {
        "matched": variant is not None,
        "variant": _variant_payload(variant) if variant else None,
        "in_stock": bool(variant and variant.stock_quantity > 0),
        "image_url": display_image(attributes, primary_id, selection, product.image_url, images),
    }
