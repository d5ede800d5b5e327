"""
Storefront cart resolution and draft-order checkout.

``resolve_for_cart`` is the only place where a materialization failure is
absorbed: the shopper gets a fallback payload that lets the theme add the
selection as line-item properties instead of a dedicated Shopify variant.
"""
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.errors import (
    InvalidInput,
    InvalidVariant,
    MaterializationFailed,
    OutOfStock,
    PlatformTransportError,
    PlatformUserError,
)
from app.core.shopify_client import numeric_id
from app.models.variant import ProductVariant
from app.services.materializer import ClientFactory, materialize
from app.services.reconciler import get_variant

logger = logging.getLogger(__name__)

CUSTOM_VARIANT_ATTRIBUTE = "_custom_variant_id"


class CartLine(BaseModel):
    id: int
    quantity: int
    properties: Dict[str, str]


class CartResolution(BaseModel):
    success: bool = True
    cartData: CartLine
    variant: Dict[str, Any]


class FallbackVariant(BaseModel):
    id: int
    sku: Optional[str] = None
    price: float
    title: str
    options: List[Dict[str, str]]


class FallbackPayload(BaseModel):
    success: bool = False
    fallback: bool = True
    variant: FallbackVariant
    message: str = "Using fallback mode with line item properties"
    error: str
    messages: List[str] = []


def _ordered_options(variant: ProductVariant):
    return sorted(variant.options, key=lambda o: (o.attribute.display_order, o.attribute_id))


def variant_properties(variant: ProductVariant) -> Dict[str, str]:
    properties = {opt.attribute.name: opt.attribute_value.value for opt in _ordered_options(variant)}
    if variant.sku:
        properties["_SKU"] = variant.sku
    return properties


def variant_title(variant: ProductVariant) -> str:
    labels = " / ".join(opt.attribute_value.value for opt in _ordered_options(variant)) or "Custom"
    return f"{variant.product.title} - {labels}"


def _check_stock(variant: ProductVariant, quantity: int) -> None:
    if quantity > (variant.stock_quantity or 0):
        logger.warning(
            "variant %s out of stock: requested %d, available %d",
            variant.id, quantity, variant.stock_quantity,
        )
        raise OutOfStock(variant.id, quantity, variant.stock_quantity or 0)


def resolve_for_cart(
    db: Session,
    variant_id: int,
    quantity: int,
    client_for: ClientFactory,
) -> Union[CartResolution, FallbackPayload]:
    if quantity < 1:
        raise InvalidInput("quantity must be at least 1", variant_id=variant_id)
    variant = get_variant(db, variant_id)
    product = variant.product
    if not product.shopify_product_id:
        raise InvalidVariant("Product is not linked to Shopify", variant_id=variant.id, product_id=product.id)
    _check_stock(variant, quantity)

    try:
        gid = materialize(db, variant.id, client_for)
    except (MaterializationFailed, PlatformTransportError) as e:
        logger.warning("variant %s: falling back to line item properties: %s", variant_id, e.message)
        variant = get_variant(db, variant_id)
        return FallbackPayload(
            variant=FallbackVariant(
                id=variant.id,
                sku=variant.sku,
                price=variant.price,
                title=variant.product.title,
                options=[
                    {"name": opt.attribute.name, "value": opt.attribute_value.value}
                    for opt in _ordered_options(variant)
                ],
            ),
            error=e.message,
            messages=getattr(e, "messages", []),
        )

    variant = get_variant(db, variant_id)
    return CartResolution(
        cartData=CartLine(id=numeric_id(gid), quantity=quantity, properties=variant_properties(variant)),
        variant={
            "id": gid,
            "sku": variant.sku,
            "price": variant.price,
            "stock": variant.stock_quantity,
        },
    )


def _custom_line(variant: ProductVariant, quantity: int) -> Dict[str, Any]:
    return {
        "title": variant_title(variant),
        "originalUnitPrice": f"{float(variant.price or 0):.2f}",
        "quantity": quantity,
        "taxable": True,
        "customAttributes": [{"key": CUSTOM_VARIANT_ATTRIBUTE, "value": str(variant.id)}],
    }


def create_checkout(
    db: Session,
    client_for: ClientFactory,
    items: Optional[List[Dict[str, Any]]] = None,
    cart_items: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Build one draft order from custom variant items or from Shopify cart lines.

    Lines tagged with ``_custom_variant_id`` are priced from the local variant;
    untagged cart lines keep the cart's price, which Shopify reports in cents.
    """
    if not items and not cart_items:
        raise InvalidInput("items or cart_items is required")

    line_items: List[Dict[str, Any]] = []
    shop: Optional[str] = None

    for item in items or []:
        quantity = int(item.get("quantity") or 1)
        variant = get_variant(db, int(item["variant_id"]))
        _check_stock(variant, quantity)
        shop = shop or variant.product.shop_domain
        line_items.append(_custom_line(variant, quantity))

    for cart_item in cart_items or []:
        quantity = int(cart_item.get("quantity") or 1)
        custom_id = (cart_item.get("properties") or {}).get(CUSTOM_VARIANT_ATTRIBUTE)
        if custom_id:
            variant = get_variant(db, int(custom_id))
            _check_stock(variant, quantity)
            shop = shop or variant.product.shop_domain
            line_items.append(_custom_line(variant, quantity))
        else:
            line_items.append({
                "title": cart_item.get("product_title") or cart_item.get("title") or "Item",
                "originalUnitPrice": f"{(cart_item.get('price') or 0) / 100:.2f}",
                "quantity": quantity,
                "taxable": True,
            })

    client = client_for(shop)
    draft_order = client.create_draft_order(line_items, note="Order created via Unlimited Options")
    if not draft_order.get("invoiceUrl"):
        raise PlatformUserError("Shopify returned no invoice URL", messages=[])
    logger.info("draft order %s created with %d lines", draft_order.get("name"), len(line_items))
    return {"success": True, "checkout_url": draft_order["invoiceUrl"], "draft_order": draft_order}
