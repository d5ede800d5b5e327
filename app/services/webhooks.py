import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import cache
from app.core.shopify_client import to_gid
from app.models.attribute import ProductAttribute
from app.models.attribute_value import ProductAttributeValue
from app.models.product import Product
from app.models.product_attribute import ProductAttributeLink
from app.models.recommendation import ProductRecommendation
from app.models.shop import ShopSession
from app.models.variant import ProductVariant
from app.models.variant_image import VariantImage
from app.models.variant_option import VariantOption
from app.models.webhook import AppEvent, GdprRequest, ProcessedWebhook

logger = logging.getLogger(__name__)

GDPR_TOPICS = {
    "customers/data_request": "customer_data_request",
    "customers/redact": "customer_redact",
    "shop/redact": "shop_redact",
}


def _claim_delivery(db: Session, delivery_id: str, topic: str, shop: Optional[str]) -> bool:
    """Record a delivery id; False when it was already processed."""
    try:
        with db.begin_nested():
            db.add(ProcessedWebhook(webhook_id=delivery_id, topic=topic, shop_domain=shop))
            db.flush()
    except IntegrityError:
        return False
    return True


def apply_order_stock(
    db: Session,
    order: Dict[str, Any],
    webhook_id: Optional[str] = None,
    shop: Optional[str] = None,
) -> Dict[str, Any]:
    """Decrement local stock for each ordered variant, at most once per delivery."""
    delivery_id = webhook_id
    if not delivery_id and order.get("id") is not None:
        delivery_id = f"orders/create:{order['id']}"
    if not delivery_id:
        logger.warning("order webhook without delivery or order id; applying without redelivery guard")
    elif not _claim_delivery(db, delivery_id, "orders/create", shop):
        db.rollback()
        logger.info("webhook %s already processed; skipping", delivery_id)
        return {"success": True, "duplicate": True}

    updated = []
    touched = set()
    for line_item in order.get("line_items") or []:
        if not line_item.get("variant_id"):
            continue
        gid = to_gid("ProductVariant", line_item["variant_id"])
        variant = db.query(ProductVariant).filter(ProductVariant.shopify_variant_id == gid).first()
        if not variant:
            logger.debug("order %s: no local variant for %s", order.get("id"), gid)
            continue
        quantity = int(line_item.get("quantity") or 0)
        variant.stock_quantity = max(0, (variant.stock_quantity or 0) - quantity)
        updated.append({"variant_id": variant.id, "stock_quantity": variant.stock_quantity})
        touched.add(variant.product.shopify_product_id)

    db.commit()
    for platform_id in touched:
        cache.invalidate_product(platform_id)
    logger.info("order %s: stock updated for %d variants", order.get("id"), len(updated))
    return {"success": True, "duplicate": False, "updated": updated}


def mark_uninstalled(db: Session, payload: Dict[str, Any], shop: Optional[str] = None) -> None:
    shop = shop or payload.get("domain") or payload.get("myshopify_domain")
    session = db.query(ShopSession).filter(ShopSession.shop == shop).first()
    if session:
        session.is_active = False
        session.uninstalled_at = datetime.utcnow()
    db.add(AppEvent(
        event_type="app_uninstalled",
        shop_domain=shop,
        shop_id=str(payload.get("id")) if payload.get("id") is not None else None,
        event_data=payload,
    ))
    db.commit()
    logger.info("app uninstalled from %s", shop)


def redact_shop(db: Session, shop: str) -> Dict[str, int]:
    """Delete every row this app holds for ``shop``."""
    product_ids = [pid for (pid,) in db.query(Product.id).filter(Product.shop_domain == shop)]
    attribute_ids = [aid for (aid,) in db.query(ProductAttribute.id).filter(ProductAttribute.shop_domain == shop)]
    counts = {"products": len(product_ids), "attributes": len(attribute_ids)}

    if product_ids:
        variant_ids = [vid for (vid,) in db.query(ProductVariant.id).filter(ProductVariant.product_id.in_(product_ids))]
        if variant_ids:
            db.query(VariantOption).filter(VariantOption.variant_id.in_(variant_ids)).delete(synchronize_session=False)
        counts["variants"] = (
            db.query(ProductVariant)
            .filter(ProductVariant.product_id.in_(product_ids))
            .delete(synchronize_session=False)
        )
        db.query(ProductRecommendation).filter(
            ProductRecommendation.product_id.in_(product_ids)
            | ProductRecommendation.recommended_product_id.in_(product_ids)
        ).delete(synchronize_session=False)
        db.query(VariantImage).filter(VariantImage.product_id.in_(product_ids)).delete(synchronize_session=False)
        db.query(ProductAttributeLink).filter(ProductAttributeLink.product_id.in_(product_ids)).delete(
            synchronize_session=False
        )
        db.query(Product).filter(Product.id.in_(product_ids)).delete(synchronize_session=False)

    if attribute_ids:
        db.query(ProductAttributeLink).filter(ProductAttributeLink.attribute_id.in_(attribute_ids)).delete(
            synchronize_session=False
        )
        db.query(ProductAttributeValue).filter(ProductAttributeValue.attribute_id.in_(attribute_ids)).delete(
            synchronize_session=False
        )
        db.query(ProductAttribute).filter(ProductAttribute.id.in_(attribute_ids)).delete(synchronize_session=False)

    db.query(ShopSession).filter(ShopSession.shop == shop).delete(synchronize_session=False)
    db.commit()
    cache.invalidate_product(None)
    logger.info("redacted shop %s: %s", shop, counts)
    return counts


def handle_gdpr(db: Session, topic: str, payload: Dict[str, Any], shop: Optional[str] = None) -> Dict[str, Any]:
    """
    Record a mandatory GDPR webhook and act on it.

    No customer personal data is stored, so customer requests are only
    audited. Failures are recorded on the request row rather than raised,
    since Shopify expects a 200 for every delivery.
    """
    shop = shop or payload.get("shop_domain")
    customer = payload.get("customer") or {}
    request = GdprRequest(
        request_type=GDPR_TOPICS[topic],
        shop_domain=shop,
        shop_id=str(payload.get("shop_id")) if payload.get("shop_id") is not None else None,
        customer_id=str(customer["id"]) if customer.get("id") is not None else None,
        customer_email=customer.get("email"),
        request_payload=payload,
    )
    db.add(request)
    db.commit()
    request_id = request.id

    result: Dict[str, Any] = {"success": True, "request_id": request_id}
    try:
        if topic == "shop/redact" and shop:
            result["deleted"] = redact_shop(db, shop)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("GDPR %s for %s failed", topic, shop)
        request = db.get(GdprRequest, request_id)
        request.status = "failed"
        request.error_message = str(e)
        db.commit()
        result.update(success=False, error=str(e))
        return result

    request = db.get(GdprRequest, request_id)
    request.status = "completed"
    request.completed_at = datetime.utcnow()
    db.commit()
    logger.info("GDPR %s processed for %s", topic, shop)
    return result
