"""
Lazy creation of Shopify variants for locally stored variants.

A variant is materialized at most once: the returned GID is written with a
conditional UPDATE so a concurrent caller that loses the race gets a
MaterializationFailed instead of silently overwriting the winner's id.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core import cache
from app.core.config import settings
from app.core.errors import (
    AppError,
    InvalidVariant,
    MaterializationFailed,
    NotFound,
    PlatformUserError,
)
from app.core.shopify_client import ShopifyClient
from app.models.product import Product
from app.models.variant import ProductVariant

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Optional[str]], ShopifyClient]


def option_labels(variant: ProductVariant) -> List[str]:
    """Option values ordered by their attribute's display order."""
    options = sorted(variant.options, key=lambda o: (o.attribute.display_order, o.attribute_id))
    return [option.attribute_value.value for option in options]


def _variant_request(variant: ProductVariant) -> Dict[str, Any]:
    return {
        "product_id": variant.product.shopify_product_id,
        "price": variant.price or 0,
        "sku": variant.sku,
        "inventory_quantity": variant.stock_quantity or 0,
        "options": option_labels(variant),
    }


def _create_remote(client: ShopifyClient, variant_id: int, request: Dict[str, Any]) -> str:
    try:
        created = client.create_variant(**request)
    except MaterializationFailed:
        raise
    except PlatformUserError as e:
        logger.warning("Shopify rejected variant %s: %s", variant_id, e.messages or e.message)
        raise MaterializationFailed(
            "Shopify rejected variant creation",
            messages=e.messages or [e.message],
            variant_id=variant_id,
        )
    return created["id"]


def _persist(db: Session, variant_id: int, gid: str) -> str:
    updated = (
        db.query(ProductVariant)
        .filter(ProductVariant.id == variant_id, ProductVariant.shopify_variant_id.is_(None))
        .update({ProductVariant.shopify_variant_id: gid}, synchronize_session=False)
    )
    db.commit()
    if not updated:
        logger.error("variant %s was materialized concurrently; orphaned Shopify variant %s", variant_id, gid)
        raise MaterializationFailed(
            "Variant was already materialized by another request",
            messages=[f"Duplicate Shopify variant {gid}"],
            variant_id=variant_id,
            duplicate_id=gid,
        )
    logger.info("variant %s materialized as %s", variant_id, gid)
    return gid


def materialize(db: Session, variant_id: int, client_for: ClientFactory) -> str:
    """Return the variant's Shopify GID, creating the Shopify variant on first use."""
    variant = db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
    if not variant:
        raise NotFound("Variant not found", variant_id=variant_id)
    product = variant.product
    if not product.shopify_product_id:
        raise InvalidVariant("Product is not linked to Shopify", variant_id=variant_id, product_id=product.id)
    if variant.shopify_variant_id:
        return variant.shopify_variant_id

    client = client_for(product.shop_domain)
    gid = _create_remote(client, variant.id, _variant_request(variant))
    _persist(db, variant.id, gid)
    cache.invalidate_product(product.shopify_product_id)
    return gid


def materialize_product(
    db: Session,
    product: Product,
    client_for: ClientFactory,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Materialize the product's active, not yet materialized variants.

    Shopify calls run on a bounded thread pool; ids are persisted one by one
    on the caller's session. One variant failing never stops the others.
    """
    if not product.shopify_product_id:
        raise InvalidVariant("Product is not linked to Shopify", product_id=product.id)

    variants = (
        db.query(ProductVariant)
        .filter(
            ProductVariant.product_id == product.id,
            ProductVariant.is_active.is_(True),
            ProductVariant.shopify_variant_id.is_(None),
        )
        .order_by(ProductVariant.created_at, ProductVariant.id)
        .limit(limit or settings.MATERIALIZE_LIMIT)
        .all()
    )
    if not variants:
        return {"synced": 0, "failed": 0, "total": 0, "results": []}

    client = client_for(product.shop_domain)
    pending = [(variant.id, _variant_request(variant)) for variant in variants]

    results = []
    with ThreadPoolExecutor(max_workers=settings.MATERIALIZE_CONCURRENCY) as pool:
        futures = [
            (variant_id, pool.submit(_create_remote, client, variant_id, request))
            for variant_id, request in pending
        ]
        for variant_id, future in futures:
            try:
                gid = _persist(db, variant_id, future.result())
            except AppError as e:
                logger.error("variant %s sync failed: %s", variant_id, e.message)
                results.append({
                    "variant_id": variant_id,
                    "success": False,
                    "error": e.message,
                    "messages": getattr(e, "messages", []),
                })
                continue
            results.append({"variant_id": variant_id, "success": True, "shopify_variant_id": gid})

    synced = sum(1 for r in results if r["success"])
    cache.invalidate_product(product.shopify_product_id)
    logger.info("product %s: %d/%d variants synced to Shopify", product.id, synced, len(results))
    return {
        "synced": synced,
        "failed": len(results) - synced,
        "total": len(results),
        "results": results,
    }


def force_resync_product(
    db: Session,
    product: Product,
    client_for: ClientFactory,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """Forget every stored Shopify variant id of the product, then sync again."""
    cleared = (
        db.query(ProductVariant)
        .filter(ProductVariant.product_id == product.id, ProductVariant.shopify_variant_id.isnot(None))
        .update({ProductVariant.shopify_variant_id: None}, synchronize_session=False)
    )
    db.commit()
    logger.info("product %s: cleared %d Shopify variant ids", product.id, cleared)
    result = materialize_product(db, product, client_for, limit)
    result["cleared"] = cleared
    return result
