import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core import cache
from app.core.config import settings
from app.core.errors import AlreadyExists, InvalidInput, NotFound
from app.core.shopify_client import to_gid
from app.models.attribute_value import ProductAttributeValue
from app.models.attribute import ProductAttribute
from app.models.product import Product
from app.models.recommendation import ProductRecommendation
from app.models.variant_image import VariantImage

logger = logging.getLogger(__name__)


def resolve_product(
    db: Session,
    product_id: Optional[int] = None,
    platform_product_id: Optional[str] = None,
    shop: Optional[str] = None,
) -> Product:
    """Look a product up by exactly one of its internal id or its Shopify id."""
    if (product_id is None) == (platform_product_id is None):
        raise InvalidInput("Provide exactly one of product_id or platform_product_id")

    query = db.query(Product)
    if shop is not None:
        query = query.filter(Product.shop_domain == shop)
    if product_id is not None:
        product = query.filter(Product.id == product_id).first()
    else:
        product = query.filter(Product.shopify_product_id == to_gid("Product", platform_product_id)).first()
    if not product:
        raise NotFound("Product not found", product_id=product_id, platform_product_id=platform_product_id)
    return product


def upsert_products(db: Session, shop: str, nodes: List[Dict[str, Any]]) -> List[Product]:
    """Mirror Shopify product payloads locally, keyed on the Shopify product id."""
    products = []
    for node in nodes:
        gid = to_gid("Product", node["id"])
        product = db.query(Product).filter(Product.shopify_product_id == gid).first()
        if product is None:
            product = Product(shopify_product_id=gid, shop_domain=shop)
            db.add(product)
        product.title = node.get("title") or product.title or "Untitled"
        product.shopify_handle = node.get("handle") or product.shopify_handle
        product.description = node.get("description", product.description)
        product.status = (node.get("status") or "active").lower()
        image = node.get("featuredImage") or {}
        if image.get("url"):
            product.image_url = image["url"]
        products.append(product)
        cache.invalidate_product(gid)
    db.commit()
    logger.info("synced %d products for %s", len(products), shop)
    return products


def update_product(db: Session, product: Product, data: Dict[str, Any]) -> Product:
    for field in ("title", "description", "image_url", "status", "is_ring", "ring_sizes"):
        if field in data and data[field] is not None:
            setattr(product, field, data[field])
    db.commit()
    cache.invalidate_product(product.shopify_product_id)
    return product


def _check_recommended(db: Session, product: Product, recommended_id: int) -> Product:
    if recommended_id == product.id:
        raise InvalidInput("A product cannot recommend itself", product_id=product.id)
    recommended = (
        db.query(Product)
        .filter(Product.id == recommended_id, Product.shop_domain == product.shop_domain)
        .first()
    )
    if not recommended:
        raise NotFound("Recommended product not found", product_id=recommended_id)
    return recommended


def replace_recommendations(db: Session, product: Product, recommended_ids: List[int]) -> List[ProductRecommendation]:
    limit = settings.RECOMMENDATION_LIMIT
    if len(recommended_ids) > limit:
        raise InvalidInput(f"At most {limit} recommendations are allowed", limit=limit)
    if len(set(recommended_ids)) != len(recommended_ids):
        raise InvalidInput("Duplicate recommended product")
    for recommended_id in recommended_ids:
        _check_recommended(db, product, recommended_id)

    db.query(ProductRecommendation).filter(ProductRecommendation.product_id == product.id).delete(
        synchronize_session=False
    )
    for position, recommended_id in enumerate(recommended_ids):
        db.add(ProductRecommendation(
            product_id=product.id,
            recommended_product_id=recommended_id,
            display_order=position,
        ))
    db.commit()
    db.expire(product, ["recommendations"])
    cache.invalidate_product(product.shopify_product_id)
    return product.recommendations


def add_recommendation(
    db: Session,
    product: Product,
    recommended_id: int,
    display_order: Optional[int] = None,
) -> ProductRecommendation:
    _check_recommended(db, product, recommended_id)
    current = (
        db.query(ProductRecommendation)
        .filter(ProductRecommendation.product_id == product.id)
        .all()
    )
    if any(rec.recommended_product_id == recommended_id for rec in current):
        raise AlreadyExists("Recommendation already exists", recommended_product_id=recommended_id)
    limit = settings.RECOMMENDATION_LIMIT
    if len(current) >= limit:
        raise InvalidInput(f"At most {limit} recommendations are allowed", limit=limit)

    rec = ProductRecommendation(
        product_id=product.id,
        recommended_product_id=recommended_id,
        display_order=len(current) if display_order is None else display_order,
    )
    db.add(rec)
    db.commit()
    cache.invalidate_product(product.shopify_product_id)
    return rec


def delete_recommendation(db: Session, product: Product, rec_id: int) -> None:
    rec = (
        db.query(ProductRecommendation)
        .filter(ProductRecommendation.id == rec_id, ProductRecommendation.product_id == product.id)
        .first()
    )
    if not rec:
        raise NotFound("Recommendation not found", recommendation_id=rec_id)
    db.delete(rec)
    db.commit()
    cache.invalidate_product(product.shopify_product_id)


def upsert_image(db: Session, product: Product, attribute_value_id: int, image_url: str) -> VariantImage:
    value = (
        db.query(ProductAttributeValue)
        .join(ProductAttribute)
        .filter(
            ProductAttributeValue.id == attribute_value_id,
            ProductAttribute.shop_domain == product.shop_domain,
        )
        .first()
    )
    if not value:
        raise NotFound("Attribute value not found", value_id=attribute_value_id)
    if not image_url:
        raise InvalidInput("image_url is required")

    image = (
        db.query(VariantImage)
        .filter(VariantImage.product_id == product.id, VariantImage.attribute_value_id == value.id)
        .first()
    )
    if image is None:
        image = VariantImage(product_id=product.id, attribute_value_id=value.id)
        db.add(image)
    image.image_url = image_url
    db.commit()
    cache.invalidate_product(product.shopify_product_id)
    return image


def delete_image(db: Session, product: Product, attribute_value_id: int) -> None:
    deleted = (
        db.query(VariantImage)
        .filter(VariantImage.product_id == product.id, VariantImage.attribute_value_id == attribute_value_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFound("Image not found", value_id=attribute_value_id)
    db.commit()
    cache.invalidate_product(product.shopify_product_id)
