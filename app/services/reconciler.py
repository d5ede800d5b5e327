"""
Persist generated combinations as variants.

Every insertion runs in its own SAVEPOINT so that one bad combination never
leaves an option-less variant behind nor aborts its siblings. The
``(product_id, combination_key)`` unique constraint is the only guard
against concurrent generation for the same product: a violation on insert
means the variant already exists.
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import cache
from app.core.config import settings
from app.core.errors import AlreadyExists, InvalidInput, NotFound
from app.models.product import Product
from app.models.variant import ProductVariant
from app.models.variant_option import VariantOption
from app.services.attributes import attributes_for_generation
from app.services.batch import BatchResult, run_batch
from app.services.combinations import ComboEntry, combination_key, generate

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "price",
    "compare_at_price",
    "cost",
    "sku",
    "stock_quantity",
    "is_active",
    "image_url",
)


class ReconcileMode(str, Enum):
    REPLACE = "scratch"
    MERGE = "modify"


class ReconcileResult(BaseModel):
    created: int = 0
    unchanged: int = 0
    removed: int = 0
    failed: List[Dict[str, Any]] = []
    total: int = 0

    @property
    def status_code(self) -> int:
        if self.failed and not (self.created or self.unchanged):
            return 500
        if self.failed:
            return 207
        return 200

    def body(self, limit: Optional[int] = None, **extra: Any) -> Dict[str, Any]:
        limit = settings.ERROR_DETAIL_LIMIT if limit is None else limit
        body: Dict[str, Any] = {
            "success": self.status_code != 500,
            "created": self.created,
            "unchanged": self.unchanged,
            "removed": self.removed,
            "failed": len(self.failed),
            "total": self.total,
        }
        if self.status_code == 500:
            body["detail"] = "All operations failed"
        elif self.failed:
            body["partial"] = True
        if self.failed:
            body["errors"] = self.failed[:limit]
        body.update(extra)
        return body


def _key_exists(db: Session, product_id: int, key: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(ProductVariant.id).filter(
        ProductVariant.product_id == product_id,
        ProductVariant.combination_key == key,
    )
    if exclude_id is not None:
        query = query.filter(ProductVariant.id != exclude_id)
    return query.first() is not None


def insert_variant(
    db: Session,
    product_id: int,
    key: str,
    entries: Sequence[ComboEntry],
    **fields: Any,
) -> Optional[ProductVariant]:
    """
    Insert a variant and its options as one unit.

    Returns None when a variant with the same key already exists. Any other
    database error rolls the unit back and propagates.
    """
    savepoint = db.begin_nested()
    variant = ProductVariant(
        product_id=product_id,
        combination_key=key,
        price=fields.pop("price", None) or 0,
        stock_quantity=fields.pop("stock_quantity", None) or 0,
        is_active=fields.pop("is_active", True),
        **fields,
    )
    db.add(variant)
    try:
        db.flush()
    except IntegrityError:
        savepoint.rollback()
        if _key_exists(db, product_id, key):
            return None
        raise

    try:
        for entry in entries:
            db.add(VariantOption(
                variant_id=variant.id,
                attribute_id=entry.attribute_id,
                attribute_value_id=entry.attribute_value_id,
            ))
        db.flush()
    except SQLAlchemyError:
        savepoint.rollback()
        raise
    savepoint.commit()
    return variant


def reconcile(
    db: Session,
    product: Product,
    combinations: Sequence[Sequence[ComboEntry]],
    mode: ReconcileMode,
) -> ReconcileResult:
    mode = ReconcileMode(mode)
    result = ReconcileResult(total=len(combinations))

    if mode is ReconcileMode.REPLACE:
        variant_ids = [
            variant_id
            for (variant_id,) in db.query(ProductVariant.id).filter(ProductVariant.product_id == product.id)
        ]
        if variant_ids:
            db.query(VariantOption).filter(VariantOption.variant_id.in_(variant_ids)).delete(
                synchronize_session=False
            )
            result.removed = (
                db.query(ProductVariant)
                .filter(ProductVariant.product_id == product.id)
                .delete(synchronize_session=False)
            )
            db.expire(product, ["variants"])
        existing = set()
    else:
        existing = {
            key
            for (key,) in db.query(ProductVariant.combination_key).filter(ProductVariant.product_id == product.id)
        }

    for combination in combinations:
        key = combination_key(combination)
        if key in existing:
            result.unchanged += 1
            continue
        try:
            variant = insert_variant(db, product.id, key, combination)
        except SQLAlchemyError as e:
            logger.error("product %s: failed to create variant %s: %s", product.id, key, e)
            result.failed.append({"combination_key": key, "error": str(e)})
            continue
        if variant is None:
            result.unchanged += 1
        else:
            result.created += 1
        existing.add(key)

    db.commit()
    cache.invalidate_product(product.shopify_product_id)
    logger.info(
        "product %s reconciled (%s): %d created, %d unchanged, %d removed, %d failed",
        product.id, mode.value, result.created, result.unchanged, result.removed, len(result.failed),
    )
    return result


def generate_for_product(
    db: Session,
    product: Product,
    mode: ReconcileMode,
    selected_values: Optional[Dict[Any, List[int]]] = None,
) -> ReconcileResult:
    attributes = attributes_for_generation(db, product, selected_values)
    combinations = generate(attributes)
    return reconcile(db, product, combinations, mode)


def create_single_variant(
    db: Session,
    product: Product,
    entries: Sequence[ComboEntry],
    **fields: Any,
) -> ProductVariant:
    if not entries:
        raise InvalidInput("Combination is empty", product_id=product.id)
    key = combination_key(entries)
    if _key_exists(db, product.id, key):
        raise AlreadyExists("Variant already exists", product_id=product.id, combination_key=key)

    values = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
    for field, value in values.items():
        _check_field(field, value, product_id=product.id, combination_key=key)
    variant = insert_variant(db, product.id, key, entries, **values)
    if variant is None:
        raise AlreadyExists("Variant already exists", product_id=product.id, combination_key=key)
    db.commit()
    cache.invalidate_product(product.shopify_product_id)
    logger.info("product %s: created variant %s (%s)", product.id, variant.id, key)
    return variant


def get_variant(db: Session, variant_id: int, shop: Optional[str] = None) -> ProductVariant:
    query = db.query(ProductVariant).filter(ProductVariant.id == variant_id)
    if shop is not None:
        query = query.join(Product).filter(Product.shop_domain == shop)
    variant = query.first()
    if not variant:
        raise NotFound("Variant not found", variant_id=variant_id)
    return variant


def _check_field(field: str, value: Any, **detail: Any) -> None:
    if field in ("price", "stock_quantity", "is_active") and value is None:
        raise InvalidInput(f"{field} cannot be null", **detail)
    if field in ("price", "compare_at_price", "cost", "stock_quantity") and value is not None and value < 0:
        raise InvalidInput(f"{field} cannot be negative", **detail)


def _apply_update(db: Session, shop: Optional[str], update: Dict[str, Any]) -> ProductVariant:
    variant = get_variant(db, update["id"], shop)
    for field in UPDATABLE_FIELDS:
        if field not in update:
            continue
        value = update[field]
        _check_field(field, value, variant_id=variant.id)
        setattr(variant, field, value)
    db.flush()
    return variant


def update_variants(db: Session, updates: List[Dict[str, Any]], shop: Optional[str] = None) -> BatchResult:
    """Field-by-field updates; only keys present in each update are written."""
    touched = set()

    def handler(session: Session, update: Dict[str, Any]) -> int:
        variant = _apply_update(session, shop, update)
        touched.add(variant.product.shopify_product_id)
        return variant.id

    result = run_batch(db, updates, handler, item_id=lambda u: u.get("id"))
    for platform_id in touched:
        cache.invalidate_product(platform_id)
    return result


def delete_variants(db: Session, variant_ids: List[int], shop: Optional[str] = None) -> BatchResult:
    touched = set()

    def handler(session: Session, variant_id: int) -> int:
        variant = get_variant(session, variant_id, shop)
        touched.add(variant.product.shopify_product_id)
        session.delete(variant)
        session.flush()
        return variant_id

    result = run_batch(db, variant_ids, handler, item_id=lambda variant_id: variant_id)
    for platform_id in touched:
        cache.invalidate_product(platform_id)
    return result


def replace_variant_options(db: Session, variant: ProductVariant, entries: Sequence[ComboEntry]) -> ProductVariant:
    """Rewrite a variant's option set and its combination key."""
    if not entries:
        raise InvalidInput("Combination is empty", variant_id=variant.id)
    key = combination_key(entries)
    if _key_exists(db, variant.product_id, key, exclude_id=variant.id):
        raise AlreadyExists("Variant already exists", product_id=variant.product_id, combination_key=key)

    db.query(VariantOption).filter(VariantOption.variant_id == variant.id).delete(synchronize_session=False)
    db.expire(variant, ["options"])
    for entry in entries:
        db.add(VariantOption(
            variant_id=variant.id,
            attribute_id=entry.attribute_id,
            attribute_value_id=entry.attribute_value_id,
        ))
    variant.combination_key = key
    db.commit()
    cache.invalidate_product(variant.product.shopify_product_id)
    return variant
