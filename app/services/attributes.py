import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core import cache
from app.core.errors import AlreadyExists, InvalidInput, NotFound
from app.models.attribute import ProductAttribute
from app.models.attribute_value import ProductAttributeValue
from app.models.product import Product
from app.models.product_attribute import ProductAttributeLink
from app.models.variant import ProductVariant
from app.models.variant_option import VariantOption
from app.services.combinations import ComboEntry, combination_key

logger = logging.getLogger(__name__)


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (text or "").strip().lower()).strip("-")


def get_attribute(db: Session, shop: Optional[str], attribute_id: int) -> ProductAttribute:
    attribute = (
        db.query(ProductAttribute)
        .filter(ProductAttribute.id == attribute_id, ProductAttribute.shop_domain == shop)
        .first()
    )
    if not attribute:
        raise NotFound("Attribute not found", attribute_id=attribute_id)
    return attribute


def get_value(db: Session, attribute: ProductAttribute, value_id: int) -> ProductAttributeValue:
    value = (
        db.query(ProductAttributeValue)
        .filter(
            ProductAttributeValue.id == value_id,
            ProductAttributeValue.attribute_id == attribute.id,
        )
        .first()
    )
    if not value:
        raise NotFound("Attribute value not found", attribute_id=attribute.id, value_id=value_id)
    return value


def set_primary_attribute(db: Session, shop: Optional[str], attribute_id: int) -> ProductAttribute:
    """Make one attribute the shop's primary one, clearing the flag everywhere else."""
    attribute = get_attribute(db, shop, attribute_id)
    db.query(ProductAttribute).filter(
        ProductAttribute.shop_domain == shop,
        ProductAttribute.id != attribute.id,
        ProductAttribute.is_primary.is_(True),
    ).update({ProductAttribute.is_primary: False}, synchronize_session="fetch")
    attribute.is_primary = True
    db.commit()
    logger.info("attribute %s is now primary for %s", attribute.id, shop)
    return attribute


def create_attribute(db: Session, shop: Optional[str], data: Dict[str, Any]) -> ProductAttribute:
    name = (data.get("name") or "").strip()
    if not name:
        raise InvalidInput("Attribute name is required")
    attribute = ProductAttribute(
        shop_domain=shop,
        name=name,
        slug=slugify(name),
        display_order=data.get("display_order") or 0,
    )
    db.add(attribute)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise AlreadyExists("Attribute already exists", name=name)

    for position, value in enumerate(data.get("values") or []):
        add_value(db, attribute, value if isinstance(value, dict) else {"value": value}, position, commit=False)
    db.commit()

    if data.get("is_primary"):
        set_primary_attribute(db, shop, attribute.id)
    return attribute


def update_attribute(db: Session, shop: Optional[str], attribute_id: int, data: Dict[str, Any]) -> ProductAttribute:
    attribute = get_attribute(db, shop, attribute_id)
    renamed = False
    if data.get("name") is not None:
        name = data["name"].strip()
        if not name:
            raise InvalidInput("Attribute name is required")
        attribute.name = name
        attribute.slug = slugify(name)
        renamed = True
    if data.get("display_order") is not None:
        attribute.display_order = data["display_order"]
    if data.get("is_primary") is False:
        attribute.is_primary = False
    try:
        if renamed:
            _rekey_variants(db, VariantOption.attribute_id == attribute.id)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyExists("Attribute already exists", name=data.get("name"))

    if data.get("is_primary"):
        set_primary_attribute(db, shop, attribute.id)
    return attribute


def add_value(
    db: Session,
    attribute: ProductAttribute,
    data: Dict[str, Any],
    position: Optional[int] = None,
    commit: bool = True,
) -> ProductAttributeValue:
    text = str(data.get("value") or "").strip()
    slug = slugify(text)
    if not slug:
        raise InvalidInput("Attribute value is required", attribute_id=attribute.id)

    exists = (
        db.query(ProductAttributeValue.id)
        .filter(ProductAttributeValue.attribute_id == attribute.id, ProductAttributeValue.slug == slug)
        .first()
    )
    if exists:
        raise AlreadyExists("Attribute value already exists", attribute_id=attribute.id, value=text)

    if data.get("display_order") is not None:
        position = data["display_order"]
    elif position is None:
        position = len(attribute.values)

    value = ProductAttributeValue(
        value=text,
        slug=slug,
        image_url=data.get("image_url"),
        display_order=position,
    )
    attribute.values.append(value)
    db.flush()
    if data.get("is_default"):
        _set_default_value(db, attribute, value)
    if commit:
        db.commit()
    return value


def update_value(db: Session, attribute: ProductAttribute, value_id: int, data: Dict[str, Any]) -> ProductAttributeValue:
    value = get_value(db, attribute, value_id)
    if data.get("value") is not None:
        text = str(data["value"]).strip()
        slug = slugify(text)
        if not slug:
            raise InvalidInput("Attribute value is required", attribute_id=attribute.id)
        clash = (
            db.query(ProductAttributeValue.id)
            .filter(
                ProductAttributeValue.attribute_id == attribute.id,
                ProductAttributeValue.slug == slug,
                ProductAttributeValue.id != value.id,
            )
            .first()
        )
        if clash:
            raise AlreadyExists("Attribute value already exists", attribute_id=attribute.id, value=text)
        value.value = text
        value.slug = slug
        _rekey_variants(db, VariantOption.attribute_value_id == value.id)
    for field in ("image_url", "display_order"):
        if field in data and data[field] is not None:
            setattr(value, field, data[field])
    if data.get("is_default") is True:
        _set_default_value(db, attribute, value)
    elif data.get("is_default") is False:
        value.is_default = False
    db.commit()
    return value


def _set_default_value(db: Session, attribute: ProductAttribute, value: ProductAttributeValue) -> None:
    db.query(ProductAttributeValue).filter(
        ProductAttributeValue.attribute_id == attribute.id,
        ProductAttributeValue.id != value.id,
    ).update({ProductAttributeValue.is_default: False}, synchronize_session="fetch")
    value.is_default = True


def _rekey_variants(db: Session, option_filter) -> int:
    """Recompute the combination key of every variant with an option matching ``option_filter``."""
    variant_ids = [vid for (vid,) in db.query(VariantOption.variant_id).filter(option_filter).distinct()]
    if not variant_ids:
        return 0
    variants = (
        db.query(ProductVariant)
        .options(
            selectinload(ProductVariant.options).selectinload(VariantOption.attribute),
            selectinload(ProductVariant.options).selectinload(VariantOption.attribute_value),
        )
        .filter(ProductVariant.id.in_(variant_ids))
        .all()
    )
    for variant in variants:
        variant.combination_key = combination_key(
            ComboEntry(opt.attribute_id, opt.attribute_value_id, opt.attribute.name, opt.attribute_value.value)
            for opt in variant.options
        )
    logger.info("re-keyed %d variants after rename", len(variants))
    return len(variants)


def _drop_variants_using(db: Session, option_filter) -> int:
    """Delete every variant with an option matching ``option_filter``; a variant may not lose an option."""
    rows = (
        db.query(ProductVariant.id, Product.shopify_product_id)
        .join(Product, ProductVariant.product_id == Product.id)
        .join(VariantOption, VariantOption.variant_id == ProductVariant.id)
        .filter(option_filter)
        .distinct()
        .all()
    )
    if not rows:
        return 0
    variant_ids = [variant_id for variant_id, _ in rows]
    db.query(VariantOption).filter(VariantOption.variant_id.in_(variant_ids)).delete(synchronize_session=False)
    db.query(ProductVariant).filter(ProductVariant.id.in_(variant_ids)).delete(synchronize_session=False)
    for platform_id in {platform_id for _, platform_id in rows}:
        cache.invalidate_product(platform_id)
    return len(variant_ids)


def delete_attribute(db: Session, shop: Optional[str], attribute_id: int) -> int:
    """Delete an attribute, its values and every variant built on it. Returns the number of variants removed."""
    attribute = get_attribute(db, shop, attribute_id)
    removed = _drop_variants_using(db, VariantOption.attribute_id == attribute.id)
    db.delete(attribute)
    db.commit()
    logger.info("attribute %s deleted with %d variants", attribute_id, removed)
    return removed


def delete_value(db: Session, attribute: ProductAttribute, value_id: int) -> int:
    """Delete a value and every variant that selects it. Returns the number of variants removed."""
    value = get_value(db, attribute, value_id)
    removed = _drop_variants_using(db, VariantOption.attribute_value_id == value.id)
    db.delete(value)
    db.commit()
    logger.info("attribute value %s deleted with %d variants", value_id, removed)
    return removed


def attributes_for_generation(
    db: Session,
    product: Product,
    selected_values: Optional[Dict[Any, List[int]]] = None,
) -> List[Dict[str, Any]]:
    """
    Build the ordered ``{id, name, values}`` input for combination generation.

    With ``selected_values`` ({attribute_id: [value_id, ...]}) the product's
    attribute links are replaced by the selected attributes and only the chosen
    values are used; attributes left with no values are dropped. Without it the
    product's linked attributes contribute all of their values.
    """
    if selected_values is not None:
        selection = {int(k): [int(v) for v in ids] for k, ids in selected_values.items()}
        attributes = (
            db.query(ProductAttribute)
            .filter(ProductAttribute.id.in_(list(selection)), ProductAttribute.shop_domain == product.shop_domain)
            .order_by(ProductAttribute.display_order, ProductAttribute.id)
            .all()
        )
        missing = set(selection) - {a.id for a in attributes}
        if missing:
            raise NotFound("Attribute not found", attribute_ids=sorted(missing))
        replace_product_attributes(db, product, [a.id for a in attributes], commit=False)
    else:
        selection = None
        attributes = sorted(
            (link.attribute for link in product.attribute_links),
            key=lambda a: (a.display_order, a.id),
        )

    result = []
    for attribute in attributes:
        values = attribute.values
        if selection is not None:
            wanted = set(selection[attribute.id])
            values = [v for v in values if v.id in wanted]
        if not values:
            continue
        result.append({
            "id": attribute.id,
            "name": attribute.name,
            "values": [{"id": v.id, "value": v.value} for v in values],
        })

    if not result:
        raise InvalidInput("No attributes with values selected", product_id=product.id)
    names = [a["name"] for a in result]
    if len(set(names)) != len(names):
        raise InvalidInput("Attribute names must be unique", names=names)
    return result


def replace_product_attributes(
    db: Session,
    product: Product,
    attribute_ids: List[int],
    defaults: Optional[Dict[int, Optional[int]]] = None,
    commit: bool = True,
) -> List[ProductAttributeLink]:
    defaults = defaults or {}
    existing = {link.attribute_id: link for link in product.attribute_links}
    keep = set(attribute_ids)
    for attribute_id, link in existing.items():
        if attribute_id not in keep:
            product.attribute_links.remove(link)
    for attribute_id in attribute_ids:
        link = existing.get(attribute_id)
        if link is None:
            link = ProductAttributeLink(product_id=product.id, attribute_id=attribute_id)
            product.attribute_links.append(link)
        if attribute_id in defaults:
            link.default_value_id = defaults[attribute_id]
    db.flush()
    if commit:
        db.commit()
    return product.attribute_links


def resolve_entries(db: Session, shop: Optional[str], selection: List[Dict[str, int]]) -> List[ComboEntry]:
    """Turn ``[{attribute_id, attribute_value_id}]`` into combination entries."""
    if not selection:
        raise InvalidInput("Combination is empty")
    entries = []
    seen = set()
    for item in selection:
        attribute = get_attribute(db, shop, item["attribute_id"])
        if attribute.id in seen:
            raise InvalidInput("Attribute selected twice", attribute_id=attribute.id)
        seen.add(attribute.id)
        value = get_value(db, attribute, item["attribute_value_id"])
        entries.append(ComboEntry(attribute.id, value.id, attribute.name, value.value))
    return entries
