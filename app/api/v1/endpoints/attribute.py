from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.api import deps
from app.core import cache
from app.db.session import get_db
from app.models.attribute import ProductAttribute
from app.models.shop import ShopSession
from app.schemas.attribute import Attribute, AttributeCreate, AttributeUpdate
from app.schemas.attribute_value import AttributeValue, AttributeValueCreate, AttributeValueUpdate
from app.services import attributes as attribute_service

router = APIRouter()

@router.get("/", response_model=List[Attribute])
async def get_attributes(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Retrieve the shop's attributes with their values.
    """
    return (
        db.query(ProductAttribute)
        .filter(ProductAttribute.shop_domain == current_shop.shop)
        .order_by(ProductAttribute.display_order, ProductAttribute.id)
        .offset(skip)
        .limit(limit)
        .all()
    )

@router.get("/{attribute_id}", response_model=Attribute)
async def get_attribute(
    attribute_id: int,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    return attribute_service.get_attribute(db, current_shop.shop, attribute_id)

@router.post("/", response_model=Attribute, status_code=201)
async def create_attribute(
    attribute: AttributeCreate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Create an attribute, optionally with its initial values.
    """
    db_attribute = attribute_service.create_attribute(db, current_shop.shop, attribute.dict())
    cache.invalidate_product(None)
    return db_attribute

@router.put("/{attribute_id}", response_model=Attribute)
async def update_attribute(
    attribute_id: int,
    attribute: AttributeUpdate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    db_attribute = attribute_service.update_attribute(
        db, current_shop.shop, attribute_id, attribute.dict(exclude_unset=True)
    )
    cache.invalidate_product(None)
    return db_attribute

@router.post("/{attribute_id}/primary", response_model=Attribute)
async def set_primary_attribute(
    attribute_id: int,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Mark the attribute as the shop's primary attribute; any other loses the flag.
    """
    db_attribute = attribute_service.set_primary_attribute(db, current_shop.shop, attribute_id)
    cache.invalidate_product(None)
    return db_attribute

@router.delete("/{attribute_id}")
async def delete_attribute(
    attribute_id: int,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Delete an attribute together with its values and every variant using them.
    """
    removed = attribute_service.delete_attribute(db, current_shop.shop, attribute_id)
    cache.invalidate_product(None)
    return {"message": "Attribute deleted successfully", "variants_removed": removed}

@router.get("/{attribute_id}/values", response_model=List[AttributeValue])
async def get_attribute_values(
    attribute_id: int,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    return attribute_service.get_attribute(db, current_shop.shop, attribute_id).values

@router.post("/{attribute_id}/values", response_model=AttributeValue, status_code=201)
async def create_attribute_value(
    attribute_id: int,
    value: AttributeValueCreate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    attribute = attribute_service.get_attribute(db, current_shop.shop, attribute_id)
    db_value = attribute_service.add_value(db, attribute, value.dict())
    cache.invalidate_product(None)
    return db_value

@router.put("/{attribute_id}/values/{value_id}", response_model=AttributeValue)
async def update_attribute_value(
    attribute_id: int,
    value_id: int,
    value: AttributeValueUpdate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    attribute = attribute_service.get_attribute(db, current_shop.shop, attribute_id)
    db_value = attribute_service.update_value(db, attribute, value_id, value.dict(exclude_unset=True))
    cache.invalidate_product(None)
    return db_value

@router.delete("/{attribute_id}/values/{value_id}")
async def delete_attribute_value(
    attribute_id: int,
    value_id: int,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Delete a value; variants that select it are deleted with it.
    """
    attribute = attribute_service.get_attribute(db, current_shop.shop, attribute_id)
    removed = attribute_service.delete_value(db, attribute, value_id)
    cache.invalidate_product(None)
    return {"message": "Attribute value deleted successfully", "variants_removed": removed}
