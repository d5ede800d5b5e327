from typing import Callable, List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.api import deps
from app.core.errors import NotFound
from app.db.session import get_db
from app.models.attribute import ProductAttribute
from app.models.product import Product as ProductModel
from app.models.shop import ShopSession
from app.schemas.product import (
    Product,
    ProductAttributeLink,
    ProductAttributesUpdate,
    ProductSyncRequest,
    ProductUpdate,
    Recommendation,
    RecommendationCreate,
    RecommendationsUpdate,
    VariantImage,
    VariantImageCreate,
    VariantImageDelete,
)
from app.services import products as product_service
from app.services.attributes import replace_product_attributes

router = APIRouter()

@router.get("/", response_model=List[Product])
async def get_products(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    return (
        db.query(ProductModel)
        .filter(ProductModel.shop_domain == current_shop.shop)
        .order_by(ProductModel.id)
        .offset(skip)
        .limit(limit)
        .all()
    )

@router.post("/sync", response_model=List[Product])
def sync_products(
    body: ProductSyncRequest,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop),
    client_for: Callable = Depends(deps.get_client_factory)
):
    """
    Mirror Shopify products locally. Uses the posted product nodes, or pulls
    them from Shopify when none are given.
    """
    nodes = body.products
    if nodes is None:
        nodes = client_for(current_shop.shop).list_products()
    return product_service.upsert_products(db, current_shop.shop, nodes)

@router.get("/{product_id}", response_model=Product)
async def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    return product_service.resolve_product(db, product_id=product_id, shop=current_shop.shop)

@router.put("/{product_id}", response_model=Product)
async def update_product(
    product_id: int,
    product: ProductUpdate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Update local product settings (image, ring sizing, ...).
    """
    db_product = product_service.resolve_product(db, product_id=product_id, shop=current_shop.shop)
    return product_service.update_product(db, db_product, product.dict(exclude_unset=True))

@router.get("/{product_id}/attributes", response_model=List[ProductAttributeLink])
async def get_product_attributes(
    product_id: int,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    db_product = product_service.resolve_product(db, product_id=product_id, shop=current_shop.shop)
    return db_product.attribute_links

@router.put("/{product_id}/attributes", response_model=List[ProductAttributeLink])
async def update_product_attributes(
    product_id: int,
    body: ProductAttributesUpdate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Replace the product's attribute set and per-product default values.
    """
    db_product = product_service.resolve_product(db, product_id=product_id, shop=current_shop.shop)
    attribute_ids = [link.attribute_id for link in body.attributes]
    found = {
        attribute_id
        for (attribute_id,) in db.query(ProductAttribute.id).filter(
            ProductAttribute.id.in_(attribute_ids),
            ProductAttribute.shop_domain == current_shop.shop,
        )
    }
    missing = sorted(set(attribute_ids) - found)
    if missing:
        raise NotFound("Attribute not found", attribute_ids=missing)
    defaults = {link.attribute_id: link.default_value_id for link in body.attributes}
    return replace_product_attributes(db, db_product, attribute_ids, defaults)

@router.get("/{product_id}/recommendations", response_model=List[Recommendation])
async def get_recommendations(
    product_id: int,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    db_product = product_service.resolve_product(db, product_id=product_id, shop=current_shop.shop)
    return db_product.recommendations

@router.put("/{product_id}/recommendations", response_model=List[Recommendation])
async def replace_recommendations(
    product_id: int,
    body: RecommendationsUpdate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    db_product = product_service.resolve_product(db, product_id=product_id, shop=current_shop.shop)
    return product_service.replace_recommendations(db, db_product, body.recommended_product_ids)

@router.post("/{product_id}/recommendations", response_model=Recommendation, status_code=201)
async def add_recommendation(
    product_id: int,
    body: RecommendationCreate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    db_product = product_service.resolve_product(db, product_id=product_id, shop=current_shop.shop)
    return product_service.add_recommendation(db, db_product, body.recommended_product_id, body.display_order)

@router.delete("/{product_id}/recommendations/{rec_id}")
async def delete_recommendation(
    product_id: int,
    rec_id: int,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    db_product = product_service.resolve_product(db, product_id=product_id, shop=current_shop.shop)
    product_service.delete_recommendation(db, db_product, rec_id)
    return {"message": "Recommendation deleted successfully"}

@router.get("/{product_id}/images", response_model=List[VariantImage])
async def get_images(
    product_id: int,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    db_product = product_service.resolve_product(db, product_id=product_id, shop=current_shop.shop)
    return db_product.images

@router.post("/{product_id}/images", response_model=VariantImage)
async def upsert_image(
    product_id: int,
    body: VariantImageCreate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Set the image shown when an attribute value is selected for this product.
    """
    db_product = product_service.resolve_product(db, product_id=product_id, shop=current_shop.shop)
    return product_service.upsert_image(db, db_product, body.attribute_value_id, body.image_url)

@router.delete("/{product_id}/images")
async def delete_image(
    product_id: int,
    body: VariantImageDelete,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    db_product = product_service.resolve_product(db, product_id=product_id, shop=current_shop.shop)
    product_service.delete_image(db, db_product, body.attribute_value_id)
    return {"message": "Image deleted successfully"}
