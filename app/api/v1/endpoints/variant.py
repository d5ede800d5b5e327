from typing import Callable, List, Optional
from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, selectinload
from app.api import deps
from app.core.shopify_client import numeric_id
from app.db.session import get_db
from app.models.shop import ShopSession
from app.models.variant import ProductVariant as VariantModel
from app.models.variant_option import VariantOption
from app.schemas.variant import (
    GenerateRequest,
    SyncRequest,
    Variant,
    VariantBulkDelete,
    VariantBulkUpdate,
    VariantCreate,
    VariantOptionsUpdate,
)
from app.services import materializer, reconciler
from app.services.attributes import resolve_entries
from app.services.products import resolve_product

router = APIRouter()

def _batch_response(result, **extra) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=jsonable_encoder(result.body(**extra)))

@router.get("/", response_model=List[Variant])
async def get_variants(
    product_id: Optional[int] = None,
    platform_product_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    List a product's variants with their options.
    """
    product = resolve_product(db, product_id, platform_product_id, shop=current_shop.shop)
    return (
        db.query(VariantModel)
        .options(
            selectinload(VariantModel.options).selectinload(VariantOption.attribute),
            selectinload(VariantModel.options).selectinload(VariantOption.attribute_value),
        )
        .filter(VariantModel.product_id == product.id)
        .order_by(VariantModel.id)
        .all()
    )

@router.post("/generate")
async def generate_variants(
    body: GenerateRequest,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Generate every combination of the selected attribute values.

    ``scratch`` replaces all existing variants; ``modify`` only adds the
    combinations that are missing and leaves existing variants untouched.
    """
    product = resolve_product(db, body.product_id, body.platform_product_id, shop=current_shop.shop)
    result = reconciler.generate_for_product(db, product, body.mode, body.selected_values)
    return _batch_response(result, mode=body.mode.value)

@router.post("/", response_model=Variant, status_code=201)
async def create_variant(
    body: VariantCreate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Create a single variant from an explicit combination.
    """
    product = resolve_product(db, body.product_id, body.platform_product_id, shop=current_shop.shop)
    entries = resolve_entries(db, current_shop.shop, [item.dict() for item in body.combination])
    fields = body.dict(exclude={"product_id", "platform_product_id", "combination"}, exclude_none=True)
    return reconciler.create_single_variant(db, product, entries, **fields)

@router.put("/")
async def update_variants(
    body: VariantBulkUpdate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Bulk update variant fields; only fields present in each item are written.
    """
    updates = [item.dict(exclude_unset=True) for item in body.variants]
    result = reconciler.update_variants(db, updates, shop=current_shop.shop)
    return _batch_response(result, message=f"Updated {len(result.succeeded)} variants")

@router.delete("/")
async def delete_variants(
    body: VariantBulkDelete,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    result = reconciler.delete_variants(db, body.variant_ids, shop=current_shop.shop)
    return _batch_response(result, message=f"Deleted {len(result.succeeded)} variants")

@router.post("/sync")
def sync_variants(
    body: SyncRequest,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop),
    client_for: Callable = Depends(deps.get_client_factory)
):
    """
    Create Shopify variants for active variants that have none yet.
    """
    product = resolve_product(db, body.product_id, body.platform_product_id, shop=current_shop.shop)
    result = materializer.materialize_product(db, product, client_for, body.limit)
    return {"success": True, **result}

@router.post("/force-resync")
def force_resync_variants(
    body: SyncRequest,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop),
    client_for: Callable = Depends(deps.get_client_factory)
):
    """
    Drop every stored Shopify variant id of the product and sync again.
    """
    product = resolve_product(db, body.product_id, body.platform_product_id, shop=current_shop.shop)
    result = materializer.force_resync_product(db, product, client_for, body.limit)
    return {"success": True, **result}

@router.get("/shopify-status")
def get_shopify_status(
    platform_product_id: str,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop),
    client_for: Callable = Depends(deps.get_client_factory)
):
    """
    Compare the product's variants on Shopify with the local ones.
    """
    product = resolve_product(db, platform_product_id=platform_product_id, shop=current_shop.shop)
    remote = client_for(product.shop_domain).get_product_variants(product.shopify_product_id)
    remote_ids = {v["id"] for v in remote["variants"]}
    local_ids = {
        gid
        for (gid,) in db.query(VariantModel.shopify_variant_id).filter(
            VariantModel.product_id == product.id,
            VariantModel.shopify_variant_id.isnot(None),
        )
    }
    return {
        "product": remote["product"],
        "variants": remote["variants"],
        "shopify_count": len(remote_ids),
        "local_materialized": len(local_ids),
        "missing_on_shopify": sorted(local_ids - remote_ids),
    }

@router.get("/{variant_id}/status")
async def get_variant_status(
    variant_id: int,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    variant = reconciler.get_variant(db, variant_id, current_shop.shop)
    return {
        "variant_id": variant.id,
        "sku": variant.sku,
        "price": variant.price,
        "stock": variant.stock_quantity,
        "is_active": variant.is_active,
        "has_shopify_id": variant.shopify_variant_id is not None,
        "shopify_variant_id": variant.shopify_variant_id,
        "shopify_numeric_id": numeric_id(variant.shopify_variant_id) if variant.shopify_variant_id else None,
        "product_title": variant.product.title,
        "product_id": variant.product.shopify_product_id,
    }

@router.put("/{variant_id}/options", response_model=Variant)
async def update_variant_options(
    variant_id: int,
    body: VariantOptionsUpdate,
    db: Session = Depends(get_db),
    current_shop: ShopSession = Depends(deps.get_current_shop)
):
    """
    Replace the variant's option set; its combination key follows.
    """
    variant = reconciler.get_variant(db, variant_id, current_shop.shop)
    entries = resolve_entries(db, current_shop.shop, [item.dict() for item in body.options])
    return reconciler.replace_variant_options(db, variant, entries)
