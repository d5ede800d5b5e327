from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.schemas.storefront import MatchRequest
from app.services import options

router = APIRouter()

@router.get("/products/{platform_product_id}")
async def get_storefront_product(
    platform_product_id: str,
    db: Session = Depends(get_db)
):
    """
    Product settings, selectable attributes and active variants for the widget.
    """
    return options.storefront_payload(db, platform_product_id)

@router.post("/products/{platform_product_id}/match")
async def match_storefront_variant(
    platform_product_id: str,
    body: MatchRequest,
    db: Session = Depends(get_db)
):
    """
    Find the variant matching a complete selection of ``{attribute_id: value_id}``.
    """
    return options.match_selection(db, platform_product_id, body.selection)
