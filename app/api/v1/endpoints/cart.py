from typing import Callable
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.api import deps
from app.db.session import get_db
from app.schemas.cart import AddVariantRequest, CheckoutRequest
from app.services import cart as cart_service

router = APIRouter()

@router.post("/add-variant")
def add_variant_to_cart(
    body: AddVariantRequest,
    db: Session = Depends(get_db),
    client_for: Callable = Depends(deps.get_client_factory)
):
    """
    Resolve a custom variant to a Shopify cart line.

    When the Shopify variant cannot be created the response carries
    ``fallback: true`` and the options to add as line item properties.
    """
    return cart_service.resolve_for_cart(db, body.variant_id, body.quantity, client_for)

@router.post("/checkout")
def create_checkout(
    body: CheckoutRequest,
    db: Session = Depends(get_db),
    client_for: Callable = Depends(deps.get_client_factory)
):
    """
    Create a draft order priced from the stored variants and return its invoice URL.
    """
    return cart_service.create_checkout(
        db,
        client_for,
        items=[item.dict() for item in body.items] if body.items else None,
        cart_items=[item.dict() for item in body.cart_items] if body.cart_items else None,
    )
