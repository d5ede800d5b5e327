from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

class AddVariantRequest(BaseModel):
    variant_id: int
    quantity: int = 1

class CheckoutItem(BaseModel):
    variant_id: int
    quantity: int = Field(1, ge=1)

class CartItem(BaseModel):
    """A line of the Shopify AJAX cart; ``price`` is in cents."""
    quantity: int = Field(1, ge=1)
    price: Optional[int] = None
    product_title: Optional[str] = None
    title: Optional[str] = None
    properties: Optional[Dict[str, Any]] = None

class CheckoutRequest(BaseModel):
    items: Optional[List[CheckoutItem]] = None
    cart_items: Optional[List[CartItem]] = None
