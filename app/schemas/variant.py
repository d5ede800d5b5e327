from typing import Dict, List, Optional
from pydantic import BaseModel
from app.services.reconciler import ReconcileMode

class ProductRef(BaseModel):
    """Exactly one of the two ids identifies the product."""
    product_id: Optional[int] = None
    platform_product_id: Optional[str] = None

class OptionSelection(BaseModel):
    attribute_id: int
    attribute_value_id: int

class VariantOption(BaseModel):
    attribute_id: int
    attribute_value_id: int
    attribute_name: str
    value: str

class VariantBase(BaseModel):
    price: float = 0
    compare_at_price: Optional[float] = None
    cost: Optional[float] = None
    sku: Optional[str] = None
    stock_quantity: int = 0
    is_active: bool = True
    image_url: Optional[str] = None

class Variant(VariantBase):
    id: int
    product_id: int
    combination_key: str
    shopify_variant_id: Optional[str] = None
    options: List[VariantOption] = []

    class Config:
        from_attributes = True

class GenerateRequest(ProductRef):
    mode: ReconcileMode = ReconcileMode.MERGE
    selected_values: Optional[Dict[int, List[int]]] = None

class VariantCreate(ProductRef):
    combination: List[OptionSelection]
    price: Optional[float] = None
    compare_at_price: Optional[float] = None
    cost: Optional[float] = None
    sku: Optional[str] = None
    stock_quantity: Optional[int] = None
    is_active: Optional[bool] = None
    image_url: Optional[str] = None

class VariantUpdate(BaseModel):
    id: int
    price: Optional[float] = None
    compare_at_price: Optional[float] = None
    cost: Optional[float] = None
    sku: Optional[str] = None
    stock_quantity: Optional[int] = None
    is_active: Optional[bool] = None
    image_url: Optional[str] = None

class VariantBulkUpdate(BaseModel):
    variants: List[VariantUpdate]

class VariantBulkDelete(BaseModel):
    variant_ids: List[int]

class VariantOptionsUpdate(BaseModel):
    options: List[OptionSelection]

class SyncRequest(ProductRef):
    limit: Optional[int] = None
