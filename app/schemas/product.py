from typing import Any, Dict, List, Optional
from pydantic import BaseModel

class ProductBase(BaseModel):
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    status: Optional[str] = "active"
    is_ring: bool = False
    ring_sizes: Optional[List[Any]] = None

class ProductUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    status: Optional[str] = None
    is_ring: Optional[bool] = None
    ring_sizes: Optional[List[Any]] = None

class Product(ProductBase):
    id: int
    shopify_product_id: Optional[str] = None
    shopify_handle: Optional[str] = None

    class Config:
        from_attributes = True

class ProductSyncRequest(BaseModel):
    """Shopify product nodes to mirror; fetched from Shopify when omitted."""
    products: Optional[List[Dict[str, Any]]] = None

class ProductAttributeLinkIn(BaseModel):
    attribute_id: int
    default_value_id: Optional[int] = None

class ProductAttributesUpdate(BaseModel):
    attributes: List[ProductAttributeLinkIn]

class ProductAttributeLink(BaseModel):
    id: int
    attribute_id: int
    default_value_id: Optional[int] = None

    class Config:
        from_attributes = True

class RecommendationsUpdate(BaseModel):
    recommended_product_ids: List[int]

class RecommendationCreate(BaseModel):
    recommended_product_id: int
    display_order: Optional[int] = None

class Recommendation(BaseModel):
    id: int
    product_id: int
    recommended_product_id: int
    display_order: int
    recommended_product: Optional[Product] = None

    class Config:
        from_attributes = True

class VariantImageCreate(BaseModel):
    attribute_value_id: int
    image_url: str

class VariantImageDelete(BaseModel):
    attribute_value_id: int

class VariantImage(BaseModel):
    id: int
    product_id: int
    attribute_value_id: int
    image_url: str

    class Config:
        from_attributes = True
