from typing import List, Optional
from pydantic import BaseModel
from app.schemas.attribute_value import AttributeValue, AttributeValueCreate

class AttributeBase(BaseModel):
    name: str
    display_order: int = 0

class AttributeCreate(AttributeBase):
    is_primary: bool = False
    values: List[AttributeValueCreate] = []

class AttributeUpdate(BaseModel):
    name: Optional[str] = None
    display_order: Optional[int] = None
    is_primary: Optional[bool] = None

class Attribute(AttributeBase):
    id: int
    slug: str
    is_primary: bool = False
    values: List[AttributeValue] = []

    class Config:
        from_attributes = True
