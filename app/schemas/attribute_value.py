from typing import Optional
from pydantic import BaseModel

class AttributeValueBase(BaseModel):
    value: str
    image_url: Optional[str] = None
    is_default: bool = False
    display_order: Optional[int] = None

class AttributeValueCreate(AttributeValueBase):
    pass

class AttributeValueUpdate(BaseModel):
    value: Optional[str] = None
    image_url: Optional[str] = None
    is_default: Optional[bool] = None
    display_order: Optional[int] = None

class AttributeValue(AttributeValueBase):
    id: int
    attribute_id: int
    slug: str
    display_order: int = 0

    class Config:
        from_attributes = True
