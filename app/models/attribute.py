from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.session import Base

class ProductAttribute(Base):
    __tablename__ = "attributes"
    __table_args__ = (
        UniqueConstraint("shop_domain", "name", name="uq_attributes_shop_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    shop_domain = Column(String, index=True, nullable=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False)
    is_primary = Column(Boolean, default=False, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    values = relationship(
        "ProductAttributeValue",
        back_populates="attribute",
        cascade="all, delete-orphan",
        order_by="(ProductAttributeValue.display_order, ProductAttributeValue.id)",
    )
