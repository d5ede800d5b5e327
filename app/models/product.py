from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.orm import relationship
from app.db.session import Base

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    shop_domain = Column(String, index=True, nullable=True)
    shopify_product_id = Column(String, unique=True, index=True, nullable=True)
    shopify_handle = Column(String)
    title = Column(String, nullable=False)
    description = Column(String)
    image_url = Column(String)
    status = Column(String, default="active")
    is_ring = Column(Boolean, default=False, nullable=False)
    ring_sizes = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )
    attribute_links = relationship(
        "ProductAttributeLink",
        back_populates="product",
        cascade="all, delete-orphan",
    )
    recommendations = relationship(
        "ProductRecommendation",
        foreign_keys="ProductRecommendation.product_id",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductRecommendation.display_order",
    )
    images = relationship("VariantImage", back_populates="product", cascade="all, delete-orphan")
