from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.session import Base

class ProductVariant(Base):
    __tablename__ = "variants"
    __table_args__ = (
        UniqueConstraint("product_id", "combination_key", name="uq_variants_product_combination"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    combination_key = Column(String, nullable=False)
    price = Column(Float, default=0.0, nullable=False)
    compare_at_price = Column(Float, nullable=True)
    cost = Column(Float, nullable=True)
    sku = Column(String, nullable=True)
    stock_quantity = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    shopify_variant_id = Column(String, nullable=True, index=True)
    image_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product", back_populates="variants")
    options = relationship(
        "VariantOption",
        back_populates="variant",
        cascade="all, delete-orphan",
        order_by="VariantOption.id",
    )
