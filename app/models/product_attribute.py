from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.session import Base

class ProductAttributeLink(Base):
    """Attributes assigned to a product, with an optional per-product default value."""
    __tablename__ = "product_attributes"
    __table_args__ = (
        UniqueConstraint("product_id", "attribute_id", name="uq_product_attributes_pair"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    attribute_id = Column(Integer, ForeignKey("attributes.id", ondelete="CASCADE"), nullable=False)
    default_value_id = Column(Integer, ForeignKey("attribute_values.id", ondelete="SET NULL"), nullable=True)

    product = relationship("Product", back_populates="attribute_links")
    attribute = relationship("ProductAttribute")
