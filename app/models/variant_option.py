from sqlalchemy import Column, Integer, ForeignKey
from sqlalchemy.orm import relationship
from app.db.session import Base

class VariantOption(Base):
    __tablename__ = "variant_options"

    id = Column(Integer, primary_key=True, index=True)
    variant_id = Column(Integer, ForeignKey("variants.id", ondelete="CASCADE"), nullable=False, index=True)
    attribute_id = Column(Integer, ForeignKey("attributes.id", ondelete="CASCADE"), nullable=False)
    attribute_value_id = Column(Integer, ForeignKey("attribute_values.id", ondelete="CASCADE"), nullable=False)

    variant = relationship("ProductVariant", back_populates="options")
    attribute = relationship("ProductAttribute")
    attribute_value = relationship("ProductAttributeValue")

    @property
    def attribute_name(self) -> str:
        return self.attribute.name

    @property
    def value(self) -> str:
        return self.attribute_value.value
