"""SQLAlchemy model for leaf product records.

``name``, ``sku`` and ``barcode`` are derived from the ancestor chain and are
rewritten by the cascade engine whenever an ancestor is renamed.
"""

from sqlalchemy import JSON, Column, ForeignKey, Index, Numeric, String, Text, func
from sqlalchemy.orm import relationship

from catalog_backoffice.db.base import (
    ACTIVE_UNIQUE,
    AuditColumnsMixin,
    Base,
    SoftDeleteMixin,
    new_id,
)
from catalog_backoffice.db.models.enums import ProductStatus


class Product(AuditColumnsMixin, SoftDeleteMixin, Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    sku = Column(String(255), nullable=False, index=True)
    name = Column(String(512), nullable=False)
    barcode = Column(String(13))
    description = Column(Text)
    price = Column(Numeric(12, 2))
    discount = Column(Numeric(5, 2))
    images = Column(JSON, nullable=False, default=list)
    thumbnail = Column(Text)
    status = Column(String(16), nullable=False, default=ProductStatus.QUEUE.value)

    manufacturer_id = Column(
        String(36), ForeignKey("manufacturers.id"), nullable=False, index=True
    )
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False, index=True)
    variant_id = Column(String(36), ForeignKey("variants.id"), nullable=False, index=True)
    pack_size_id = Column(
        String(36), ForeignKey("pack_sizes.id"), nullable=False, index=True
    )
    pack_type_id = Column(
        String(36), ForeignKey("pack_types.id"), nullable=False, index=True
    )
    category_id = Column(
        String(36), ForeignKey("categories.id"), nullable=False, index=True
    )
    subcategory_id = Column(String(36), ForeignKey("subcategories.id"), index=True)

    brand = relationship("Brand")
    variant = relationship("Variant")
    pack_size = relationship("PackSize")
    pack_type = relationship("PackType")

    __table_args__ = (
        Index("ix_products_sku_lower", func.lower(sku), **ACTIVE_UNIQUE),
    )
