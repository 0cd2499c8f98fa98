"""SQLAlchemy models for the manufacturer → brand chain."""

from sqlalchemy import Column, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import relationship

from catalog_backoffice.db.base import (
    ACTIVE_UNIQUE,
    AuditColumnsMixin,
    Base,
    SoftDeleteMixin,
    new_id,
)
from catalog_backoffice.db.models.enums import EntityStatus


class Manufacturer(AuditColumnsMixin, SoftDeleteMixin, Base):
    __tablename__ = "manufacturers"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255))
    phone = Column(String(64))
    address = Column(Text)
    status = Column(String(16), nullable=False, default=EntityStatus.ACTIVE.value)

    brands = relationship("Brand", back_populates="manufacturer")

    __table_args__ = (
        Index("uq_manufacturers_name_active", func.lower(name), **ACTIVE_UNIQUE),
    )


class Brand(AuditColumnsMixin, SoftDeleteMixin, Base):
    __tablename__ = "brands"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    logo = Column(Text)
    manufacturer_id = Column(
        String(36), ForeignKey("manufacturers.id"), nullable=False, index=True
    )
    status = Column(String(16), nullable=False, default=EntityStatus.ACTIVE.value)

    manufacturer = relationship("Manufacturer", back_populates="brands")
    variants = relationship("Variant", back_populates="brand")

    __table_args__ = (
        Index(
            "uq_brands_manufacturer_name_active",
            manufacturer_id,
            func.lower(name),
            **ACTIVE_UNIQUE,
        ),
    )
