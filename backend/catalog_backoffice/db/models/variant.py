"""SQLAlchemy models for variants and their independent pack size / pack type sets."""

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


class Variant(AuditColumnsMixin, SoftDeleteMixin, Base):
    __tablename__ = "variants"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=EntityStatus.ACTIVE.value)

    brand = relationship("Brand", back_populates="variants")
    pack_sizes = relationship("PackSize", back_populates="variant")
    pack_types = relationship("PackType", back_populates="variant")

    __table_args__ = (
        Index("uq_variants_brand_name_active", brand_id, func.lower(name), **ACTIVE_UNIQUE),
    )


class PackSize(AuditColumnsMixin, SoftDeleteMixin, Base):
    __tablename__ = "pack_sizes"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    variant_id = Column(String(36), ForeignKey("variants.id"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=EntityStatus.ACTIVE.value)

    variant = relationship("Variant", back_populates="pack_sizes")

    __table_args__ = (
        Index(
            "uq_pack_sizes_variant_name_active",
            variant_id,
            func.lower(name),
            **ACTIVE_UNIQUE,
        ),
    )


class PackType(AuditColumnsMixin, SoftDeleteMixin, Base):
    __tablename__ = "pack_types"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    variant_id = Column(String(36), ForeignKey("variants.id"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=EntityStatus.ACTIVE.value)

    variant = relationship("Variant", back_populates="pack_types")

    __table_args__ = (
        Index(
            "uq_pack_types_variant_name_active",
            variant_id,
            func.lower(name),
            **ACTIVE_UNIQUE,
        ),
    )
