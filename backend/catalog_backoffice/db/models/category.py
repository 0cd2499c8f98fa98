"""SQLAlchemy models for the browsing taxonomy (category → subcategory)."""

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


class Category(AuditColumnsMixin, SoftDeleteMixin, Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(String(16), nullable=False, default=EntityStatus.ACTIVE.value)

    subcategories = relationship("Subcategory", back_populates="category")

    __table_args__ = (
        Index("uq_categories_name_active", func.lower(name), **ACTIVE_UNIQUE),
        Index("uq_categories_slug_active", slug, **ACTIVE_UNIQUE),
    )


class Subcategory(AuditColumnsMixin, SoftDeleteMixin, Base):
    __tablename__ = "subcategories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text)
    category_id = Column(
        String(36), ForeignKey("categories.id"), nullable=False, index=True
    )
    status = Column(String(16), nullable=False, default=EntityStatus.ACTIVE.value)

    category = relationship("Category", back_populates="subcategories")

    __table_args__ = (
        Index(
            "uq_subcategories_category_name_active",
            category_id,
            func.lower(name),
            **ACTIVE_UNIQUE,
        ),
        Index("uq_subcategories_slug_active", slug, **ACTIVE_UNIQUE),
    )
