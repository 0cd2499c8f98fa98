"""Fixed catalog hierarchy shape shared by the resolver, cascade and lifecycle services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from catalog_backoffice.core.errors import ConflictError, NotFoundError
from catalog_backoffice.db.models import (
    Brand,
    Category,
    EntityStatus,
    Manufacturer,
    PackSize,
    PackType,
    Product,
    ProductStatus,
    Subcategory,
    Variant,
)
from catalog_backoffice.services.identity import clean_name


class EntityKind(str, Enum):
    """Entity kinds, valued by their URL path segment."""

    MANUFACTURER = "manufacturers"
    BRAND = "brands"
    VARIANT = "variants"
    PACK_SIZE = "pack-sizes"
    PACK_TYPE = "pack-types"
    CATEGORY = "categories"
    SUBCATEGORY = "subcategories"
    PRODUCT = "products"


@dataclass(frozen=True)
class KindSpec:
    model: type
    label: str
    tag: str
    parent_kind: EntityKind | None = None
    parent_attr: str | None = None
    # Product foreign key pointing at this kind, when products reference it.
    product_attr: str | None = None
    has_slug: bool = False
    # Whether the kind's name feeds derived product identity.
    identity: bool = False
    archived_status: str = EntityStatus.INACTIVE.value
    active_status: str = EntityStatus.ACTIVE.value


KIND_SPECS: dict[EntityKind, KindSpec] = {
    EntityKind.MANUFACTURER: KindSpec(
        model=Manufacturer,
        label="Manufacturer",
        tag="manufacturer",
        product_attr="manufacturer_id",
    ),
    EntityKind.BRAND: KindSpec(
        model=Brand,
        label="Brand",
        tag="brand",
        parent_kind=EntityKind.MANUFACTURER,
        parent_attr="manufacturer_id",
        product_attr="brand_id",
        identity=True,
    ),
    EntityKind.VARIANT: KindSpec(
        model=Variant,
        label="Variant",
        tag="variant",
        parent_kind=EntityKind.BRAND,
        parent_attr="brand_id",
        product_attr="variant_id",
        identity=True,
        archived_status=EntityStatus.ARCHIVED.value,
    ),
    EntityKind.PACK_SIZE: KindSpec(
        model=PackSize,
        label="Pack size",
        tag="pack_size",
        parent_kind=EntityKind.VARIANT,
        parent_attr="variant_id",
        product_attr="pack_size_id",
        identity=True,
        archived_status=EntityStatus.ARCHIVED.value,
    ),
    EntityKind.PACK_TYPE: KindSpec(
        model=PackType,
        label="Pack type",
        tag="pack_type",
        parent_kind=EntityKind.VARIANT,
        parent_attr="variant_id",
        product_attr="pack_type_id",
        identity=True,
        archived_status=EntityStatus.ARCHIVED.value,
    ),
    EntityKind.CATEGORY: KindSpec(
        model=Category,
        label="Category",
        tag="category",
        product_attr="category_id",
        has_slug=True,
    ),
    EntityKind.SUBCATEGORY: KindSpec(
        model=Subcategory,
        label="Subcategory",
        tag="subcategory",
        parent_kind=EntityKind.CATEGORY,
        parent_attr="category_id",
        product_attr="subcategory_id",
        has_slug=True,
    ),
    EntityKind.PRODUCT: KindSpec(
        model=Product,
        label="Product",
        tag="product",
        archived_status=ProductStatus.ARCHIVED.value,
        active_status=ProductStatus.QUEUE.value,
    ),
}


def spec_for(kind: EntityKind) -> KindSpec:
    return KIND_SPECS[kind]


def cache_tag(kind: EntityKind, entity_id: str) -> str:
    return f"{KIND_SPECS[kind].tag}:{entity_id}"


def live_product_filter() -> list[Any]:
    """Criteria selecting live products (not deleted, not archived)."""
    return [
        Product.deleted_at.is_(None),
        Product.status != ProductStatus.ARCHIVED.value,
    ]


def count_live_products(session: Session, **criteria: Any) -> int:
    stmt = select(func.count(Product.id)).where(*live_product_filter())
    for attr, value in criteria.items():
        stmt = stmt.where(getattr(Product, attr) == value)
    return session.execute(stmt).scalar_one()


def find_live_product_clash(
    session: Session, name: str, sku: str, *, exclude_id: str | None = None
) -> Product | None:
    """A live product already holding ``name`` or ``sku`` (case-insensitive)."""
    stmt = select(Product).where(
        *live_product_filter(),
        or_(
            func.lower(Product.sku) == func.lower(sku),
            func.lower(Product.name) == func.lower(name),
        ),
    )
    if exclude_id is not None:
        stmt = stmt.where(Product.id != exclude_id)
    return session.execute(stmt.limit(1)).scalars().first()


def get_entity(session: Session, kind: EntityKind, entity_id: str) -> Any:
    """Return the row regardless of deletion state, or raise ``NotFoundError``."""
    spec = KIND_SPECS[kind]
    entity = session.get(spec.model, entity_id)
    if entity is None:
        raise NotFoundError(f"{spec.label} {entity_id} not found")
    return entity


def get_active_entity(session: Session, kind: EntityKind, entity_id: str) -> Any:
    """Return the non-deleted row, or raise ``NotFoundError``."""
    spec = KIND_SPECS[kind]
    entity = session.get(spec.model, entity_id)
    if entity is None or entity.deleted_at is not None:
        raise NotFoundError(f"{spec.label} {entity_id} not found")
    return entity


def find_active_by_name(
    session: Session,
    kind: EntityKind,
    name: str,
    parent_id: str | None = None,
    *,
    exclude_id: str | None = None,
) -> Any | None:
    """Case-insensitive lookup of an active row in its (name, parent) slot."""
    spec = KIND_SPECS[kind]
    model = spec.model
    # Both sides fold through the database so lookups agree with the unique index.
    stmt = select(model).where(
        func.lower(model.name) == func.lower(clean_name(name)),
        model.deleted_at.is_(None),
    )
    if spec.parent_attr is not None:
        stmt = stmt.where(getattr(model, spec.parent_attr) == parent_id)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    return session.execute(stmt.limit(1)).scalars().first()


def slug_taken(
    session: Session, kind: EntityKind, slug: str, *, exclude_id: str | None = None
) -> bool:
    model = KIND_SPECS[kind].model
    stmt = select(model.id).where(model.slug == slug, model.deleted_at.is_(None))
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    return session.execute(stmt.limit(1)).first() is not None


def parent_id_of(kind: EntityKind, entity: Any) -> str | None:
    spec = KIND_SPECS[kind]
    if spec.parent_attr is None:
        return None
    return getattr(entity, spec.parent_attr)


def entity_snapshot(entity: Any) -> dict[str, Any]:
    """Audit-friendly view of the mutable identity fields of a row."""
    snapshot = {"id": entity.id, "name": entity.name, "status": entity.status}
    for attr in ("slug", "sku", "barcode", "description", "deleted_at"):
        if hasattr(entity, attr):
            snapshot[attr] = getattr(entity, attr)
    return snapshot


def ensure_name_available(
    session: Session,
    kind: EntityKind,
    name: str,
    parent_id: str | None,
    *,
    exclude_id: str | None = None,
) -> None:
    """Raise ``ConflictError`` when an active sibling already holds ``name``."""
    clash = find_active_by_name(session, kind, name, parent_id, exclude_id=exclude_id)
    if clash is not None:
        raise ConflictError(
            f"{KIND_SPECS[kind].label} '{clash.name}' already exists",
            {"kind": kind.value, "existing_id": clash.id},
        )
