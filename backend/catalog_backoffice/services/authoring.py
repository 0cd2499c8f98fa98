"""Interactive creation and read access for catalog entities.

Unlike the resolver, an administrative create never reuses an existing row:
a name already held by an active sibling is a conflict. Products are always
built from their ancestors, so their name, SKU and barcode are derived here
exactly as the bulk pipeline derives them.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, Iterable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_backoffice.core.config import get_settings
from catalog_backoffice.core.errors import (
    BadRequestError,
    CatalogError,
    ConflictError,
    InternalError,
)
from catalog_backoffice.db.models import Product, ProductStatus, Variant
from catalog_backoffice.services import audit as audit_actions
from catalog_backoffice.services.audit import AuditSink, safe_record
from catalog_backoffice.services.cache_invalidation import (
    CATEGORIES_TAG,
    PRODUCTS_TAG,
    CacheInvalidator,
    invalidate_all,
)
from catalog_backoffice.services.hierarchy import (
    EntityKind,
    cache_tag,
    ensure_name_available,
    entity_snapshot,
    find_live_product_clash,
    get_active_entity,
    spec_for,
)
from catalog_backoffice.services.identity import (
    clean_name,
    derive_product_identity,
    normalize_name,
)
from catalog_backoffice.services.resolver import allocate_slug

logger = logging.getLogger(__name__)


def _insert_entity(
    session: Session,
    kind: EntityKind,
    actor: str,
    name: str,
    parent_id: str | None,
    attributes: dict[str, Any],
) -> Any:
    spec = spec_for(kind)
    cleaned = clean_name(name)
    if not cleaned:
        raise BadRequestError(f"{spec.label} name is required")

    if spec.parent_kind is not None:
        if not parent_id:
            raise BadRequestError(
                f"{spec.label} requires a parent {spec_for(spec.parent_kind).label.lower()}"
            )
        get_active_entity(session, spec.parent_kind, parent_id)

    columns = spec.model.__table__.columns
    values = {}
    for key, value in attributes.items():
        if value is None:
            continue
        if key not in columns:
            raise BadRequestError(f"{spec.label} has no {key} field")
        values[key] = value

    ensure_name_available(session, kind, cleaned, parent_id)
    if spec.has_slug:
        values["slug"], _ = allocate_slug(session, kind, cleaned)
    if spec.parent_attr is not None:
        values[spec.parent_attr] = parent_id

    entity = spec.model(
        name=cleaned,
        status=spec.active_status,
        created_by=actor,
        updated_by=actor,
        **values,
    )
    session.add(entity)
    session.flush()
    return entity


def _run_create(session: Session, subject: str, build: Callable[[], Any]) -> Any:
    """Run ``build`` and commit, mapping persistence failures onto catalog errors."""
    try:
        entity = build()
        session.commit()
    except CatalogError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Unique violation creating {subject}: {e}")
        raise ConflictError(
            f"Could not create {subject}: a conflicting row was written concurrently"
        ) from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error creating {subject}: {e}", exc_info=True)
        raise InternalError(f"Failed to create {subject}") from e
    return entity


def _announce(
    kind: EntityKind,
    entity: Any,
    actor: str,
    tags: list[str],
    *,
    invalidator: CacheInvalidator | None,
    audit: AuditSink | None,
    metadata: dict[str, Any] | None = None,
) -> None:
    spec = spec_for(kind)
    logger.info(f"Created {spec.label} '{entity.name}' ({entity.id}) by {actor}")
    invalidate_all(invalidator, tags)
    safe_record(
        audit,
        audit_actions.CREATE,
        spec.tag,
        entity.id,
        actor,
        after=entity_snapshot(entity),
        metadata=metadata,
    )


def create_entity(
    session: Session,
    kind: EntityKind,
    actor: str,
    *,
    name: str,
    parent_id: str | None = None,
    invalidator: CacheInvalidator | None = None,
    audit: AuditSink | None = None,
    **attributes: Any,
) -> Any:
    """Create one manufacturer, brand, variant, pack, category or subcategory.

    ``attributes`` are optional column values such as ``description`` or a
    brand ``logo``; a value the kind has no column for is rejected.
    """
    if kind is EntityKind.PRODUCT:
        raise BadRequestError("Products are created from a variant and its packs")
    spec = spec_for(kind)
    entity = _run_create(
        session,
        f"{spec.label.lower()} '{clean_name(name)}'",
        lambda: _insert_entity(session, kind, actor, name, parent_id, attributes),
    )

    tags = [cache_tag(kind, entity.id)]
    if spec.has_slug:
        tags.append(CATEGORIES_TAG)
    _announce(kind, entity, actor, tags, invalidator=invalidator, audit=audit)
    return entity


def _distinct_pack_names(label: str, names: Iterable[str]) -> list[str]:
    cleaned = [clean_name(name) for name in names]
    if any(not name for name in cleaned):
        raise BadRequestError(f"{label} names must not be empty")
    keys = [normalize_name(name) for name in cleaned]
    if len(keys) != len(set(keys)):
        raise BadRequestError(f"{label} names must be unique")
    return cleaned


def create_variant(
    session: Session,
    brand_id: str,
    actor: str,
    *,
    name: str,
    description: str | None = None,
    pack_sizes: Iterable[str] = (),
    pack_types: Iterable[str] = (),
    invalidator: CacheInvalidator | None = None,
    audit: AuditSink | None = None,
) -> Variant:
    """Create a variant under ``brand_id`` together with its pack sizes and types."""
    sizes = _distinct_pack_names("Pack size", pack_sizes)
    types = _distinct_pack_names("Pack type", pack_types)
    created_packs: list[tuple[EntityKind, Any]] = []

    def build() -> Variant:
        variant = _insert_entity(
            session,
            EntityKind.VARIANT,
            actor,
            name,
            brand_id,
            {"description": description},
        )
        for kind, names in ((EntityKind.PACK_SIZE, sizes), (EntityKind.PACK_TYPE, types)):
            for pack_name in names:
                pack = _insert_entity(session, kind, actor, pack_name, variant.id, {})
                created_packs.append((kind, pack))
        return variant

    variant = _run_create(session, f"variant '{clean_name(name)}'", build)

    tags = [cache_tag(EntityKind.VARIANT, variant.id)]
    tags.extend(cache_tag(kind, pack.id) for kind, pack in created_packs)
    _announce(
        EntityKind.VARIANT,
        variant,
        actor,
        tags,
        invalidator=invalidator,
        audit=audit,
        metadata={"pack_sizes": len(sizes), "pack_types": len(types)},
    )
    return variant


def _require_child_of(
    child_kind: EntityKind, child: Any, parent_kind: EntityKind, parent_id: str
) -> None:
    if getattr(child, spec_for(child_kind).parent_attr) != parent_id:
        raise BadRequestError(
            f"{spec_for(child_kind).label} '{child.name}' does not belong to "
            f"{spec_for(parent_kind).label.lower()} {parent_id}"
        )


def create_product(
    session: Session,
    actor: str,
    *,
    variant_id: str,
    pack_size_id: str,
    pack_type_id: str,
    category_id: str,
    subcategory_id: str | None = None,
    description: str | None = None,
    price: Decimal | None = None,
    discount: Decimal | None = None,
    images: list[str] | None = None,
    thumbnail: str | None = None,
    invalidator: CacheInvalidator | None = None,
    audit: AuditSink | None = None,
) -> Product:
    """Create a QUEUE product whose identity is derived from its ancestors."""

    def build() -> Product:
        variant = get_active_entity(session, EntityKind.VARIANT, variant_id)
        brand = get_active_entity(session, EntityKind.BRAND, variant.brand_id)
        pack_size = get_active_entity(session, EntityKind.PACK_SIZE, pack_size_id)
        pack_type = get_active_entity(session, EntityKind.PACK_TYPE, pack_type_id)
        _require_child_of(EntityKind.PACK_SIZE, pack_size, EntityKind.VARIANT, variant.id)
        _require_child_of(EntityKind.PACK_TYPE, pack_type, EntityKind.VARIANT, variant.id)
        get_active_entity(session, EntityKind.CATEGORY, category_id)
        if subcategory_id:
            subcategory = get_active_entity(session, EntityKind.SUBCATEGORY, subcategory_id)
            _require_child_of(
                EntityKind.SUBCATEGORY, subcategory, EntityKind.CATEGORY, category_id
            )

        identity = derive_product_identity(
            brand.name,
            variant.name,
            pack_size.name,
            pack_type.name,
            country_code=get_settings().barcode_country_code,
        )
        clash = find_live_product_clash(session, identity.name, identity.sku)
        if clash is not None:
            raise ConflictError(
                f"Product with name \"{identity.name}\" or SKU \"{identity.sku}\" already exists",
                {"product_ids": [clash.id]},
            )

        product = Product(
            sku=identity.sku,
            name=identity.name,
            barcode=identity.barcode,
            description=description or None,
            price=price,
            discount=discount,
            images=list(images or []),
            thumbnail=thumbnail or None,
            status=ProductStatus.QUEUE.value,
            manufacturer_id=brand.manufacturer_id,
            brand_id=brand.id,
            variant_id=variant.id,
            pack_size_id=pack_size.id,
            pack_type_id=pack_type.id,
            category_id=category_id,
            subcategory_id=subcategory_id or None,
            created_by=actor,
            updated_by=actor,
        )
        session.add(product)
        session.flush()
        return product

    product = _run_create(session, f"product for variant {variant_id}", build)
    _announce(
        EntityKind.PRODUCT,
        product,
        actor,
        [cache_tag(EntityKind.PRODUCT, product.id), PRODUCTS_TAG],
        invalidator=invalidator,
        audit=audit,
    )
    return product


def list_entities(
    session: Session,
    kind: EntityKind,
    *,
    parent_id: str | None = None,
    name: str | None = None,
    include_deleted: bool = False,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[Any], int]:
    """Return one page of ``kind`` rows ordered by name, plus the total count."""
    spec = spec_for(kind)
    model = spec.model
    criteria = []
    if not include_deleted:
        criteria.append(model.deleted_at.is_(None))
    if parent_id is not None:
        if spec.parent_attr is None:
            raise BadRequestError(f"{spec.label} has no parent to filter by")
        criteria.append(getattr(model, spec.parent_attr) == parent_id)
    if name:
        criteria.append(model.name.ilike(f"%{name}%"))

    total = session.scalar(select(func.count(model.id)).where(*criteria)) or 0
    rows = session.scalars(
        select(model)
        .where(*criteria)
        .order_by(model.name, model.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return list(rows), total
