"""Soft delete and reactivation rules for every catalog entity kind."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_backoffice.core.config import get_settings
from catalog_backoffice.core.errors import (
    BadRequestError,
    CatalogError,
    ConflictError,
    NotFoundError,
)
from catalog_backoffice.db.models import EntityStatus, Product, Subcategory, Variant
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
    count_live_products,
    ensure_name_available,
    entity_snapshot,
    find_live_product_clash,
    get_active_entity,
    get_entity,
    live_product_filter,
    parent_id_of,
    slug_taken,
    spec_for,
)
from catalog_backoffice.services.identity import derive_product_identity
from catalog_backoffice.services.resolver import allocate_slug

logger = logging.getLogger(__name__)

# Child kinds whose active rows block deleting their parent.
BLOCKING_CHILDREN: dict[EntityKind, EntityKind] = {
    EntityKind.MANUFACTURER: EntityKind.BRAND,
    EntityKind.BRAND: EntityKind.VARIANT,
    EntityKind.CATEGORY: EntityKind.SUBCATEGORY,
}

PACK_KINDS = (EntityKind.PACK_SIZE, EntityKind.PACK_TYPE)

PRODUCT_PARENTS = (
    (EntityKind.BRAND, "brand_id"),
    (EntityKind.VARIANT, "variant_id"),
    (EntityKind.PACK_SIZE, "pack_size_id"),
    (EntityKind.PACK_TYPE, "pack_type_id"),
    (EntityKind.CATEGORY, "category_id"),
    (EntityKind.SUBCATEGORY, "subcategory_id"),
)


def _count_active_children(session: Session, kind: EntityKind, entity_id: str) -> int:
    spec = spec_for(kind)
    model = spec.model
    stmt = select(func.count(model.id)).where(
        getattr(model, spec.parent_attr) == entity_id, model.deleted_at.is_(None)
    )
    return session.execute(stmt).scalar_one()


def _count_category_products(session: Session, category_id: str) -> int:
    subcategory_ids = select(Subcategory.id).where(Subcategory.category_id == category_id)
    stmt = select(func.count(Product.id)).where(
        *live_product_filter(),
        or_(
            Product.category_id == category_id,
            Product.subcategory_id.in_(subcategory_ids),
        ),
    )
    return session.execute(stmt).scalar_one()


def live_children(session: Session, kind: EntityKind, entity: Any) -> dict[str, int]:
    """Non-zero counts of whatever still depends on ``entity``."""
    counts: dict[str, int] = {}
    child_kind = BLOCKING_CHILDREN.get(kind)
    if child_kind is not None:
        counts[child_kind.value] = _count_active_children(session, child_kind, entity.id)

    if kind is EntityKind.CATEGORY:
        counts["products"] = _count_category_products(session, entity.id)
    elif kind is not EntityKind.PRODUCT:
        counts["products"] = count_live_products(
            session, **{spec_for(kind).product_attr: entity.id}
        )
    return {label: count for label, count in counts.items() if count}


def _soft_delete(entity: Any, kind: EntityKind, actor: str, now: datetime) -> None:
    entity.status = spec_for(kind).archived_status
    entity.deleted_at = now
    entity.deleted_by = actor
    entity.updated_by = actor


def _archive_variant_packs(
    session: Session, variant: Variant, actor: str, now: datetime
) -> list[str]:
    blocking = []
    packs = []
    for kind in PACK_KINDS:
        spec = spec_for(kind)
        for pack in session.execute(
            select(spec.model).where(
                spec.model.variant_id == variant.id, spec.model.deleted_at.is_(None)
            )
        ).scalars():
            live = count_live_products(session, **{spec.product_attr: pack.id})
            if live:
                blocking.append(f"{spec.label.lower()} '{pack.name}' ({live})")
            packs.append((kind, pack))
    if blocking:
        raise BadRequestError(
            f"Cannot delete variant '{variant.name}': packs still used by live products: "
            + ", ".join(blocking)
        )

    tags = []
    for kind, pack in packs:
        pack.status = EntityStatus.ARCHIVED.value
        pack.deleted_at = now
        pack.deleted_by = actor
        pack.updated_by = actor
        tags.append(cache_tag(kind, pack.id))
    return tags


def _lifecycle_tags(kind: EntityKind, entity_id: str) -> list[str]:
    tags = [cache_tag(kind, entity_id)]
    if kind is EntityKind.PRODUCT:
        tags.append(PRODUCTS_TAG)
    if spec_for(kind).has_slug:
        tags.append(CATEGORIES_TAG)
    return tags


def delete_entity(
    session: Session,
    kind: EntityKind,
    entity_id: str,
    actor: str,
    *,
    invalidator: CacheInvalidator | None = None,
    audit: AuditSink | None = None,
) -> Any:
    """Soft-delete an entity once nothing live depends on it."""
    spec = spec_for(kind)
    try:
        entity = get_active_entity(session, kind, entity_id)
        before = entity_snapshot(entity)

        blockers = live_children(session, kind, entity)
        if blockers:
            described = ", ".join(f"{count} {label}" for label, count in blockers.items())
            raise BadRequestError(
                f"Cannot delete {spec.label.lower()} '{entity.name}': still referenced by {described}",
                {"children": blockers},
            )

        now = datetime.now(timezone.utc)
        tags = _lifecycle_tags(kind, entity.id)
        if kind is EntityKind.VARIANT:
            tags.extend(_archive_variant_packs(session, entity, actor, now))
        _soft_delete(entity, kind, actor, now)
        session.commit()
    except CatalogError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error deleting {spec.label} {entity_id}: {e}", exc_info=True)
        raise

    logger.info(f"Deleted {spec.label} {entity_id} by {actor}")
    invalidate_all(invalidator, tags)
    safe_record(
        audit,
        audit_actions.DELETE,
        spec.tag,
        entity_id,
        actor,
        before=before,
        after=entity_snapshot(entity),
    )
    return entity


def _ensure_parent_active(
    session: Session, kind: EntityKind, parent_kind: EntityKind, parent_id: str | None
) -> None:
    parent_spec = spec_for(parent_kind)
    parent = session.get(parent_spec.model, parent_id) if parent_id else None
    if parent is None or parent.deleted_at is not None:
        raise BadRequestError(
            f"Cannot reactivate {spec_for(kind).label.lower()}: "
            f"its {parent_spec.label.lower()} is deleted"
        )


def _restore_variant_packs(
    session: Session, variant: Variant, deleted_at: datetime, actor: str
) -> list[str]:
    """Restore packs archived in the same operation as the variant."""
    tags = []
    for kind in PACK_KINDS:
        model = spec_for(kind).model
        packs = session.execute(
            select(model).where(model.variant_id == variant.id, model.deleted_at == deleted_at)
        ).scalars()
        for pack in packs:
            pack.status = EntityStatus.ACTIVE.value
            pack.deleted_at = None
            pack.deleted_by = None
            pack.updated_by = actor
            tags.append(cache_tag(kind, pack.id))
    return tags


def _reactivate_product(session: Session, product: Product) -> None:
    for parent_kind, attr in PRODUCT_PARENTS:
        parent_id = getattr(product, attr)
        if parent_id is None and parent_kind is EntityKind.SUBCATEGORY:
            continue
        _ensure_parent_active(session, EntityKind.PRODUCT, parent_kind, parent_id)

    identity = derive_product_identity(
        product.brand.name,
        product.variant.name,
        product.pack_size.name,
        product.pack_type.name,
        country_code=get_settings().barcode_country_code,
    )
    clash = find_live_product_clash(
        session, identity.name, identity.sku, exclude_id=product.id
    )
    if clash is not None:
        raise ConflictError(
            f"Cannot reactivate product: '{clash.name}' (SKU {clash.sku}) is already live",
            {"product_ids": [clash.id]},
        )
    product.name = identity.name
    product.sku = identity.sku
    product.barcode = identity.barcode


def reactivate_entity(
    session: Session,
    kind: EntityKind,
    entity_id: str,
    actor: str,
    *,
    invalidator: CacheInvalidator | None = None,
    audit: AuditSink | None = None,
) -> Any:
    """Bring a soft-deleted entity back, provided its parents are active."""
    spec = spec_for(kind)
    try:
        entity = get_entity(session, kind, entity_id)
        if entity.deleted_at is None:
            raise NotFoundError(f"{spec.label} {entity_id} is not deleted")
        before = entity_snapshot(entity)
        tags = _lifecycle_tags(kind, entity.id)

        if kind is EntityKind.PRODUCT:
            _reactivate_product(session, entity)
        else:
            parent_id = parent_id_of(kind, entity)
            if spec.parent_kind is not None:
                _ensure_parent_active(session, kind, spec.parent_kind, parent_id)
            ensure_name_available(session, kind, entity.name, parent_id, exclude_id=entity.id)
            if spec.has_slug and slug_taken(session, kind, entity.slug, exclude_id=entity.id):
                entity.slug, _ = allocate_slug(session, kind, entity.name, exclude_id=entity.id)
            if kind is EntityKind.VARIANT:
                tags.extend(_restore_variant_packs(session, entity, entity.deleted_at, actor))

        entity.status = spec.active_status
        entity.deleted_at = None
        entity.deleted_by = None
        entity.updated_by = actor
        session.commit()
    except CatalogError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Unique violation reactivating {spec.label} {entity_id}: {e}")
        raise ConflictError(
            f"{spec.label} {entity_id} could not be reactivated: a conflicting row exists"
        ) from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(
            f"Database error reactivating {spec.label} {entity_id}: {e}", exc_info=True
        )
        raise

    logger.info(f"Reactivated {spec.label} {entity_id} by {actor}")
    invalidate_all(invalidator, tags)
    safe_record(
        audit,
        audit_actions.REACTIVATE,
        spec.tag,
        entity_id,
        actor,
        before=before,
        after=entity_snapshot(entity),
    )
    return entity
