"""Rename cascades from ancestors to the derived identity of their products.

A rename is planned before anything is written: every live product that
depends on a renamed entity gets its prospective name/SKU/barcode computed
from the new names, and the whole call is rejected if two products would
collide. Only then are the entity and its products updated, in one commit.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_backoffice.core.config import get_settings
from catalog_backoffice.core.errors import BadRequestError, CatalogError, ConflictError
from catalog_backoffice.db.models import EntityStatus, Product, Variant
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
    get_active_entity,
    live_product_filter,
    parent_id_of,
    spec_for,
)
from catalog_backoffice.services.identity import (
    ProductIdentity,
    clean_name,
    derive_product_identity,
)
from catalog_backoffice.services.resolver import allocate_slug

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Marks an optional field the caller did not send (``None`` clears it).
UNSET: Any = _Unset()

Overrides = dict[tuple[EntityKind, str], str]


@dataclass
class IdentityUpdate:
    product: Product
    identity: ProductIdentity

    @property
    def changed(self) -> bool:
        return (
            self.product.name != self.identity.name
            or self.product.sku != self.identity.sku
            or self.product.barcode != self.identity.barcode
        )


@dataclass
class _PackPlan:
    kind: EntityKind
    archive: list[Any] = field(default_factory=list)
    renames: list[tuple[Any, str]] = field(default_factory=list)
    creates: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Identity planning
# ---------------------------------------------------------------------------


def _ancestor_names(product: Product, overrides: Overrides) -> tuple[str, str, str, str]:
    def name_of(kind: EntityKind, entity: Any) -> str:
        return overrides.get((kind, entity.id), entity.name)

    return (
        name_of(EntityKind.BRAND, product.brand),
        name_of(EntityKind.VARIANT, product.variant),
        name_of(EntityKind.PACK_SIZE, product.pack_size),
        name_of(EntityKind.PACK_TYPE, product.pack_type),
    )


def plan_identity_updates(session: Session, overrides: Overrides) -> list[IdentityUpdate]:
    """Compute prospective identities of every live product touched by ``overrides``.

    Raises ``ConflictError`` if two prospective identities collide, or if one
    collides with a live product outside the rename.
    """
    if not overrides:
        return []

    conditions = [
        getattr(Product, spec_for(kind).product_attr) == entity_id
        for kind, entity_id in overrides
    ]
    products = (
        session.execute(select(Product).where(*live_product_filter(), or_(*conditions)))
        .scalars()
        .all()
    )
    country_code = get_settings().barcode_country_code
    updates = [
        IdentityUpdate(
            product,
            derive_product_identity(
                *_ancestor_names(product, overrides), country_code=country_code
            ),
        )
        for product in products
    ]
    _check_collisions(session, updates)
    return updates


def _check_collisions(session: Session, updates: Sequence[IdentityUpdate]) -> None:
    if not updates:
        return

    groups: dict[str, dict[str, tuple[str, list[str]]]] = {"SKU": {}, "name": {}}
    for update in updates:
        for label, value in (("SKU", update.identity.sku), ("name", update.identity.name)):
            display, ids = groups[label].setdefault(value.lower(), (value, []))
            ids.append(update.product.id)

    for label, grouped in groups.items():
        for display, ids in grouped.values():
            if len(ids) > 1:
                raise ConflictError(
                    f"Rename would give {len(ids)} products the same {label} '{display}'",
                    {"field": label.lower(), "value": display, "product_ids": sorted(ids)},
                )

    dependent_ids = [update.product.id for update in updates]
    clash = (
        session.execute(
            select(Product)
            .where(
                *live_product_filter(),
                Product.id.not_in(dependent_ids),
                or_(
                    func.lower(Product.sku).in_(list(groups["SKU"])),
                    func.lower(Product.name).in_(list(groups["name"])),
                ),
            )
            .limit(1)
        )
        .scalars()
        .first()
    )
    if clash is not None:
        raise ConflictError(
            f"Rename would collide with existing product '{clash.name}' (SKU {clash.sku})",
            {"product_ids": [clash.id]},
        )


def apply_identity_updates(
    session: Session, updates: Iterable[IdentityUpdate], actor: str
) -> int:
    """Write planned identities; returns the number of products changed."""
    changed = [update for update in updates if update.changed]
    if len(changed) > 1:
        # Park SKUs first so a permutation never trips the unique SKU index mid-flush.
        for update in changed:
            update.product.sku = f"~{update.product.id}"
        session.flush()
    for update in changed:
        update.product.name = update.identity.name
        update.product.sku = update.identity.sku
        update.product.barcode = update.identity.barcode
        update.product.updated_by = actor
    session.flush()
    return len(changed)


# ---------------------------------------------------------------------------
# Renames
# ---------------------------------------------------------------------------


def _has_description(kind: EntityKind) -> bool:
    return "description" in spec_for(kind).model.__table__.columns


def _finish(
    session: Session,
    kind: EntityKind,
    entity: Any,
    actor: str,
    before: dict[str, Any],
    tags: list[str],
    *,
    invalidator: CacheInvalidator | None,
    audit: AuditSink | None,
    metadata: dict[str, Any],
) -> None:
    session.commit()
    session.refresh(entity)
    invalidate_all(invalidator, tags)
    safe_record(
        audit,
        audit_actions.UPDATE,
        spec_for(kind).tag,
        entity.id,
        actor,
        before=before,
        after=entity_snapshot(entity),
        metadata=metadata,
    )


def rename_entity(
    session: Session,
    kind: EntityKind,
    entity_id: str,
    actor: str,
    *,
    name: str | None = None,
    description: Any = UNSET,
    invalidator: CacheInvalidator | None = None,
    audit: AuditSink | None = None,
) -> Any:
    """Rename and/or re-describe one entity, cascading to dependent products."""
    spec = spec_for(kind)
    try:
        entity = get_active_entity(session, kind, entity_id)
        before = entity_snapshot(entity)
        updates: list[IdentityUpdate] = []

        if name is not None:
            if kind is EntityKind.PRODUCT:
                raise BadRequestError(
                    "Product names are derived; rename its brand, variant or pack instead"
                )
            new_name = clean_name(name)
            if not new_name:
                raise BadRequestError(f"{spec.label} name must not be empty")
            if new_name != entity.name:
                ensure_name_available(
                    session, kind, new_name, parent_id_of(kind, entity), exclude_id=entity.id
                )
                if spec.identity:
                    updates = plan_identity_updates(session, {(kind, entity.id): new_name})
                entity.name = new_name
                if spec.has_slug:
                    entity.slug, _ = allocate_slug(session, kind, new_name, exclude_id=entity.id)

        if description is not UNSET:
            if not _has_description(kind):
                raise BadRequestError(f"{spec.label} has no description field")
            entity.description = description

        entity.updated_by = actor
        products_changed = apply_identity_updates(session, updates, actor)

        tags = [cache_tag(kind, entity.id)]
        if spec.has_slug:
            tags.append(CATEGORIES_TAG)
        if products_changed:
            tags.append(PRODUCTS_TAG)
        _finish(
            session,
            kind,
            entity,
            actor,
            before,
            tags,
            invalidator=invalidator,
            audit=audit,
            metadata={"products_updated": products_changed},
        )
    except CatalogError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Unique violation renaming {spec.label} {entity_id}: {e}")
        raise ConflictError(
            f"{spec.label} {entity_id} could not be renamed: a conflicting row was written concurrently"
        ) from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error renaming {spec.label} {entity_id}: {e}", exc_info=True)
        raise

    if products_changed:
        logger.info(
            f"Renamed {spec.label} {entity_id}; regenerated identity of {products_changed} product(s)"
        )
    return entity


# ---------------------------------------------------------------------------
# Variant pack sets
# ---------------------------------------------------------------------------


def _pack_entry(entry: Any) -> tuple[str | None, str | None]:
    if isinstance(entry, Mapping):
        return entry.get("id"), entry.get("name")
    return getattr(entry, "id", None), getattr(entry, "name", None)


def _plan_pack_set(
    session: Session, variant: Variant, kind: EntityKind, entries: Sequence[Any]
) -> _PackPlan:
    spec = spec_for(kind)
    model = spec.model
    current = {
        pack.id: pack
        for pack in session.execute(
            select(model).where(model.variant_id == variant.id, model.deleted_at.is_(None))
        ).scalars()
    }
    plan = _PackPlan(kind)
    seen_names: set[str] = set()
    seen_ids: set[str] = set()

    for entry in entries:
        entry_id, raw_name = _pack_entry(entry)
        name = clean_name(raw_name or "")
        if not name:
            raise BadRequestError(f"{spec.label} name must not be empty")
        if name.lower() in seen_names:
            raise BadRequestError(f"Duplicate {spec.label.lower()} '{name}' in request")
        seen_names.add(name.lower())

        if entry_id is None:
            plan.creates.append(name)
            continue
        if entry_id not in current:
            raise BadRequestError(
                f"{spec.label} {entry_id} does not belong to variant {variant.id}"
            )
        if entry_id in seen_ids:
            raise BadRequestError(f"{spec.label} {entry_id} listed more than once")
        seen_ids.add(entry_id)
        if name != current[entry_id].name:
            plan.renames.append((current[entry_id], name))

    plan.archive = [pack for pack_id, pack in current.items() if pack_id not in seen_ids]
    blocking = []
    for pack in plan.archive:
        live = count_live_products(session, **{spec.product_attr: pack.id})
        if live:
            blocking.append((pack, live))
    if blocking:
        names = ", ".join(f"'{pack.name}' ({live} live product(s))" for pack, live in blocking)
        raise BadRequestError(
            f"Cannot remove {spec.label.lower()} entries still used by products: {names}",
            {"blocking_ids": [pack.id for pack, _ in blocking]},
        )
    return plan


def _apply_pack_plan(
    session: Session, variant: Variant, plan: _PackPlan, actor: str, now: datetime
) -> list[str]:
    """Archive, rename and create pack entries; returns the touched ids."""
    model = spec_for(plan.kind).model
    touched = []

    for pack in plan.archive:
        pack.status = EntityStatus.ARCHIVED.value
        pack.deleted_at = now
        pack.deleted_by = actor
        pack.updated_by = actor
        touched.append(pack.id)
    session.flush()

    if len(plan.renames) > 1:
        # Park names first so swapped names never collide on the sibling index.
        for pack, _ in plan.renames:
            pack.name = f"~{pack.id}"
        session.flush()
    for pack, name in plan.renames:
        pack.name = name
        pack.updated_by = actor
        touched.append(pack.id)
    session.flush()

    for name in plan.creates:
        pack = model(
            name=name,
            variant_id=variant.id,
            status=EntityStatus.ACTIVE.value,
            created_by=actor,
            updated_by=actor,
        )
        session.add(pack)
        session.flush()
        touched.append(pack.id)
    return touched


def update_variant(
    session: Session,
    variant_id: str,
    actor: str,
    *,
    name: str | None = None,
    description: Any = UNSET,
    pack_sizes: Sequence[Any] | None = None,
    pack_types: Sequence[Any] | None = None,
    invalidator: CacheInvalidator | None = None,
    audit: AuditSink | None = None,
) -> Variant:
    """Update a variant and reconcile its pack size / pack type sets in one transaction.

    Pack entries are ``{"id": ..., "name": ...}``: entries with an id are
    renamed, entries without one are created, and active entries left out are
    archived provided no live product still uses them.
    """
    try:
        variant = get_active_entity(session, EntityKind.VARIANT, variant_id)
        before = entity_snapshot(variant)
        overrides: Overrides = {}

        if name is not None:
            new_name = clean_name(name)
            if not new_name:
                raise BadRequestError("Variant name must not be empty")
            if new_name != variant.name:
                ensure_name_available(
                    session, EntityKind.VARIANT, new_name, variant.brand_id, exclude_id=variant.id
                )
                overrides[(EntityKind.VARIANT, variant.id)] = new_name

        plans = []
        for kind, entries in (
            (EntityKind.PACK_SIZE, pack_sizes),
            (EntityKind.PACK_TYPE, pack_types),
        ):
            if entries is None:
                continue
            plan = _plan_pack_set(session, variant, kind, entries)
            for pack, pack_name in plan.renames:
                overrides[(kind, pack.id)] = pack_name
            plans.append(plan)

        # Plan against current names before any write renames an ancestor.
        updates = plan_identity_updates(session, overrides)

        now = datetime.now(timezone.utc)
        tags = [cache_tag(EntityKind.VARIANT, variant.id)]
        pack_changes: dict[str, int] = {}
        for plan in plans:
            touched = _apply_pack_plan(session, variant, plan, actor, now)
            tags.extend(cache_tag(plan.kind, pack_id) for pack_id in touched)
            pack_changes[plan.kind.value] = len(touched)

        if (EntityKind.VARIANT, variant.id) in overrides:
            variant.name = overrides[(EntityKind.VARIANT, variant.id)]
        if description is not UNSET:
            variant.description = description
        variant.updated_by = actor

        products_changed = apply_identity_updates(session, updates, actor)
        if products_changed:
            tags.append(PRODUCTS_TAG)

        _finish(
            session,
            EntityKind.VARIANT,
            variant,
            actor,
            before,
            tags,
            invalidator=invalidator,
            audit=audit,
            metadata={"products_updated": products_changed, "pack_changes": pack_changes},
        )
    except CatalogError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Unique violation updating variant {variant_id}: {e}")
        raise ConflictError(
            f"Variant {variant_id} could not be updated: a conflicting row was written concurrently"
        ) from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error updating variant {variant_id}: {e}", exc_info=True)
        raise

    return variant
