"""Create, read, rename, delete and reactivate endpoints for every catalog entity kind."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_backoffice.api.dependencies.actor import get_actor
from catalog_backoffice.api.dependencies.collaborators import (
    get_audit_sink,
    get_invalidator,
)
from catalog_backoffice.api.dependencies.db import get_session
from catalog_backoffice.api.errors import to_http_exception
from catalog_backoffice.api.schemas.catalog import (
    EntityCreate,
    EntityListResponse,
    EntityRead,
    EntityUpdate,
    PackRead,
    VariantCreate,
    VariantRead,
    VariantUpdate,
)
from catalog_backoffice.api.schemas.product import ProductCreate, ProductRead
from catalog_backoffice.core.errors import CatalogError
from catalog_backoffice.services.audit import AuditSink
from catalog_backoffice.services.authoring import (
    create_entity,
    create_product,
    create_variant,
    list_entities,
)
from catalog_backoffice.services.cache_invalidation import CacheInvalidator
from catalog_backoffice.services.cascade import UNSET, rename_entity, update_variant
from catalog_backoffice.services.hierarchy import EntityKind, get_entity, parent_id_of
from catalog_backoffice.services.lifecycle import delete_entity, reactivate_entity

logger = logging.getLogger(__name__)

router = APIRouter()


def serialize_entity(kind: EntityKind, entity: Any) -> EntityRead:
    return EntityRead(
        id=entity.id,
        kind=kind.value,
        name=entity.name,
        status=entity.status,
        slug=getattr(entity, "slug", None),
        description=getattr(entity, "description", None),
        parent_id=parent_id_of(kind, entity),
        deleted_at=entity.deleted_at,
    )


def serialize_variant(variant: Any) -> VariantRead:
    base = serialize_entity(EntityKind.VARIANT, variant)
    return VariantRead(
        **base.model_dump(),
        pack_sizes=[
            PackRead.model_validate(pack) for pack in variant.pack_sizes if pack.deleted_at is None
        ],
        pack_types=[
            PackRead.model_validate(pack) for pack in variant.pack_types if pack.deleted_at is None
        ],
    )


def _database_failure(action: str, kind: str, entity_id: str, exc: Exception) -> HTTPException:
    logger.error(f"Database error trying to {action} {kind} {entity_id}: {exc}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action} {kind}",
    )


@router.post(
    "/products",
    summary="Create a product from a variant and its pack size / pack type",
    status_code=status.HTTP_201_CREATED,
    response_model=ProductRead,
)
async def post_product(
    payload: ProductCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_session),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    audit: AuditSink = Depends(get_audit_sink),
) -> ProductRead:
    """The product's name, SKU and barcode are derived from its ancestors."""
    try:
        product = create_product(
            db, actor, invalidator=invalidator, audit=audit, **payload.model_dump()
        )
        return ProductRead.model_validate(product)
    except CatalogError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        raise _database_failure("create", "product", payload.variant_id, e) from e


@router.post(
    "/variants",
    summary="Create a variant with its pack sizes and pack types",
    status_code=status.HTTP_201_CREATED,
    response_model=VariantRead,
)
async def post_variant(
    payload: VariantCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_session),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    audit: AuditSink = Depends(get_audit_sink),
) -> VariantRead:
    try:
        variant = create_variant(
            db,
            payload.brand_id,
            actor,
            name=payload.name,
            description=payload.description,
            pack_sizes=payload.pack_sizes,
            pack_types=payload.pack_types,
            invalidator=invalidator,
            audit=audit,
        )
        return serialize_variant(variant)
    except CatalogError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        raise _database_failure("create", "variant", payload.name, e) from e


@router.get(
    "/variants/{variant_id}",
    summary="Fetch a variant with its active pack sizes and pack types",
    response_model=VariantRead,
)
async def get_variant(
    variant_id: str,
    db: Session = Depends(get_session),
) -> VariantRead:
    try:
        return serialize_variant(get_entity(db, EntityKind.VARIANT, variant_id))
    except CatalogError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        raise _database_failure("fetch", "variant", variant_id, e) from e


@router.post(
    "/{kind}",
    summary="Create a catalog entity",
    status_code=status.HTTP_201_CREATED,
    response_model=EntityRead,
)
async def post_entity(
    kind: EntityKind,
    payload: EntityCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_session),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    audit: AuditSink = Depends(get_audit_sink),
) -> EntityRead:
    """Fails with 409 when an active sibling already has the name."""
    try:
        entity = create_entity(
            db,
            kind,
            actor,
            name=payload.name,
            parent_id=payload.parent_id,
            description=payload.description,
            logo=payload.logo,
            invalidator=invalidator,
            audit=audit,
        )
        return serialize_entity(kind, entity)
    except CatalogError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        raise _database_failure("create", kind.value, payload.name, e) from e


@router.get(
    "/{kind}",
    summary="List catalog entities of one kind",
    response_model=EntityListResponse,
)
async def get_entities(
    kind: EntityKind,
    parent_id: str | None = Query(None, description="Only children of this parent"),
    name: str | None = Query(None, description="Filter by name (partial match)"),
    include_deleted: bool = Query(False, description="Include soft-deleted rows"),
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(50, ge=1, le=500, description="Items per page"),
    db: Session = Depends(get_session),
) -> EntityListResponse:
    try:
        rows, total = list_entities(
            db,
            kind,
            parent_id=parent_id,
            name=name,
            include_deleted=include_deleted,
            page=page,
            page_size=page_size,
        )
    except CatalogError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        logger.error(f"Database error listing {kind.value}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve {kind.value}",
        ) from e
    return EntityListResponse(
        items=[serialize_entity(kind, row) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{kind}/{entity_id}",
    summary="Fetch one catalog entity, including soft-deleted ones",
    response_model=EntityRead,
)
async def get_one_entity(
    kind: EntityKind,
    entity_id: str,
    db: Session = Depends(get_session),
) -> EntityRead:
    try:
        return serialize_entity(kind, get_entity(db, kind, entity_id))
    except CatalogError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        raise _database_failure("fetch", kind.value, entity_id, e) from e


@router.put(
    "/variants/{variant_id}",
    summary="Update a variant and its pack sizes / pack types",
    response_model=VariantRead,
)
async def put_variant(
    variant_id: str,
    payload: VariantUpdate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_session),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    audit: AuditSink = Depends(get_audit_sink),
) -> VariantRead:
    """Rename the variant and reconcile its pack sets in one transaction.

    Every dependent product's name, SKU and barcode is regenerated; the whole
    update is rejected if two products would end up with the same identity.
    """
    try:
        variant = update_variant(
            db,
            variant_id,
            actor,
            name=payload.name,
            description=(
                payload.description if "description" in payload.model_fields_set else UNSET
            ),
            pack_sizes=(
                [entry.model_dump() for entry in payload.pack_sizes]
                if payload.pack_sizes is not None
                else None
            ),
            pack_types=(
                [entry.model_dump() for entry in payload.pack_types]
                if payload.pack_types is not None
                else None
            ),
            invalidator=invalidator,
            audit=audit,
        )
        return serialize_variant(variant)
    except CatalogError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        raise _database_failure("update", "variant", variant_id, e) from e


@router.patch(
    "/{kind}/{entity_id}",
    summary="Rename or re-describe a catalog entity",
    response_model=EntityRead,
)
async def patch_entity(
    kind: EntityKind,
    entity_id: str,
    payload: EntityUpdate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_session),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    audit: AuditSink = Depends(get_audit_sink),
) -> EntityRead:
    """Renames of brands, variants and packs cascade to dependent products."""
    try:
        entity = rename_entity(
            db,
            kind,
            entity_id,
            actor,
            name=payload.name,
            description=(
                payload.description if "description" in payload.model_fields_set else UNSET
            ),
            invalidator=invalidator,
            audit=audit,
        )
        return serialize_entity(kind, entity)
    except CatalogError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        raise _database_failure("update", kind.value, entity_id, e) from e


@router.delete(
    "/{kind}/{entity_id}",
    summary="Soft-delete a catalog entity",
    response_model=EntityRead,
)
async def remove_entity(
    kind: EntityKind,
    entity_id: str,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_session),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    audit: AuditSink = Depends(get_audit_sink),
) -> EntityRead:
    """Refused while active children or live products still depend on the entity."""
    try:
        entity = delete_entity(
            db, kind, entity_id, actor, invalidator=invalidator, audit=audit
        )
        return serialize_entity(kind, entity)
    except CatalogError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        raise _database_failure("delete", kind.value, entity_id, e) from e


@router.post(
    "/{kind}/{entity_id}/reactivate",
    summary="Reactivate a soft-deleted catalog entity",
    response_model=EntityRead,
)
async def restore_entity(
    kind: EntityKind,
    entity_id: str,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_session),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    audit: AuditSink = Depends(get_audit_sink),
) -> EntityRead:
    try:
        entity = reactivate_entity(
            db, kind, entity_id, actor, invalidator=invalidator, audit=audit
        )
        return serialize_entity(kind, entity)
    except CatalogError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        raise _database_failure("reactivate", kind.value, entity_id, e) from e
