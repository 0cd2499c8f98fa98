"""Read-only product listing; product identity is maintained by the catalog services."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_backoffice.api.dependencies.db import get_session
from catalog_backoffice.api.schemas.product import (
    ProductDetail,
    ProductListResponse,
    ProductRead,
)
from catalog_backoffice.db.models.product import Product
from catalog_backoffice.services.identity import format_barcode, validate_ean13

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/",
    summary="List products with filters and pagination",
    response_model=ProductListResponse,
)
async def list_products(
    sku: str | None = Query(None, description="Filter by SKU (case-insensitive, partial)"),
    name: str | None = Query(None, description="Filter by name (partial match)"),
    product_status: str | None = Query(
        None, alias="status", description="QUEUE, LIVE or ARCHIVED"
    ),
    brand_id: str | None = Query(None),
    variant_id: str | None = Query(None),
    category_id: str | None = Query(None),
    include_deleted: bool = Query(False, description="Include soft-deleted products"),
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(50, ge=1, le=500, description="Items per page"),
    db: Session = Depends(get_session),
) -> ProductListResponse:
    """Return paginated product data for the back-office grid.

    Filters are combined with AND logic.
    """
    try:
        criteria = []
        if not include_deleted:
            criteria.append(Product.deleted_at.is_(None))
        if sku:
            criteria.append(func.lower(Product.sku).contains(sku.lower()))
        if name:
            criteria.append(Product.name.ilike(f"%{name}%"))
        if product_status:
            criteria.append(Product.status == product_status.upper())
        if brand_id:
            criteria.append(Product.brand_id == brand_id)
        if variant_id:
            criteria.append(Product.variant_id == variant_id)
        if category_id:
            criteria.append(Product.category_id == category_id)

        total = db.scalar(select(func.count(Product.id)).where(*criteria)) or 0

        offset = (page - 1) * page_size
        query = (
            select(Product)
            .where(*criteria)
            .order_by(Product.created_at.desc(), Product.sku)
            .offset(offset)
            .limit(page_size)
        )
        products = db.scalars(query).all()

        return ProductListResponse(
            items=[ProductRead.model_validate(p) for p in products],
            total=total,
            page=page,
            page_size=page_size,
        )
    except SQLAlchemyError as e:
        logger.error(f"Database error listing products: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve products",
        ) from e


@router.get(
    "/{product_id}",
    summary="Fetch a product with barcode verification",
    response_model=ProductDetail,
)
async def get_product(
    product_id: str,
    db: Session = Depends(get_session),
) -> ProductDetail:
    try:
        product = db.get(Product, product_id)
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching product {product_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve product",
        ) from e
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    base = ProductRead.model_validate(product)
    return ProductDetail(
        **base.model_dump(),
        barcode_valid=validate_ean13(product.barcode or ""),
        barcode_display=format_barcode(product.barcode) if product.barcode else None,
    )
