"""Pydantic models describing Product payloads."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class ProductRead(BaseModel):
    id: str
    sku: str = Field(..., description="Derived from brand, variant and pack names")
    name: str
    barcode: str | None = None
    description: str | None = None
    price: Decimal | None = None
    discount: Decimal | None = None
    images: list[str] = []
    thumbnail: str | None = None
    status: str
    manufacturer_id: str
    brand_id: str
    variant_id: str
    pack_size_id: str
    pack_type_id: str
    category_id: str
    subcategory_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ProductDetail(ProductRead):
    barcode_valid: bool = Field(..., description="EAN-13 check digit verifies")
    barcode_display: str | None = None


class ProductListResponse(BaseModel):
    items: list[ProductRead]
    total: int
    page: int
    page_size: int


class ProductCreate(BaseModel):
    variant_id: str
    pack_size_id: str
    pack_type_id: str
    category_id: str
    subcategory_id: str | None = None
    description: str | None = None
    price: Decimal | None = Field(None, ge=0)
    discount: Decimal | None = Field(None, ge=0, le=100)
    images: list[str] = Field(default_factory=list)
    thumbnail: str | None = None
