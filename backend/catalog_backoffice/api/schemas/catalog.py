"""Pydantic models for catalog entity creation, edits and lifecycle responses."""

from datetime import datetime

from pydantic import BaseModel, Field


class EntityUpdate(BaseModel):
    name: str | None = Field(None, description="New name; omit to keep the current one")
    description: str | None = Field(
        None, description="New description; send null to clear, omit to keep"
    )


class PackEntry(BaseModel):
    id: str | None = Field(None, description="Existing pack id; omit to create")
    name: str


class VariantUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    pack_sizes: list[PackEntry] | None = Field(
        None, description="Full desired pack size set; omitted entries are archived"
    )
    pack_types: list[PackEntry] | None = Field(
        None, description="Full desired pack type set; omitted entries are archived"
    )


class EntityRead(BaseModel):
    id: str
    kind: str
    name: str
    status: str
    slug: str | None = None
    description: str | None = None
    parent_id: str | None = None
    deleted_at: datetime | None = None


class PackRead(BaseModel):
    id: str
    name: str
    status: str

    model_config = {"from_attributes": True}


class VariantRead(EntityRead):
    pack_sizes: list[PackRead] = []
    pack_types: list[PackRead] = []


class EntityCreate(BaseModel):
    name: str
    parent_id: str | None = Field(
        None, description="Manufacturer, brand, variant or category id the entity belongs to"
    )
    description: str | None = None
    logo: str | None = Field(None, description="Brand logo URL")


class VariantCreate(BaseModel):
    brand_id: str
    name: str
    description: str | None = None
    pack_sizes: list[str] = Field(default_factory=list)
    pack_types: list[str] = Field(default_factory=list)


class EntityListResponse(BaseModel):
    items: list[EntityRead]
    total: int
    page: int
    page_size: int
