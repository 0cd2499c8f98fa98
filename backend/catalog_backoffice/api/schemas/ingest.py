"""Bulk ingestion report payloads."""

from pydantic import BaseModel, Field


class RowResultRead(BaseModel):
    row_number: int
    success: bool
    product_id: str | None = None
    product_name: str | None = None
    generated_sku: str | None = None
    barcode: str | None = None
    error: str | None = None
    warnings: list[str] = []
    created_entities: list[str] = []
    referenced_entities: list[str] = []


class IngestReportRead(BaseModel):
    total_rows: int
    successful_rows: int
    failed_rows: int
    entities_created: dict[str, int]
    entities_referenced: dict[str, int]
    row_results: list[RowResultRead]
    processing_time_ms: int
    summary: str = Field(..., description="Human readable outcome of the run")
