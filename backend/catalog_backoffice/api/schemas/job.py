"""Background import job status payloads."""

from datetime import datetime

from pydantic import BaseModel, Field


class JobStatus(BaseModel):
    id: str
    type: str = Field("catalog_import", description="Job type")
    status: str = Field(..., description="pending|processing|failed|completed")
    progress: float | None = Field(None, description="0-1 range for UI progress bars")
    message: str | None = None
    original_filename: str | None = None
    total_rows: int | None = None
    processed_rows: int | None = None
    successful_rows: int | None = None
    failed_rows: int | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    meta: dict | None = Field(None, description="Final ingestion report once finished")
