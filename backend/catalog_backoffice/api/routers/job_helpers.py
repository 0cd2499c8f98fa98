"""Shared helpers for shaping job responses."""
from __future__ import annotations

from catalog_backoffice.api.schemas.job import JobStatus
from catalog_backoffice.db.models.import_job import ImportJob


def serialize_job(job: ImportJob, progress_payload: dict | None) -> JobStatus:
    """Combine DB state + cached progress snapshot into a response schema.

    Finished jobs report from the database; Redis only adds live progress
    while the worker is running.
    """
    progress_payload = progress_payload or {}
    finished = job.status in ("completed", "failed")

    progress = 1.0 if job.status == "completed" else progress_payload.get("progress")
    if progress is None and job.total_rows:
        progress = (job.processed_rows or 0) / job.total_rows

    message = progress_payload.get("message")
    if not message:
        total_display = job.total_rows if job.total_rows else "?"
        message = f"Processed {job.processed_rows or 0}/{total_display} rows"

    status_value = job.status if finished else progress_payload.get("status") or job.status

    return JobStatus(
        id=job.id,
        status=status_value,
        progress=progress,
        message=message,
        original_filename=job.original_filename,
        total_rows=job.total_rows,
        processed_rows=job.processed_rows,
        successful_rows=job.successful_rows,
        failed_rows=job.failed_rows,
        error_message=job.error_message,
        started_at=job.started_at or job.created_at,
        finished_at=job.finished_at,
        meta=job.meta if job.meta is not None else progress_payload.get("meta") or {},
    )
