"""Endpoints for CSV catalog uploads: synchronous ingestion, background jobs, template."""

from __future__ import annotations

import logging

from fastapi import (
    APIRouter,
    Depends,
    File,
    HTTPException,
    Response,
    UploadFile,
    status,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_backoffice.api.dependencies.actor import get_actor
from catalog_backoffice.api.dependencies.collaborators import (
    get_audit_sink,
    get_invalidator,
)
from catalog_backoffice.api.dependencies.db import get_session
from catalog_backoffice.api.errors import to_http_exception
from catalog_backoffice.api.routers.job_helpers import serialize_job
from catalog_backoffice.api.schemas.ingest import IngestReportRead
from catalog_backoffice.api.schemas.job import JobStatus
from catalog_backoffice.core.errors import CatalogError
from catalog_backoffice.db.models.import_job import ImportJob
from catalog_backoffice.services.audit import AuditSink
from catalog_backoffice.services.bulk_ingest import (
    generate_template,
    ingest_rows,
    parse_csv,
    stage_file,
)
from catalog_backoffice.services.cache_invalidation import CacheInvalidator
from catalog_backoffice.services.progress_tracker import publish_progress
from catalog_backoffice.storage.staging import delete_upload
from catalog_backoffice.workers.tasks.ingest_catalog import ingest_catalog_task

logger = logging.getLogger(__name__)

router = APIRouter()

TEMPLATE_FILENAME = "product-upload-template.csv"


def _require_csv(file: UploadFile) -> None:
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Filename is required",
        )
    if not file.filename.lower().endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV uploads are supported",
        )


@router.post(
    "/",
    summary="Ingest a catalog CSV synchronously",
    response_model=IngestReportRead,
)
def upload_catalog(
    file: UploadFile = File(...),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_session),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    audit: AuditSink = Depends(get_audit_sink),
) -> IngestReportRead:
    """Run the ingestion pipeline and return the per-row report.

    Row failures are part of the report; only file-level problems (headers,
    encoding) are rejected with 400. Runs in the FastAPI threadpool; ingestion
    must never block the event loop.
    """
    try:
        _require_csv(file)
        rows = parse_csv(file.file.read())
        report = ingest_rows(
            db, rows, actor, invalidator=invalidator, audit=audit
        )
        logger.info(f"Upload '{file.filename}' by {actor}: {report.summary}")
        return IngestReportRead.model_validate(report.to_dict())
    except HTTPException:
        raise
    except CatalogError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        logger.error(f"Database error ingesting '{file.filename}': {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to ingest catalog file",
        ) from e


@router.post(
    "/jobs",
    summary="Start a background catalog import job",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=JobStatus,
)
async def enqueue_import(
    file: UploadFile = File(...),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_session),
) -> JobStatus:
    """Stage the CSV, record an import job and hand it to the worker."""
    _require_csv(file)
    try:
        staged_path = await stage_file(file)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"File staging failed: {str(exc)}",
        ) from exc

    try:
        job = ImportJob(
            actor_id=actor,
            original_filename=file.filename,
            uploaded_file_path=str(staged_path),
            status="pending",
        )
        db.add(job)
        # The worker must be able to read the job as soon as it is enqueued.
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        delete_upload(staged_path)
        logger.error(f"Database error creating import job: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create import job",
        ) from exc

    try:
        publish_progress(job.id, 0.0, "Queued", status="pending", meta={})
        ingest_catalog_task.apply_async(args=(job.id, str(staged_path)), queue="imports")
    except Exception as exc:
        logger.error(f"Error enqueueing import task: {exc}", exc_info=True)
        job.status = "failed"
        job.error_message = "Failed to start import process"
        db.commit()
        delete_upload(staged_path)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start import process",
        ) from exc

    logger.info(f"Created import job {job.id} for file {file.filename}")
    return serialize_job(job, progress_payload={"progress": 0.0, "status": "pending"})


@router.get("/template", summary="Download the catalog CSV template")
async def download_template() -> Response:
    return Response(
        content=generate_template(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_FILENAME}"'},
    )
