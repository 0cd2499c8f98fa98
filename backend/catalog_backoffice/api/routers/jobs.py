"""Background import job tracking endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_backoffice.api.dependencies.db import get_session
from catalog_backoffice.api.routers.job_helpers import serialize_job
from catalog_backoffice.api.schemas.job import JobStatus
from catalog_backoffice.db.models.import_job import ImportJob
from catalog_backoffice.services.progress_tracker import fetch_progress

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/",
    summary="List catalog import jobs",
    response_model=list[JobStatus],
)
async def list_jobs(
    limit: int = Query(50, ge=1, le=500, description="Maximum number of jobs to return"),
    job_status: str | None = Query(
        None,
        alias="status",
        description="Filter by status (pending, processing, completed, failed)",
    ),
    db: Session = Depends(get_session),
) -> list[JobStatus]:
    """Return import jobs newest first, each with its latest progress snapshot."""
    try:
        query = select(ImportJob)
        if job_status:
            query = query.where(ImportJob.status == job_status)
        query = query.order_by(ImportJob.created_at.desc()).limit(limit)
        jobs = db.scalars(query).all()
    except SQLAlchemyError as e:
        logger.error(f"Database error listing jobs: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve jobs",
        ) from e

    return [serialize_job(job, fetch_progress(job.id)) for job in jobs]


@router.get(
    "/{job_id}",
    summary="Fetch job metadata, progress and final report",
    response_model=JobStatus,
)
async def get_job(
    job_id: str,
    db: Session = Depends(get_session),
) -> JobStatus:
    job = db.get(ImportJob, job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return serialize_job(job, fetch_progress(job_id))
