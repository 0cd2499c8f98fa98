"""Celery task running the bulk ingestion pipeline over a staged CSV."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from celery.exceptions import SoftTimeLimitExceeded

from catalog_backoffice.core.errors import CatalogError
from catalog_backoffice.db.models.import_job import ImportJob
from catalog_backoffice.db.session import get_fresh_session
from catalog_backoffice.services.audit import LoggingAuditSink
from catalog_backoffice.services.bulk_ingest import ingest_rows, read_csv_file
from catalog_backoffice.services.cache_invalidation import RedisCacheInvalidator
from catalog_backoffice.services.progress_tracker import (
    ingest_progress_callback,
    publish_progress,
)
from catalog_backoffice.storage.staging import delete_upload
from catalog_backoffice.utils.redis_client import get_redis
from catalog_backoffice.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def _mark_failed(session, job: ImportJob, message: str) -> None:
    session.rollback()
    job.status = "failed"
    job.error_message = message
    job.finished_at = datetime.now(timezone.utc)
    session.commit()
    progress = job.processed_rows / job.total_rows if job.total_rows else 0.0
    publish_progress(
        job.id,
        progress,
        message=f"Import failed: {message}",
        status="failed",
        meta={"error": message},
    )


@celery_app.task(bind=True, name="catalog_backoffice.workers.tasks.ingest_catalog")
def ingest_catalog_task(self, job_id: str, file_path: str):
    """Ingest a staged CSV for an ``ImportJob`` and store the report on the job."""
    session = get_fresh_session()
    job: ImportJob | None = session.get(ImportJob, job_id)
    if not job:
        logger.warning(f"Import job {job_id} not found, skipping")
        session.close()
        return None

    path = Path(file_path).resolve()
    publish_rows = ingest_progress_callback(job_id)

    def on_progress(processed, total, report):
        job.processed_rows = processed
        job.successful_rows = report.successful_rows
        job.failed_rows = report.failed_rows
        publish_rows(processed, total, report)

    try:
        job.status = "processing"
        job.started_at = datetime.now(timezone.utc)
        session.commit()

        rows = read_csv_file(path)
        job.total_rows = len(rows)
        session.commit()

        report = ingest_rows(
            session,
            rows,
            job.actor_id,
            invalidator=RedisCacheInvalidator(get_redis()),
            audit=LoggingAuditSink(),
            on_progress=on_progress,
        )

        job.status = "completed"
        job.processed_rows = report.total_rows
        job.successful_rows = report.successful_rows
        job.failed_rows = report.failed_rows
        job.meta = report.to_dict()
        job.finished_at = datetime.now(timezone.utc)
        session.commit()

        publish_progress(
            job_id,
            1.0,
            message=report.summary,
            status="completed",
            meta={
                "total_rows": report.total_rows,
                "successful_rows": report.successful_rows,
                "failed_rows": report.failed_rows,
            },
        )
        logger.info(f"Import job {job_id} finished: {report.summary}")
        return {
            "successful_rows": report.successful_rows,
            "failed_rows": report.failed_rows,
        }
    except CatalogError as exc:
        logger.error(f"Import job {job_id} failed: {exc.message}")
        _mark_failed(session, job, exc.message)
        return None
    except SoftTimeLimitExceeded:
        logger.error(f"Import job {job_id} hit the worker time limit")
        _mark_failed(session, job, "Import exceeded the worker time limit")
        raise
    except Exception as exc:
        logger.error(f"Unexpected error in import job {job_id}: {exc}", exc_info=True)
        _mark_failed(session, job, str(exc))
        raise
    finally:
        delete_upload(path)
        session.close()
