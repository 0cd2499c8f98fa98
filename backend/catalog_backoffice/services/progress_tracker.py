"""Shared helpers for publishing import job progress to Redis."""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError

from catalog_backoffice.utils.redis_client import get_redis

if TYPE_CHECKING:
    from catalog_backoffice.services.bulk_ingest import IngestReport

logger = logging.getLogger(__name__)

PROGRESS_PREFIX = "jobs:progress:"
PROGRESS_TTL = timedelta(hours=24)


def _key(job_id: str) -> str:
    return f"{PROGRESS_PREFIX}{job_id}"


def publish_progress(
    job_id: str,
    progress: float,
    message: str | None = None,
    *,
    status: str | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    """Persist a progress snapshot for the jobs endpoint."""
    payload = {
        "job_id": job_id,
        "progress": max(0.0, min(progress, 1.0)),
        "message": message,
        "status": status,
        "meta": meta or {},
    }
    try:
        get_redis().set(
            _key(job_id),
            json.dumps(payload),
            ex=int(PROGRESS_TTL.total_seconds()),
        )
    except RedisError as e:
        # Redis availability should not break ingestion.
        logger.debug(f"Could not publish progress for job {job_id}: {e}")


def fetch_progress(job_id: str) -> dict[str, Any]:
    """Return latest job telemetry, or ``{}`` when none is available."""
    try:
        raw = get_redis().get(_key(job_id))
    except RedisError:
        return {}
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return {}


def ingest_progress_callback(job_id: str, every: int = 25):
    """Build an ``on_progress`` callback that publishes every ``every`` rows."""

    def _publish(processed: int, total: int, report: "IngestReport") -> None:
        if processed % every and processed != total:
            return
        publish_progress(
            job_id,
            processed / total if total else 1.0,
            f"Processed {processed}/{total} rows",
            status="processing",
            meta={
                "processed_rows": processed,
                "total_rows": total,
                "successful_rows": report.successful_rows,
                "failed_rows": report.failed_rows,
            },
        )

    return _publish
