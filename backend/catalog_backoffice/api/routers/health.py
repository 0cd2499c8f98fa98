"""Liveness and readiness endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from catalog_backoffice.db.session import engine
from catalog_backoffice.utils.redis_client import get_redis

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["health"])

SERVICE_NAME = "catalog-backoffice-api"


@router.get("/live", summary="Liveness probe")
async def live() -> dict[str, str]:
    """Indicates the API process is running."""
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/ready", summary="Readiness probe")
async def ready() -> dict[str, Any]:
    """Check the database and Redis; 503 with per-dependency detail if either is down."""
    checks: dict[str, Any] = {"status": "ok", "service": SERVICE_NAME, "checks": {}}
    all_healthy = True

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        checks["checks"]["database"] = {"status": "healthy"}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        checks["checks"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}",
        }
        all_healthy = False

    try:
        get_redis().ping()
        checks["checks"]["redis"] = {"status": "healthy"}
    except RedisError as e:
        logger.error(f"Redis health check failed: {e}", exc_info=True)
        checks["checks"]["redis"] = {
            "status": "unhealthy",
            "message": f"Redis connection failed: {str(e)}",
        }
        all_healthy = False

    if not all_healthy:
        checks["status"] = "unhealthy"
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=checks,
        )
    return checks
