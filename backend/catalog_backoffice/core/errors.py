"""Catalog error taxonomy.

Services raise these; routers translate them to HTTP responses and the bulk
pipeline records them against the offending row.
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class CatalogError(Exception):
    """Base class for all catalog business-rule failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(CatalogError):
    """Referenced entity or ancestor is absent or already deleted."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(CatalogError):
    """Name, slug or derived-identity collision."""

    status_code = status.HTTP_409_CONFLICT


class BadRequestError(CatalogError):
    """Validation failure, missing dependency or a blocked lifecycle change."""

    status_code = status.HTTP_400_BAD_REQUEST


class InternalError(CatalogError):
    """Unexpected persistence failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class IngestTimeoutError(CatalogError):
    """A bulk ingestion run exceeded its wall-clock ceiling."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
