"""Translate catalog errors into HTTP responses."""

from fastapi import HTTPException

from catalog_backoffice.core.errors import CatalogError


def to_http_exception(exc: CatalogError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)
