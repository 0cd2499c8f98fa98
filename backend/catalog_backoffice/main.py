"""FastAPI application bootstrap."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from catalog_backoffice.api.routers import catalog, health, jobs, products, uploads
from catalog_backoffice.core.config import get_settings
from catalog_backoffice.core.logging_setup import configure_logging
from catalog_backoffice.db.session import init_db

logger = logging.getLogger(__name__)


def create_app(*, create_tables: bool = True) -> FastAPI:
    """Instantiate the FastAPI app and include top-level routers."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.app_name, version="0.1.0")

    logger.info(f"[CORS] Allowed origins: {settings.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    if create_tables:
        init_db()

    app.include_router(health.router)
    app.include_router(uploads.router, prefix="/api/uploads", tags=["uploads"])
    app.include_router(catalog.router, prefix="/api/catalog", tags=["catalog"])
    app.include_router(products.router, prefix="/api/products", tags=["products"])
    app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])

    return app


app = create_app()
