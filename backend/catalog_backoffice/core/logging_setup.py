"""Process-wide logging setup shared by the API and the Celery worker."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    # avoid duplicate handlers when the app factory runs more than once
    if any(getattr(h, "_catalog_handler", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._catalog_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "celery"):
        logging.getLogger(name).setLevel(level.upper())
