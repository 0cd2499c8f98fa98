"""Local staging area for uploaded CSV files awaiting a background import."""

from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO

from catalog_backoffice.core.config import get_settings

logger = logging.getLogger(__name__)


def uploads_dir() -> Path:
    path = Path(get_settings().uploads_dir).resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_upload(file_obj: BinaryIO, original_name: str | None = None) -> Path:
    """Copy an uploaded file into staging under a random name and return its absolute path."""
    suffix = Path(original_name or "upload.csv").suffix or ".csv"
    target_path = (uploads_dir() / f"{uuid.uuid4()}{suffix}").resolve()
    file_obj.seek(0)
    with target_path.open("wb") as destination:
        shutil.copyfileobj(file_obj, destination)
    logger.info(f"Staged upload '{original_name}' at {target_path}")
    return target_path


def delete_upload(uri: str | Path) -> None:
    """Remove a staged file once its import has finished."""
    path = Path(uri).resolve()
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        # Stale staging files are harmless; a later cleanup can remove them.
        logger.warning(f"Could not delete staged upload {path}: {e}")
