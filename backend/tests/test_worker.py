"""Tests for the background import task."""

from pathlib import Path

import pytest
from sqlalchemy import select

from catalog_backoffice.db.models import ImportJob, Product
from catalog_backoffice.services import progress_tracker
from catalog_backoffice.services.bulk_ingest import generate_template
from catalog_backoffice.workers.tasks import ingest_catalog


@pytest.fixture
def progress(monkeypatch) -> list[dict]:
    published: list[dict] = []

    def record(job_id, value, message=None, *, status=None, meta=None):
        published.append({"job_id": job_id, "progress": value, "status": status})

    monkeypatch.setattr(ingest_catalog, "publish_progress", record)
    monkeypatch.setattr(progress_tracker, "publish_progress", record)
    return published


@pytest.fixture
def worker_env(monkeypatch, session_factory, invalidator, progress):
    monkeypatch.setattr(ingest_catalog, "get_fresh_session", session_factory)
    monkeypatch.setattr(ingest_catalog, "get_redis", lambda: None)
    monkeypatch.setattr(ingest_catalog, "RedisCacheInvalidator", lambda client: invalidator)


def _staged(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "staged.csv"
    path.write_text(content, encoding="utf-8")
    return path


def _add_job(session, path: Path) -> None:
    session.add(
        ImportJob(
            id="job-1",
            actor_id="admin-1",
            original_filename="catalog.csv",
            uploaded_file_path=str(path),
            status="pending",
        )
    )
    session.commit()


class TestIngestCatalogTask:
    def test_completes_job_and_stores_report(
        self, session, tmp_path, worker_env, progress, invalidator
    ) -> None:
        path = _staged(tmp_path, generate_template())
        _add_job(session, path)

        result = ingest_catalog.ingest_catalog_task("job-1", str(path))

        assert result == {"successful_rows": 2, "failed_rows": 0}
        job = session.get(ImportJob, "job-1")
        assert job.status == "completed"
        assert job.total_rows == 2
        assert job.successful_rows == 2
        assert job.meta["successful_rows"] == 2
        assert job.meta["row_results"][0]["generated_sku"] == "COCA-COLA-ORIGINAL-500ML-BOTTLE"
        assert job.finished_at is not None
        assert progress[-1]["status"] == "completed"
        assert "products" in invalidator.tags
        assert not path.exists()
        assert len(session.execute(select(Product)).scalars().all()) == 2

    def test_bad_file_marks_job_failed(self, session, tmp_path, worker_env, progress) -> None:
        path = _staged(tmp_path, "name,price\nMilo,1\n")
        _add_job(session, path)

        assert ingest_catalog.ingest_catalog_task("job-1", str(path)) is None

        job = session.get(ImportJob, "job-1")
        assert job.status == "failed"
        assert job.error_message.startswith("Invalid CSV headers")
        assert progress[-1]["status"] == "failed"
        assert not path.exists()

    def test_unknown_job_is_skipped(self, tmp_path, worker_env) -> None:
        path = _staged(tmp_path, generate_template())
        assert ingest_catalog.ingest_catalog_task("missing", str(path)) is None
