"""Shared fixtures: an in-memory SQLite catalog and recording collaborators."""

import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("UPLOADS_DIR", tempfile.mkdtemp(prefix="catalog-uploads-"))
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from typing import Any, Callable  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import catalog_backoffice.db.models  # noqa: E402,F401
from catalog_backoffice.db.base import Base  # noqa: E402
from catalog_backoffice.db.session import enable_sqlite_savepoints  # noqa: E402
from catalog_backoffice.services.bulk_ingest import IngestReport, ingest_rows  # noqa: E402

ACTOR = "admin-1"


class RecordingInvalidator:
    """Cache invalidator that remembers every tag it was asked to drop."""

    def __init__(self) -> None:
        self.tags: list[str] = []

    def invalidate(self, tag: str) -> None:
        self.tags.append(tag)


class RecordingAuditSink:
    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    def record(
        self,
        action,
        resource,
        resource_id,
        actor,
        before=None,
        after=None,
        metadata=None,
    ) -> None:
        self.entries.append(
            {
                "action": action,
                "resource": resource,
                "resource_id": resource_id,
                "actor": actor,
                "before": before,
                "after": after,
                "metadata": metadata or {},
            }
        )

    @property
    def actions(self) -> list[str]:
        return [entry["action"] for entry in self.entries]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def session(session_factory) -> Session:
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def invalidator() -> RecordingInvalidator:
    return RecordingInvalidator()


@pytest.fixture
def audit() -> RecordingAuditSink:
    return RecordingAuditSink()


def catalog_row(**overrides: str) -> dict[str, str]:
    """A valid, already-normalized spreadsheet row for the Indomie range."""
    row = {
        "product_name": "Indomie Chicken Curry 70g (Single Pack)",
        "product_description": "Instant noodles",
        "price": "1.20",
        "discount": "0",
        "manufacturer": "Nestle",
        "brand": "Indomie",
        "brand_logo": "",
        "variant": "Chicken Curry",
        "category": "Noodles",
        "category_description": "",
        "subcategory": "",
        "subcategory_description": "",
        "pack_size": "70g",
        "pack_type": "Single Pack",
        "product_images": "",
        "product_thumbnail": "",
    }
    row.update(overrides)
    return row


@pytest.fixture
def make_row() -> Callable[..., dict[str, str]]:
    return catalog_row


@pytest.fixture
def ingest(session, invalidator, audit) -> Callable[[list[dict[str, str]]], IngestReport]:
    """Run the bulk pipeline against the test session."""

    def _ingest(rows: list[dict[str, str]], **kwargs: Any) -> IngestReport:
        return ingest_rows(
            session, rows, ACTOR, invalidator=invalidator, audit=audit, **kwargs
        )

    return _ingest


@pytest.fixture
def indomie_range(ingest) -> IngestReport:
    """Two Indomie products sharing manufacturer, brand, variant and category."""
    report = ingest(
        [
            catalog_row(),
            catalog_row(
                product_name="Indomie Chicken Curry 120g (Twin Pack)",
                pack_size="120g",
                pack_type="Twin Pack",
                price="2.10",
            ),
        ]
    )
    assert report.successful_rows == 2, report.row_results
    return report
