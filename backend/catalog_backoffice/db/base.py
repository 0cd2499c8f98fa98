"""Declarative base and shared soft-delete columns."""

import uuid

from sqlalchemy import Column, String, func, text
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import DateTime

Base = declarative_base()

# Partial-index predicate shared by every "unique among active rows" index.
ACTIVE_ROWS = text("deleted_at IS NULL")


def new_id() -> str:
    return str(uuid.uuid4())


class AuditColumnsMixin:
    """Actor and timestamp columns carried by every catalog table."""

    created_by = Column(String(64), nullable=False)
    updated_by = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class SoftDeleteMixin:
    deleted_at = Column(DateTime(timezone=True), index=True)
    deleted_by = Column(String(64))

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


# Keyword arguments restricting a unique index to non-deleted rows.
ACTIVE_UNIQUE = {
    "unique": True,
    "postgresql_where": ACTIVE_ROWS,
    "sqlite_where": ACTIVE_ROWS,
}
