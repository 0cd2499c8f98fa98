"""Database session dependency."""

from collections.abc import Generator

from sqlalchemy.orm import Session

from catalog_backoffice.db.session import get_db


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a managed SQLAlchemy session.

    Catalog services commit their own unit of work; the trailing commit here
    only covers read-only requests and job bookkeeping.
    """
    yield from get_db()
