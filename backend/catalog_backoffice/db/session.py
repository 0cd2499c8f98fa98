"""Engine and session factory configuration."""

from collections.abc import Generator
import logging
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from catalog_backoffice.core.config import get_settings
from catalog_backoffice.db.base import Base

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_options(url: str) -> dict[str, Any]:
    """Pool settings for PostgreSQL; SQLite (local dev, tests) keeps the defaults."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    # pool_pre_ping: Test connections before using (handles stale connections)
    # pool_recycle: Recycle connections after 30 minutes (prevents timeout)
    return {
        "poolclass": QueuePool,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "pool_size": 5,
        "max_overflow": 10,
        "connect_args": {
            "connect_timeout": 10,
            "keepalives": 1,
            "keepalives_idle": 30,
            "keepalives_interval": 10,
            "keepalives_count": 5,
        },
    }


def enable_sqlite_savepoints(target: Engine) -> None:
    """Let pysqlite honour SAVEPOINT by taking over BEGIN from the driver."""

    @event.listens_for(target, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


engine = create_engine(
    settings.database_url,
    echo=False,
    future=True,
    **_engine_options(settings.database_url),
)

if settings.database_url.startswith("sqlite"):
    enable_sqlite_savepoints(engine)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db() -> None:
    """Create catalog tables that do not exist yet."""
    # models must be imported so their tables are registered on Base.metadata
    import catalog_backoffice.db.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_fresh_session() -> Session:
    """Get a fresh database session, handling connection errors.

    Used by the import worker, whose runs can outlive a pooled connection.
    """
    try:
        return SessionLocal()
    except (OperationalError, DisconnectionError) as e:
        logger.warning(f"Connection error creating session: {e}, retrying...")
        engine.dispose()
        return SessionLocal()


def get_db() -> Generator[Session, None, None]:
    """Yield a transactional session for request/worker lifecycles."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
