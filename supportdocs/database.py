"""Engine, session factory and declarative base shared by the API and the worker."""

import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# SQLite for development and tests, PostgreSQL in production.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./supportdocs.db")

# Seconds a SQLite writer waits for the lock; worker threads write concurrently.
SQLITE_BUSY_TIMEOUT = 30


def _build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        sqlite_engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
        )

        # Foreign keys are off by default in SQLite, which would silently skip
        # the CASCADE deletes the derived-record replacement relies on.
        @event.listens_for(sqlite_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        return sqlite_engine

    # Pool sized for WORKER_CONCURRENCY job sessions plus API requests.
    from .core.config import settings as _db_settings
    return create_engine(
        url,
        pool_size=_db_settings.db_pool_size,
        max_overflow=_db_settings.db_max_overflow,
        pool_timeout=_db_settings.db_pool_timeout,
        pool_recycle=_db_settings.db_pool_recycle,
        pool_pre_ping=True,
    )


engine = _build_engine(DATABASE_URL)

# Status transitions are explicit UPDATE statements, so nothing may flush implicitly.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Create all tables that do not exist yet."""
    from . import models  # noqa: F401  (registers every table on Base.metadata)
    Base.metadata.create_all(bind=engine)


def get_db():
    """Request-scoped session for FastAPI routes; rolled back if the route raises."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
