"""SQLAlchemy engine for the local data source.

Single shared engine, created lazily from ``Settings.database_url``.
SQLite files are opened with ``check_same_thread=False`` because the API
serves requests from a worker thread pool.
"""
from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from tracklens.core.config import get_settings
from tracklens.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def build_engine(database_url: str) -> Engine:
    """Create an engine with pool settings suited to the backend."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        echo=False,
    )


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url)
        logger.info("DB engine created  url=%s", _engine.url.render_as_string(hide_password=True))
    return _engine


def reset_engine() -> None:
    """Dispose of the shared engine so the next call rebuilds it."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
