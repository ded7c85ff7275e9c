"""Database engine and session configuration.

WHAT:
    Builds the SQLAlchemy engine and session factory for the durable store and
    creates the current schema.

WHY:
    - The engine is the single durable-store handle shared by the credential
      manager (ORM reads) and the upsert helper (Core upserts).
    - Built lazily and cached per process, then injected, so tests can swap in
      an in-memory SQLite engine without touching module globals.

USAGE:
    from adsync.database import get_session_factory

    with get_session_factory()() as db:
        rows = db.query(PlatformCredential).all()

REFERENCES:
    - https://docs.sqlalchemy.org/en/20/core/engines.html
    - adsync/deps.py (injects the engine into services)
"""

import logging
import os
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def _get_database_url() -> str:
    """Get DATABASE_URL from environment, loading .env if needed.

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    from adsync.utils.env import load_env_file, require_env

    if not os.getenv("DATABASE_URL"):
        # Attempt to load from local .env for developer convenience
        load_env_file()
    return require_env("DATABASE_URL")


def create_db_engine(database_url: str) -> Engine:
    """Create an engine with pool settings suited to the backend.

    NOTE: SQLite engines (tests/dev) do not support pool_size/max_overflow.
    In-memory SQLite uses a StaticPool so every checkout sees the same database.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        pool_size=10,           # Base pool size
        max_overflow=20,        # Allow up to 30 total connections under load
        pool_recycle=3600,      # Recycle connections every hour
        pool_pre_ping=True,     # Validate connections before use
    )


@lru_cache()
def get_engine() -> Engine:
    """Return the process-wide engine built from DATABASE_URL."""
    engine = create_db_engine(_get_database_url())
    logger.info("[DATABASE] Engine created (dialect=%s)", engine.dialect.name)
    return engine


@lru_cache()
def get_session_factory() -> sessionmaker:
    """Return the process-wide session factory bound to `get_engine()`."""
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False)


def init_db(engine: Engine) -> None:
    """Create all tables of the current schema (no-op for existing tables)."""
    logger.info("[DATABASE] Creating tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("[DATABASE] Tables ready")
