import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from isp_admin.core.db import register_query_timing

logger = logging.getLogger(__name__)

Base = declarative_base()

DEFAULT_DATABASE_URL = "sqlite:///isp_admin.db"

# Built on first use so tests can point DATABASE_URL elsewhere beforehand
_engine = None
_session_factory = None
_database_url = None


def _pool_setting(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(
            "Invalid pool setting, using default",
            extra={"context": {"variable": name, "default": default}},
        )
        return default


def _build_engine(database_url: str):
    try:
        url = make_url(database_url)
    except ArgumentError:
        return create_engine(database_url)

    if url.get_backend_name() == "postgresql":
        return create_engine(
            database_url,
            pool_size=_pool_setting("DB_POOL_SIZE", 10),
            max_overflow=_pool_setting("DB_MAX_OVERFLOW", 20),
            pool_pre_ping=True,
            pool_recycle=1800,
            connect_args={"application_name": "isp_admin", "connect_timeout": 10},
        )
    if url.get_backend_name() == "sqlite":
        if url.database in (None, "", ":memory:"):
            # A single shared connection keeps the in-memory schema alive
            return create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url)


def get_engine():
    """Engine for the current DATABASE_URL, rebuilt when the URL changes."""
    global _engine, _session_factory, _database_url
    database_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    if _engine is not None and _database_url == database_url:
        return _engine

    if _engine is not None:
        _engine.dispose()
        _session_factory = None

    _engine = _build_engine(database_url)
    register_query_timing(_engine)
    _database_url = database_url
    logger.debug(
        "SQLAlchemy engine created",
        extra={"context": {"dialect": _engine.dialect.name}},
    )
    return _engine


def SessionLocal():
    """New Session bound to the current engine.

    Objects stay usable after commit (``expire_on_commit=False``) so
    controllers can serialize what a service returned.
    """
    global _session_factory
    engine = get_engine()
    if _session_factory is None:
        _session_factory = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )
    return _session_factory()


def create_tables():
    # Importing the models registers them on Base.metadata
    import isp_admin.db.base  # noqa: F401

    Base.metadata.create_all(bind=get_engine())
