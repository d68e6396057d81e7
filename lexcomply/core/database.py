"""
Async SQLAlchemy engine and session management. Single connection pool for everything.
"""

import logging
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base. All models inherit from this."""
    pass


# Lazy globals, initialized on first call to get_engine()
_engine = None
_session_factory = None


def get_engine():
    global _engine
    if _engine is None:
        settings = get_settings()
        url = settings.database_url

        # Ensure we're using asyncpg driver for PostgreSQL
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        # SQLite doesn't support pool_size / max_overflow
        is_sqlite = "sqlite" in url
        kwargs = {
            "echo": settings.debug,
        }
        if is_sqlite:
            # Background analysis workers write concurrently with requests
            kwargs["connect_args"] = {"timeout": 30}
        else:
            kwargs["pool_size"] = 20
            kwargs["max_overflow"] = 10
            kwargs["pool_pre_ping"] = True

        _engine = create_async_engine(url, **kwargs)
        if is_sqlite:
            event.listen(_engine.sync_engine, "connect", _sqlite_pragmas)
        logger.info("Database engine created (%s)", "sqlite" if is_sqlite else "postgresql")
    return _engine


def _sqlite_pragmas(dbapi_conn, _record):
    # WAL lets audit and worker sessions write while a request session reads
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def get_db() -> AsyncSession:
    """FastAPI dependency that yields a DB session per request."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create all tables. Called on startup."""
    engine = get_engine()
    async with engine.begin() as conn:
        # Import all models so they register with Base.metadata
        from ..models import (  # noqa: F401
            user,
            document,
            analysis,
            compliance,
            audit,
            chat,
        )
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created/verified")


async def close_db():
    """Dispose engine. Called on shutdown."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine disposed")
