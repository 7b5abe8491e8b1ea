"""Database connection management for EHS Identity.

Provides async connections to PostgreSQL (SQLite via aiosqlite for local
runs and tests) and the Redis client used by the cache layer.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import redis.asyncio as redis
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings

SessionFactory = async_sessionmaker[AsyncSession]

# =========================
# SQLAlchemy Setup
# =========================

# Engine and session factory (lazy initialization)
_engine: AsyncEngine | None = None
_session_factory: SessionFactory | None = None


def is_postgres(engine_or_session) -> bool:
    """Check whether an engine, connection or session talks to PostgreSQL."""
    bind = getattr(engine_or_session, "bind", None) or engine_or_session
    return bind.dialect.name == "postgresql"


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let pysqlite/aiosqlite honour BEGIN and SAVEPOINT.

    The sqlite3 driver emits its own BEGIN lazily, which breaks nested
    transactions. Autocommit at the driver level and an explicit BEGIN
    hand transaction control back to SQLAlchemy.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine_for_url(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine configured for the URL's dialect."""
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo)
        _enable_sqlite_savepoints(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    """Build a session factory bound to an engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """Get or create the async SQLAlchemy engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for_url(settings.database_url, echo=settings.api_debug)
    return _engine


def get_session_factory() -> SessionFactory:
    """Get or create the async session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


@asynccontextmanager
async def session_scope(
    factory: SessionFactory,
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session from `factory` that commits on success.

    Usage:
        async with session_scope(factory) as session:
            await session.execute(query)
    """
    session = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session from the global factory.

    Usage:
        async with get_db_session() as session:
            result = await session.execute(query)
    """
    async with session_scope(get_session_factory()) as session:
        yield session


# =========================
# Redis Setup
# =========================

_redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Get or create the Redis async client."""
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


async def close_redis():
    """Close the Redis connection."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


# =========================
# Cleanup
# =========================


async def close_all_connections():
    """Close all database connections (for shutdown)."""
    global _engine, _session_factory

    await close_redis()

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
