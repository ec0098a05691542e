"""Database engine setup for rapid-entities."""

import logging
import os
from typing import Optional

from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from ..schema.registry import ModelRegistry

logger = logging.getLogger(__name__)

# Default to a local SQLite database when DATABASE_URL is not provided.
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./rapid_entities.db"


def _ensure_async_driver(url: URL) -> URL:
    """Force an asyncio driver for the engine."""

    if url.drivername in ("postgresql", "postgres") or url.drivername.startswith("postgresql+"):
        # Normalize sync driver variants to asyncpg
        if "asyncpg" not in url.drivername:
            url = url.set(drivername="postgresql+asyncpg")
    elif url.drivername == "sqlite" or url.drivername.startswith("sqlite+"):
        if "aiosqlite" not in url.drivername:
            url = url.set(drivername="sqlite+aiosqlite")

    return url


def get_database_url(raw_url: Optional[str] = None) -> str:
    """Return a database URL with a guaranteed async driver."""

    url = make_url(raw_url or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL)
    # render_as_string(hide_password=False) keeps the real password;
    # str(url) would mask it with ***
    return _ensure_async_driver(url).render_as_string(hide_password=False)


def create_engine_for_url(raw_url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine configured for the target backend."""
    database_url = get_database_url(raw_url)

    if database_url.startswith("sqlite"):
        # SQLite configuration for development/testing
        if ":memory:" in database_url or database_url.endswith("://"):
            return create_async_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_async_engine(database_url, connect_args={"check_same_thread": False})

    # PostgreSQL configuration for production
    return create_async_engine(
        database_url,
        pool_size=20,
        max_overflow=30,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


async def init_database(engine: AsyncEngine, registry: ModelRegistry) -> None:
    """Create the tables of every registered model and link table."""
    async with engine.begin() as conn:
        await conn.run_sync(registry.metadata.create_all)
    logger.info("Database initialized with %d tables", len(registry.metadata.tables))


async def drop_database(engine: AsyncEngine, registry: ModelRegistry) -> None:
    """Drop all tables of the registry. Use with caution!"""
    async with engine.begin() as conn:
        await conn.run_sync(registry.metadata.drop_all)
    logger.info("Database tables dropped")
