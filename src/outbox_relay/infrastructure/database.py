"""Database connection pool management."""

import asyncpg
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from outbox_relay.config import settings

logger = structlog.get_logger(__name__)

# Global connection pool
_pool: asyncpg.Pool | None = None


def _hide_credentials(database_url: str) -> str:
    return database_url.split("@")[-1]


async def create_pool(database_url: str | None = None) -> asyncpg.Pool:
    """Create and return a connection pool.

    Args:
        database_url: PostgreSQL connection string. If None, uses settings.database_url

    Returns:
        asyncpg.Pool: Database connection pool
    """
    url = database_url or settings.database_url

    logger.info(
        "creating_database_pool",
        database_url=_hide_credentials(url),
        min_size=settings.database_pool_min_size,
        max_size=settings.database_pool_max_size,
    )

    pool = await asyncpg.create_pool(
        dsn=url,
        min_size=settings.database_pool_min_size,
        max_size=settings.database_pool_max_size,
        command_timeout=30.0,
        server_settings={
            "application_name": settings.service_name,
        },
    )

    if pool is None:
        raise RuntimeError("Failed to create database pool")

    logger.info("database_pool_created")
    return pool


async def get_pool() -> asyncpg.Pool:
    """Get the global connection pool, creating it on first use."""
    global _pool
    if _pool is None:
        _pool = await create_pool()
    return _pool


async def close_pool() -> None:
    """Close the global connection pool."""
    global _pool
    if _pool is not None:
        logger.info("closing_database_pool")
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Create a SQLAlchemy async engine using the asyncpg driver.

    Args:
        database_url: PostgreSQL connection URL. If None, uses settings.database_url

    Returns:
        Configured SQLAlchemy async engine
    """
    url = database_url or settings.database_url
    if url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]

    logger.info("creating_database_engine", database_url=_hide_credentials(url))

    return create_async_engine(
        url,
        pool_size=settings.database_pool_max_size,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,  # Recycle connections after 1 hour
        echo=settings.debug,  # Log SQL statements in debug mode
        connect_args={"server_settings": {"application_name": settings.service_name}},
    )
