"""
Database session management with connection pooling.

Provides a shared FastAPI dependency for async database sessions across all routes.
Uses SQLAlchemy's asyncio extension (asyncpg in production).

Usage:
    from ome.database.session import get_db_session

    @router.get("/items")
    async def get_items(db: AsyncSession = Depends(get_db_session)):
        ...
"""

import logging
import ssl
from typing import AsyncGenerator, Optional

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ome.config.settings import get_settings

logger = logging.getLogger(__name__)

# Module-level engine singleton
_engine: Optional[AsyncEngine] = None
_SessionLocal: Optional[async_sessionmaker] = None


def _connect_args(database_url: str, ssl_ca_path: Optional[str]) -> dict:
    if ssl_ca_path and database_url.startswith("postgresql+asyncpg"):
        return {"ssl": ssl.create_default_context(cafile=ssl_ca_path)}
    return {}


def get_engine() -> AsyncEngine:
    """
    Get or create the async database engine singleton.

    Pool defaults for production:
    - pool_size: 5 connections
    - max_overflow: 10 additional connections under load
    - pool_pre_ping: Verify connections before use

    Raises:
        ValueError: If no database URL is configured
    """
    global _engine
    if _engine is None:
        settings = get_settings().database
        if not settings.url:
            logger.error("Failed to create database engine", extra={"error": "database url not configured"})
            raise ValueError("DATABASE_URL or DB_HOST/DB_NAME must be set")

        kwargs = {"echo": settings.echo, "pool_pre_ping": True}
        if not settings.url.startswith("sqlite"):
            kwargs.update(pool_size=5, max_overflow=10, pool_recycle=1800)

        _engine = create_async_engine(
            settings.url,
            connect_args=_connect_args(settings.url, settings.ssl_ca_path),
            **kwargs,
        )
        logger.info("Database engine created with connection pooling")
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Get or create the session factory singleton."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
    return _SessionLocal


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.

    Creates a new session for each request and ensures proper cleanup.
    Raises HTTP 503 if database is not configured.
    """
    try:
        SessionLocal = get_session_factory()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured"
        )

    async with SessionLocal() as session:
        yield session


async def dispose_engine() -> None:
    """Close pooled connections (application shutdown)."""
    global _engine, _SessionLocal
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _SessionLocal = None
