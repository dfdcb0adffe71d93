"""Database configuration and session management.

This module constructs an asynchronous SQLAlchemy engine and session
factory for the application from ``DATABASE_URL``.  Plain ``sqlite``
URLs are upgraded to the ``aiosqlite`` driver and Postgres URLs are
normalised to the async ``psycopg`` driver so the same connection
string works in development and in deployment.
"""

from __future__ import annotations

import logging
import os
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from rewards.core.config import settings

logger = logging.getLogger(__name__)

# Declarative base
Base = declarative_base()


def normalise_database_url(raw_url: str) -> str:
    """Return ``raw_url`` rewritten to use an async driver."""
    url_obj = make_url(raw_url)
    driver = url_obj.drivername or ""
    if driver == "sqlite":
        url_obj = url_obj.set(drivername="sqlite+aiosqlite")
    elif driver in {"postgresql", "postgres", "postgresql+psycopg2", "postgresql+asyncpg"}:
        q = dict(url_obj.query or {})
        # Always require SSL unless explicitly configured
        if not q.get("sslmode"):
            q["sslmode"] = "require"
        url_obj = url_obj.set(drivername="postgresql+psycopg", query=q)
    return url_obj.render_as_string(hide_password=False)


def build_engine(url: str) -> AsyncEngine:
    engine_kwargs: dict[str, Any] = dict(echo=False, pool_pre_ping=True)
    return create_async_engine(normalise_database_url(url), **engine_kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


db_url = os.getenv("DATABASE_URL") or settings.DATABASE_URL
engine = build_engine(db_url)

# Create session factory
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields a database session.

    Each session is scoped to the request and closed after use.
    """
    async with AsyncSessionLocal() as session:
        yield session


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create all tables defined on the declarative ``Base``.

    Typically called during application startup; tests pass their own
    engine.
    """
    target = bind or engine
    async with target.begin() as conn:
        # Import all models to ensure metadata is populated
        from rewards.models import tables  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


def get_db_debug_info() -> Dict[str, Any]:
    """Return non-sensitive information about the current DB engine."""
    url_obj = make_url(str(engine.url))
    return {
        "environment": settings.ENVIRONMENT,
        "drivername": url_obj.drivername,
        "host": url_obj.host,
        "database": url_obj.database,
        "url": url_obj.render_as_string(hide_password=True),
    }
