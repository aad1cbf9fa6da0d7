"""
Duet — Async Database Engine & Session Factory

Backs the ``sql`` store backend.  Two URL families are supported:

1. **Postgres** – ``postgresql+asyncpg://...`` with the shared pool tuning
   parameters below.  A plain ``postgresql://`` scheme is upgraded to the
   asyncpg dialect automatically.

2. **SQLite** – ``sqlite+aiosqlite:///./duet.db`` for local single-user
   demos, or ``sqlite+aiosqlite://`` for an in-memory database in tests.
   SQLite engines use SQLAlchemy's default pool for the dialect.

Engines are built on demand rather than at import time so that the memory and
Redis backends never need a database URL.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from duet.config import get_settings

logger = structlog.get_logger("duet.database")


# ------------------------------------------------------------------ #
# Declarative base for all ORM models
# ------------------------------------------------------------------ #

class Base(DeclarativeBase):
    """Shared declarative base.

    Every SQLAlchemy model in the project should inherit from this class::

        from duet.database import Base

        class StoredDocument(Base):
            __tablename__ = "documents"
            ...
    """
    pass


# ------------------------------------------------------------------ #
# Pool configuration (server databases only)
# ------------------------------------------------------------------ #

_POOL_KWARGS = {
    "pool_size": 5,
    "max_overflow": 5,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


def create_engine(url: str | None = None) -> AsyncEngine:
    """Create an async engine for *url* (defaults to ``DATABASE_URL``)."""
    settings = get_settings()
    url = url or settings.DATABASE_URL

    # Transparently upgrade a plain ``postgresql://`` scheme so that
    # developers do not need to remember the asyncpg dialect prefix.
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    kwargs = {} if url.startswith("sqlite") else dict(_POOL_KWARGS)
    engine = create_async_engine(
        url,
        echo=(settings.LOG_LEVEL == "DEBUG"),
        **kwargs,
    )

    logger.info("database_engine_created", dialect=engine.dialect.name)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table registered on ``Base.metadata`` if missing."""
    import duet.models  # noqa: F401  (registers the ORM tables)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_schema_ready")
