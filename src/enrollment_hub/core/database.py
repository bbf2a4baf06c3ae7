"""
Database Configuration

Async SQLAlchemy engine, session factory and declarative base.

Sessions produced here never autocommit: callers (the enrollment coordinator,
request handlers, background jobs) own the transaction and decide when to
commit or roll back.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from enrollment_hub.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a database session.

    Usage:
        @router.get("/classes/{class_id}")
        async def get_class(class_id: str, db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_maker() as session:
        yield session


async def init_db() -> None:
    """
    Verify database connectivity on startup.

    When ``database_auto_create`` is enabled (local development and tests),
    missing tables are created from the ORM metadata. Production schemas are
    managed with Alembic migrations.
    """
    # Import models so they are registered on Base.metadata
    from enrollment_hub.modules.classes import models as _class_models  # noqa: F401
    from enrollment_hub.modules.enrollments import models as _enrollment_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        if settings.database_auto_create and not settings.is_production:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables ensured from metadata")


async def close_db() -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()
