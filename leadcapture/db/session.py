# leadcapture/db/session.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from leadcapture.core.config import Settings
from leadcapture.core.exceptions import StorageError
from leadcapture.core.logging import get_structlog_logger
from leadcapture.db.base import Base

logger = get_structlog_logger(__name__)


def create_database_engine(settings: Settings) -> AsyncEngine:
    """Create and configure the async database engine."""
    url = make_url(settings.database_url)
    is_postgres = url.get_backend_name() == "postgresql"

    if settings.is_testing:
        # NullPool keeps test runs free of connections shared across event loops
        engine = create_async_engine(
            url,
            poolclass=NullPool,
            echo=settings.debug,
        )
    else:
        options = {
            "pool_pre_ping": True,  # Verify connections before using
            "echo": settings.debug,
        }
        if is_postgres:
            options.update(
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_timeout=settings.database_pool_timeout,
                pool_recycle=settings.database_pool_recycle,
                connect_args={
                    "command_timeout": settings.store_timeout_seconds,
                    "server_settings": {"application_name": "leadcapture_api"},
                },
            )
        engine = create_async_engine(url, **options)

    logger.info(
        "database.engine.created",
        backend=url.get_backend_name(),
        pool_size=settings.database_pool_size if is_postgres else None,
        testing=settings.is_testing,
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session, rolling back on any exception."""
    session = session_factory()
    try:
        yield session
    except BaseException:
        await session.rollback()
        raise
    finally:
        await session.close()


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables and indexes that do not exist yet."""
    # Register models on the metadata before create_all
    from leadcapture.models import lead  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as e:
        logger.error("database.schema_error", error=str(e))
        raise StorageError(details={"error": str(e)}) from e
    logger.info("database.schema_ready", tables=sorted(Base.metadata.tables))

