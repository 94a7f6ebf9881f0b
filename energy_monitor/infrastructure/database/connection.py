"""
PostgreSQL connection management.

One async engine per process. Sessions come from `get_db_session`, which
commits on success; the sync stream opens its own through the same scope
because it outlives the request.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ...config import get_settings
from .models.base import Base

settings = get_settings()
logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Process-wide engine and session factory.

    Interval times are stored as Unix milliseconds, but created/started
    timestamps are timestamptz, so every connection runs in UTC.
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def get_engine(cls) -> AsyncEngine:
        if cls._engine is None:
            db = settings.database
            cls._engine = create_async_engine(
                db.url,
                echo=db.echo_sql,
                pool_size=db.pool_size,
                max_overflow=db.max_overflow,
                pool_pre_ping=True,
                connect_args={
                    "server_settings": {
                        "application_name": settings.app_name,
                        "timezone": "UTC",
                    },
                },
            )
            logger.info(f"Database engine created for {db.host}:{db.port}/{db.name}")
        return cls._engine

    @classmethod
    def get_session_factory(cls) -> async_sessionmaker[AsyncSession]:
        # expire_on_commit off: repositories map rows to entities after commit
        if cls._session_factory is None:
            cls._session_factory = async_sessionmaker(
                bind=cls.get_engine(),
                expire_on_commit=False,
                autoflush=False,
            )
        return cls._session_factory

    @classmethod
    async def close(cls) -> None:
        if cls._engine is None:
            return
        await cls._engine.dispose()
        cls._engine = None
        cls._session_factory = None
        logger.info("Database engine disposed")


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Session scope: commit when the block succeeds, roll back when it raises.
    """
    async with DatabaseManager.get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    async with get_db_session() as session:
        yield session


async def init_db() -> None:
    """Create the energy tables if they do not exist."""
    # Registers the tables on Base.metadata
    from .models import energy_model  # noqa: F401

    async with DatabaseManager.get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Ensured {len(Base.metadata.tables)} tables")


async def health_check() -> bool:
    """True if a trivial query succeeds."""
    try:
        async with DatabaseManager.get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return False
    return True
