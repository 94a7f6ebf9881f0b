"""
FastAPI dependencies for the energy monitor API.

Provides database sessions and service instances via dependency injection.
Process-wide objects (series cache, session labels, publisher, vendor
client) live on app.state and are created in main.create_app.
"""
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncGenerator, Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..application.interfaces import VendorClient
from ..application.services import (
    DailyRollupService,
    SeriesManager,
    SessionLabelGenerator,
    SessionService,
    VendorSyncService,
)
from ..infrastructure.cache import SeriesCache
from ..infrastructure.database import get_db, get_db_session
from ..infrastructure.database.repositories import (
    AggregateRepository,
    PointRepository,
    SessionRepository,
    SystemRepository,
)
from ..infrastructure.messaging import SessionPublisher

VendorSyncProvider = Callable[[], AsyncContextManager[VendorSyncService]]


def get_series_cache(request: Request) -> SeriesCache:
    """Process-wide series cache."""
    return request.app.state.series_cache


def get_session_labels(request: Request) -> SessionLabelGenerator:
    """Process-wide session label generator."""
    return request.app.state.session_labels


def get_session_publisher(request: Request) -> Optional[SessionPublisher]:
    return getattr(request.app.state, "session_publisher", None)


def get_vendor_client(request: Request) -> VendorClient:
    """Configured vendor client; 503 when none is installed."""
    client = getattr(request.app.state, "vendor_client", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No vendor client configured",
        )
    return client


async def get_system_repository(
    session: AsyncSession = Depends(get_db),
) -> SystemRepository:
    """Get system repository instance."""
    return SystemRepository(session)


async def get_series_manager(
    session: AsyncSession = Depends(get_db),
    cache: SeriesCache = Depends(get_series_cache),
) -> SeriesManager:
    """Get series manager instance backed by the shared cache."""
    return SeriesManager(PointRepository(session), cache=cache)


async def get_rollup_service(
    session: AsyncSession = Depends(get_db),
) -> DailyRollupService:
    """Get daily rollup service instance."""
    return DailyRollupService(
        AggregateRepository(session),
        SystemRepository(session),
        PointRepository(session),
    )


def get_vendor_sync_provider(
    vendor_client: VendorClient = Depends(get_vendor_client),
    labels: SessionLabelGenerator = Depends(get_session_labels),
    publisher: Optional[SessionPublisher] = Depends(get_session_publisher),
) -> VendorSyncProvider:
    """
    Opener for a VendorSyncService with its own database session.

    A streaming response outlives request-scoped dependencies, so the sync
    route enters this itself and closes it when the stream ends.
    """

    @asynccontextmanager
    async def open_service() -> AsyncGenerator[VendorSyncService, None]:
        async with get_db_session() as session:
            session_service = SessionService(
                SessionRepository(session),
                publisher=publisher,
                label_generator=labels,
            )
            yield VendorSyncService(
                vendor_client,
                SystemRepository(session),
                PointRepository(session),
                AggregateRepository(session),
                session_service,
            )

    return open_service
