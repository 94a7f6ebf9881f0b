"""
Shared pytest fixtures for energy monitor tests.

Provides fixtures for:
- Database sessions (mocked AsyncSession)
- Redis mock (fakeredis)
- API client (httpx)
- Sample systems, points and sync requests
"""
import os
from datetime import date, datetime, timezone
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# Test environment configuration
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REDIS_PUBLISH_SESSIONS", "false")

from energy_monitor.domain.entities.point import PointInfo
from energy_monitor.domain.entities.sync import SyncAction, SyncRequest
from energy_monitor.domain.entities.system import System

from factories import PointInfoFactory, SystemFactory


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def mock_db_session():
    """
    Mock database session for unit tests.

    Returns an AsyncMock that can be configured per test.
    """
    session = AsyncMock()
    session.execute = AsyncMock(return_value=MagicMock(scalars=MagicMock(return_value=MagicMock(all=MagicMock(return_value=[])))))
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.refresh = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()

    yield session


# ============================================================================
# Redis Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def mock_redis():
    """
    Mock Redis client for unit tests.

    Uses fakeredis for realistic Redis behavior.
    """
    import fakeredis.aioredis

    redis = fakeredis.aioredis.FakeRedis()
    yield redis
    await redis.flushall()
    await redis.aclose()


# ============================================================================
# Repository Fixtures
# ============================================================================

@pytest.fixture
def mock_system_repo():
    repo = AsyncMock()
    repo.get_by_id = AsyncMock(return_value=None)
    repo.get_by_ids = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def mock_point_repo():
    repo = AsyncMock()
    repo.get_points_for_system = AsyncMock(return_value=[])
    repo.get_points_by_refs = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def mock_aggregate_repo():
    repo = AsyncMock()
    repo.get_5m_range = AsyncMock(return_value=[])
    repo.upsert_5m = AsyncMock(side_effect=lambda rows: len(rows))
    repo.upsert_1d = AsyncMock(side_effect=lambda rows: len(rows))
    repo.delete_1d_range = AsyncMock(return_value=0)
    repo.get_system_ids_with_5m_since = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def mock_session_repo():
    """Session repository that hands out sequential ids."""
    from energy_monitor.domain.entities.session import SessionRecord

    repo = AsyncMock()
    counter = {"next": 100}

    async def create(system_id, cause, started, session_label=None, **kwargs):
        counter["next"] += 1
        return SessionRecord(
            id=counter["next"],
            system_id=system_id,
            cause=cause,
            started=started,
            session_label=session_label,
        )

    repo.create = AsyncMock(side_effect=create)
    repo.finalize = AsyncMock(return_value=True)
    repo.get_by_id = AsyncMock(return_value=None)
    return repo


# ============================================================================
# API Client Fixtures
# ============================================================================

@pytest.fixture
def test_app(mock_system_repo, mock_point_repo, mock_aggregate_repo):
    """
    Fresh application with repositories replaced by mocks.

    The lifespan is never run, so no database or Redis connection is made.
    """
    from energy_monitor.api.dependencies import (
        get_rollup_service,
        get_series_manager,
        get_system_repository,
    )
    from energy_monitor.application.services import DailyRollupService, SeriesManager
    from energy_monitor.main import create_app

    app = create_app()

    app.dependency_overrides[get_system_repository] = lambda: mock_system_repo
    app.dependency_overrides[get_series_manager] = lambda: SeriesManager(
        mock_point_repo, cache=app.state.series_cache
    )
    app.dependency_overrides[get_rollup_service] = lambda: DailyRollupService(
        mock_aggregate_repo, mock_system_repo, mock_point_repo
    )

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def api_client(test_app):
    """
    Test API client for unit tests.

    Uses mocked dependencies.
    """
    import httpx

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=test_app),
        base_url="http://test"
    ) as client:
        yield client


# ============================================================================
# Test Data Fixtures
# ============================================================================

@pytest.fixture
def sample_system() -> System:
    """A regular system at UTC+10."""
    return SystemFactory(id=1, vendor_site_id="site-1", timezone_offset_min=600)


@pytest.fixture
def sample_points() -> List[PointInfo]:
    """Solar power, battery state of charge and grid energy for system 1."""
    return [
        PointInfoFactory(
            system_id=1, index=1, origin_id="solar", default_name="Solar Power",
            metric_type="power", metric_unit="W", type="source", subtype="solar",
        ),
        PointInfoFactory(
            system_id=1, index=2, origin_id="battery", default_name="Battery SoC",
            metric_type="soc", metric_unit="%", type="bidi", subtype="battery",
        ),
        PointInfoFactory(
            system_id=1, index=3, origin_id="E1", default_name="Grid Import",
            metric_type="energy", metric_unit="Wh", type="load", subtype="grid",
        ),
    ]


@pytest.fixture
def sample_sync_request() -> SyncRequest:
    return SyncRequest(
        system_id=1,
        action=SyncAction.USAGE,
        start_date=date(2025, 6, 1),
        days=1,
    )


@pytest.fixture
def fixed_now() -> datetime:
    """2025-06-02 15:00 UTC, after the daily run hour."""
    return datetime(2025, 6, 2, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def freeze_time():
    """
    Freeze time for testing.

    Usage:
        def test_something(freeze_time):
            with freeze_time("2025-06-02 15:00:00"):
                # time is frozen
    """
    from freezegun import freeze_time as _freeze_time
    return _freeze_time
