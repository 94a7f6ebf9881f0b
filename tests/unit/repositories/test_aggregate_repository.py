"""
Unit tests for AggregateRepository.

Tests five-minute and daily reads, upserts and range deletes.
"""
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from energy_monitor.domain.entities.aggregate import PointAggregate1d
from energy_monitor.infrastructure.database.models import PointReadingAgg5mModel
from energy_monitor.infrastructure.database.repositories.aggregate_repository import AggregateRepository

from factories import Aggregate5mFactory


@pytest.fixture
def mock_session():
    """Create a mock database session."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def repository(mock_session):
    return AggregateRepository(mock_session)


class TestFiveMinute:
    """Tests for five-minute rows."""

    @pytest.mark.asyncio
    async def test_get_5m_range_maps_models(self, repository, mock_session):
        result = MagicMock()
        result.scalars.return_value.all.return_value = [
            PointReadingAgg5mModel(
                system_id=1, point_id=2, interval_end=300000,
                avg=1.0, min=0.5, max=1.5, last=1.2, delta=None,
                sample_count=3, error_count=0, data_quality="b", session_id=9,
            ),
        ]
        mock_session.execute.return_value = result

        (row,) = await repository.get_5m_range(1, 0, 600000)

        assert row.interval_end_ms == 300000
        assert row.last == 1.2
        assert row.session_id == 9

    @pytest.mark.asyncio
    async def test_upsert_5m_empty(self, repository, mock_session):
        assert await repository.upsert_5m([]) == 0
        mock_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_upsert_5m_single_statement(self, repository, mock_session):
        rows = Aggregate5mFactory.build_batch(3)

        assert await repository.upsert_5m(rows) == 3
        mock_session.execute.assert_called_once()

    @pytest.mark.asyncio
    async def test_get_last_values_skips_empty_ids(self, repository, mock_session):
        assert await repository.get_last_values_5m(1, [], 300000) == {}
        mock_session.execute.assert_not_called()


class TestDaily:
    """Tests for daily rows."""

    @pytest.mark.asyncio
    async def test_upsert_1d(self, repository, mock_session):
        rows = [PointAggregate1d(system_id=1, point_id=1, day=date(2025, 6, 1), avg=100.0)]

        assert await repository.upsert_1d(rows) == 1
        mock_session.execute.assert_called_once()

    @pytest.mark.asyncio
    async def test_delete_1d_range_returns_rowcount(self, repository, mock_session):
        mock_session.execute.return_value = MagicMock(rowcount=12)

        deleted = await repository.delete_1d_range(date(2025, 6, 1), date(2025, 6, 2))

        assert deleted == 12

    @pytest.mark.asyncio
    async def test_get_existing_days(self, repository, mock_session):
        result = MagicMock()
        result.scalars.return_value.all.return_value = [date(2025, 6, 1)]
        mock_session.execute.return_value = result

        days = await repository.get_existing_days(1, date(2025, 6, 1), date(2025, 6, 3))

        assert days == {date(2025, 6, 1)}
