"""
Unit tests for the series listing endpoint.
"""
import pytest

from factories import CompositeSystemFactory

URL = "/api/v1/systems/{}/series"


@pytest.fixture
def with_points(mock_system_repo, mock_point_repo, sample_system, sample_points):
    mock_system_repo.get_by_id.return_value = sample_system
    mock_point_repo.get_points_for_system.return_value = sample_points


class TestListSeries:
    """Tests for GET /systems/{id}/series."""

    @pytest.mark.asyncio
    async def test_lists_series(self, api_client, with_points):
        response = await api_client.get(URL.format(1))

        assert response.status_code == 200
        data = response.json()
        assert data["systemId"] == 1
        assert data["count"] == 9
        first = data["series"][0]
        assert first["id"] == "system.1/source.solar/power.avg"
        assert first["path"] == "source.solar/power.avg"
        assert first["intervals"] == ["5m", "1d"]
        assert first["metricUnit"] == "W"
        assert first["pointIndex"] == 1
        assert first["aggregationField"] == "avg"

    @pytest.mark.asyncio
    async def test_filter_and_interval(self, api_client, with_points):
        response = await api_client.get(URL.format(1), params={"filter": "*/soc.*", "interval": "5m"})

        assert response.status_code == 200
        assert [s["path"] for s in response.json()["series"]] == ["bidi.battery/soc.last"]

    @pytest.mark.asyncio
    async def test_typed_only(self, api_client, mock_system_repo, mock_point_repo, sample_system, sample_points):
        sample_points[0].type = None
        mock_system_repo.get_by_id.return_value = sample_system
        mock_point_repo.get_points_for_system.return_value = sample_points

        response = await api_client.get(URL.format(1), params={"typedOnly": "true"})

        paths = [s["path"] for s in response.json()["series"]]
        assert not any("solar" in path for path in paths)

    @pytest.mark.asyncio
    async def test_unknown_system(self, api_client):
        response = await api_client.get(URL.format(999))

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_invalid_filter_rejected_before_lookup(self, api_client, mock_system_repo):
        response = await api_client.get(URL.format(1), params={"filter": "source.solar/{power"})

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_FILTER"
        mock_system_repo.get_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_interval(self, api_client, mock_system_repo):
        response = await api_client.get(URL.format(1), params={"interval": "1h"})

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_INTERVAL"
        mock_system_repo.get_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_composite_system(self, api_client, mock_system_repo, mock_point_repo, sample_points):
        composite = CompositeSystemFactory(id=10, mappings={"solar": ["1.1"]})
        mock_system_repo.get_by_id.return_value = composite
        mock_point_repo.get_points_by_refs.return_value = [sample_points[0]]

        response = await api_client.get(URL.format(10))

        assert response.status_code == 200
        data = response.json()
        assert data["systemId"] == 10
        assert data["count"] == 4
        assert all(s["systemId"] == 1 for s in data["series"])
