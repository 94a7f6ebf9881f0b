"""
Unit tests for VendorSyncService.

Runs the four usage/pricing stages end to end against a fake vendor client
and mocked repositories.
"""
import asyncio
from datetime import date
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from energy_monitor.application.interfaces import RawInterval, VendorClient
from energy_monitor.application.services.session_service import SessionLabelGenerator, SessionService
from energy_monitor.application.services.vendor_sync_service import (
    StageTracker,
    VendorSyncService,
    local_reading,
)
from energy_monitor.domain.entities.point import PointMetadata
from energy_monitor.domain.entities.session import SessionCause
from energy_monitor.domain.entities.sync import StageStatus, SyncAction, SyncRequest
from energy_monitor.domain.entities.sync_event import CompleteEvent, ErrorEvent, StagesEvent
from energy_monitor.domain.exceptions import EntityNotFoundException, ValidationException
from energy_monitor.domain.services.readings_batch import ReadingsBatch

from factories import Aggregate5mFactory, CompositeSystemFactory, PointInfoFactory

FIELDS: Dict[str, PointMetadata] = {
    "E1.kwh": PointMetadata(
        origin_id="E1", origin_sub_id="kwh", default_name="Grid Import",
        metric_type="energy", metric_unit="kWh", type="load", subtype="grid",
    ),
    "grid.spotPerKwh": PointMetadata(
        origin_id="grid", origin_sub_id="spotPerKwh", default_name="Spot Price",
        metric_type="price", metric_unit="c/kWh",
    ),
}


class FakeVendorClient(VendorClient):
    """Returns one interval per batch interval end with a fixed quality."""

    def __init__(self, quality="billable", fields=("E1.kwh",), error=None, delay=0.0, on_call=None):
        self.quality = quality
        self.fields = fields
        self.error = error
        self.delay = delay
        self.on_call = on_call
        self.calls: List[tuple] = []

    async def fetch_intervals(self, system, start_unix=None, end_unix=None, kind="usage"):
        self.calls.append((kind, start_unix, end_unix))
        if self.on_call is not None:
            self.on_call()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        batch = ReadingsBatch(date(2025, 6, 1), 1, 30, 600)
        return [
            RawInterval(end_ms=end, fields={name: 0.5 for name in self.fields}, quality=self.quality)
            for end in batch.interval_ends
        ]

    def describe_field(self, name: str) -> PointMetadata:
        return FIELDS[name]


@pytest.fixture
def vendor():
    return FakeVendorClient()


@pytest.fixture
def aggregation_service():
    service = AsyncMock()
    service.insert_direct_to_5m = AsyncMock(side_effect=lambda system_id, session_id, readings: len(readings))
    return service


@pytest.fixture
def session_service(mock_session_repo):
    return SessionService(mock_session_repo, label_generator=SessionLabelGenerator(prefix="sEfn"))


@pytest.fixture
def service(vendor, mock_system_repo, mock_point_repo, mock_aggregate_repo, session_service,
            aggregation_service, sample_system):
    mock_system_repo.get_by_id.return_value = sample_system
    return VendorSyncService(
        vendor,
        mock_system_repo,
        mock_point_repo,
        mock_aggregate_repo,
        session_service,
        aggregation_service=aggregation_service,
    )


async def run_sync(service, request, cancel_event=None):
    events = await service.run(request, cancel_event)
    return [event async for event in events]


def final_stages(events):
    return {s.id: s for s in [e for e in events if isinstance(e, StagesEvent)][-1].stages}


class TestHelpers:
    """Tests for stage naming and local readings."""

    def test_stage_tracker(self):
        tracker = StageTracker("usage")

        assert tracker.next("load local data") == "usage stage 1: load local data"
        assert tracker.next("load remote usage") == "usage stage 2: load remote usage"

    def test_local_energy_reading_uses_delta(self):
        point = PointInfoFactory(origin_id="E1", origin_sub_id="kwh", metric_type="energy")
        aggregate = Aggregate5mFactory(avg=3.0, delta=0.5, data_quality="b", interval_end_ms=1800000)

        reading = local_reading(point, aggregate)

        assert reading.raw_value == 0.5
        assert reading.point_key == "E1.kwh"
        assert reading.measurement_time_ms == 1800000

    def test_local_power_reading_falls_back_to_last(self):
        point = PointInfoFactory(metric_type="power")

        assert local_reading(point, Aggregate5mFactory(avg=None, last=7.0)).raw_value == 7.0


class TestValidation:
    """Tests for checks made before the stream starts."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [0, 31])
    async def test_days_out_of_range(self, service, sample_sync_request, mock_system_repo, days):
        sample_sync_request.days = days

        with pytest.raises(ValidationException) as exc_info:
            await service.run(sample_sync_request)

        assert "days" in exc_info.value.errors
        mock_system_repo.get_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_system(self, service, sample_sync_request, mock_system_repo, mock_session_repo):
        mock_system_repo.get_by_id.return_value = None

        with pytest.raises(EntityNotFoundException):
            await service.run(sample_sync_request)

        mock_session_repo.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_composite_system_rejected(self, service, sample_sync_request, mock_system_repo):
        mock_system_repo.get_by_id.return_value = CompositeSystemFactory(id=1)

        with pytest.raises(ValidationException):
            await service.run(sample_sync_request)


class TestBuildStages:
    """Tests for the stage list."""

    def test_both_kinds(self, service, sample_system):
        request = SyncRequest(system_id=1, action=SyncAction.BOTH, start_date=date(2025, 6, 1))

        stages = service.build_stages(request, sample_system)

        assert [s.name for s in stages] == [
            "usage stage 1: load local data",
            "usage stage 2: load remote usage",
            "usage stage 3: compare local vs remote usage",
            "usage stage 4: store superior usage records",
            "forecast stage 1: load local data",
            "forecast stage 2: load remote prices",
            "forecast stage 3: compare local vs remote prices",
            "forecast stage 4: store superior price records",
        ]
        assert [s.group for s in stages] == ["usage"] * 4 + ["pricing"] * 4

    def test_dry_run_store_name(self, service, sample_system):
        request = SyncRequest(system_id=1, action=SyncAction.USAGE, start_date=date(2025, 6, 1), dry_run=True)

        stages = service.build_stages(request, sample_system)

        assert stages[-1].name == "usage stage 4: store superior usage records (DRY RUN)"


class TestUsageSync:
    """Tests for a usage sync run."""

    @pytest.mark.asyncio
    async def test_stores_superior_remote_readings(self, service, sample_sync_request, aggregation_service,
                                                   mock_session_repo, vendor):
        events = await run_sync(service, sample_sync_request)

        assert isinstance(events[-1], CompleteEvent)
        assert events[-1].summary["num_rows_inserted"] == 48

        stages = final_stages(events)
        assert stages["usage-load-remote"].detail == "remote has full day of data"
        assert stages["usage-compare"].detail == "found 48 superior remote records to update/insert"
        assert stages["usage-store"].detail == "inserted 48 readings into database"

        system_id, session_id, readings = aggregation_service.insert_direct_to_5m.call_args.args
        assert session_id == 101
        assert {r.data_quality for r in readings} == {"b"}

        assert vendor.calls[0][0] == "usage"
        create_kwargs = mock_session_repo.create.call_args.kwargs
        assert create_kwargs["cause"] is SessionCause.ADMIN
        assert create_kwargs["session_label"] == "sEfn/1.1"
        assert mock_session_repo.finalize.call_args.kwargs["num_rows"] == 48

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, service, sample_sync_request, aggregation_service,
                                          mock_session_repo):
        sample_sync_request.dry_run = True

        events = await run_sync(service, sample_sync_request)

        aggregation_service.insert_direct_to_5m.assert_not_called()
        assert final_stages(events)["usage-store"].detail == "would insert 48 readings (dry run, skipped)"
        assert mock_session_repo.create.call_args.kwargs["cause"] is SessionCause.ADMIN_DRYRUN
        assert events[-2].message == "Sync finished: would write 48 rows"
        assert mock_session_repo.finalize.call_args.kwargs["num_rows"] == 48

    @pytest.mark.asyncio
    async def test_billable_local_data_exits_early(self, service, sample_sync_request, mock_point_repo,
                                                   mock_aggregate_repo, vendor):
        point = PointInfoFactory(system_id=1, index=1, origin_id="E1", origin_sub_id="kwh", metric_type="energy")
        mock_point_repo.get_points_for_system.return_value = [point]
        ends = ReadingsBatch(date(2025, 6, 1), 1, 30, 600).interval_ends
        mock_aggregate_repo.get_5m_range.return_value = [
            Aggregate5mFactory(point_id=1, interval_end_ms=end, delta=0.5, data_quality="b")
            for end in ends
        ]

        events = await run_sync(service, sample_sync_request)

        stages = final_stages(events)
        assert stages["usage-load-local"].detail == (
            "yay, we already have BILLABLE usage data locally for this period"
        )
        assert stages["usage-load-remote"].status is StageStatus.SKIPPED
        assert stages["usage-store"].status is StageStatus.SKIPPED
        assert vendor.calls == []
        assert isinstance(events[-1], CompleteEvent)

    @pytest.mark.asyncio
    async def test_incomplete_local_data_is_replaced(self, service, sample_sync_request, mock_point_repo,
                                                   mock_aggregate_repo, aggregation_service):
        point = PointInfoFactory(system_id=1, index=1, origin_id="E1", origin_sub_id="kwh", metric_type="energy")
        mock_point_repo.get_points_for_system.return_value = [point]
        ends = ReadingsBatch(date(2025, 6, 1), 1, 30, 600).interval_ends
        # estimated locally at the first interval only, remote is billable everywhere
        mock_aggregate_repo.get_5m_range.return_value = [
            Aggregate5mFactory(point_id=1, interval_end_ms=ends[0], delta=0.5, data_quality="e"),
        ]

        events = await run_sync(service, sample_sync_request)

        stages = final_stages(events)
        assert stages["usage-load-local"].detail == (
            "billable usage data held locally for this period is INCOMPLETE"
        )
        assert stages["usage-compare"].result.info.comparison_overviews["E1.kwh"].startswith("BB")

    @pytest.mark.asyncio
    async def test_vendor_failure(self, service, sample_sync_request, vendor, mock_session_repo):
        vendor.error = ConnectionError("vendor unreachable")

        events = await run_sync(service, sample_sync_request)

        stages = final_stages(events)
        assert stages["usage-load-remote"].status is StageStatus.ERROR
        assert stages["usage-load-remote"].detail == "vendor unreachable"
        assert stages["usage-compare"].status is StageStatus.SKIPPED
        assert mock_session_repo.finalize.call_args.kwargs["successful"] is False

    @pytest.mark.asyncio
    async def test_store_commits_written_readings(self, service, sample_sync_request, mock_aggregate_repo):
        await run_sync(service, sample_sync_request)

        mock_aggregate_repo.commit.assert_called_once()
        mock_aggregate_repo.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_failure_rolls_back_before_finalize(self, service, sample_sync_request,
                                                            aggregation_service, mock_aggregate_repo,
                                                            mock_session_repo):
        """Test a failed write is rolled back so the session's final update still lands."""
        calls: List[str] = []
        aggregation_service.insert_direct_to_5m.side_effect = RuntimeError("duplicate key value")
        mock_aggregate_repo.rollback.side_effect = lambda: calls.append("rollback")

        async def finalize(session_id, **kwargs):
            calls.append("finalize")
            if "rollback" not in calls:
                raise RuntimeError("current transaction is aborted")
            return True

        mock_session_repo.finalize.side_effect = finalize

        events = await run_sync(service, sample_sync_request)

        stages = final_stages(events)
        assert stages["usage-store"].status is StageStatus.ERROR
        assert stages["usage-store"].detail == "duplicate key value"
        assert calls == ["rollback", "finalize"]
        assert mock_session_repo.finalize.call_args.kwargs["successful"] is False
        mock_aggregate_repo.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_vendor_timeout(self, service, sample_sync_request, vendor):
        vendor.delay = 1.0
        service._config = service._config.model_copy(update={"vendor_timeout_seconds": 0.01})

        events = await run_sync(service, sample_sync_request)

        assert final_stages(events)["usage-load-remote"].detail == "vendor request timed out after 0.01s"

    @pytest.mark.asyncio
    async def test_no_remote_data(self, service, sample_sync_request, vendor):
        vendor.fields = ()

        events = await run_sync(service, sample_sync_request)

        stages = final_stages(events)
        assert stages["usage-load-remote"].detail == "remote usage data for this interval is NOT AVAILABLE"
        assert stages["usage-compare"].status is StageStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_cancellation_reaches_vendor_call(self, service, sample_sync_request, vendor,
                                                    mock_session_repo):
        cancel_event = asyncio.Event()
        vendor.delay = 10.0
        vendor.on_call = cancel_event.set

        collected = await run_sync(service, sample_sync_request, cancel_event)

        assert isinstance(collected[-1], ErrorEvent)
        assert final_stages(collected)["usage-load-remote"].detail == "Cancelled"
        assert mock_session_repo.finalize.call_args.kwargs["error_code"] == "CANCELLED"


class TestPricingSync:
    """Tests for a pricing sync run."""

    @pytest.mark.asyncio
    async def test_forecast_prices(self, service, vendor):
        vendor.quality = "forecast"
        vendor.fields = ("grid.spotPerKwh",)
        request = SyncRequest(system_id=1, action=SyncAction.PRICING, start_date=date(2025, 6, 1))

        events = await run_sync(service, request)

        stages = final_stages(events)
        assert stages["pricing-load-remote"].name == "forecast stage 2: load remote prices"
        assert stages["pricing-load-remote"].detail == "remote has price forecasts available"
        assert stages["pricing-compare"].detail == "found 48 superior remote price records to update/insert"
        assert vendor.calls[0][0] == "pricing"
