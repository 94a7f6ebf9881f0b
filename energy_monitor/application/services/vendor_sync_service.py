"""
Vendor Sync Service.

Audits a run of days against a vendor and stores the remote readings that
are better than what is held locally. Each kind of data (usage, pricing)
goes through four stages: load local, load remote, compare, store.
"""
import asyncio
import logging
import time
from typing import AsyncIterator, Dict, List, Optional

from ...config import get_settings
from ...domain.entities.point import PointInfo, PointMetadata
from ...domain.entities.session import SessionCause
from ...domain.entities.sync import StageResult, SyncAction, SyncRequest, VendorReading
from ...domain.entities.sync_event import SyncEvent
from ...domain.entities.system import System
from ...domain.exceptions import EntityNotFoundException, ValidationException
from ...domain.services.aggregation_rules import MetricKind
from ...domain.services.readings_batch import ReadingsBatch, compare_batches
from ...infrastructure.database.repositories import (
    AggregateRepository,
    PointRepository,
    SystemRepository,
)
from ..interfaces.vendor_client import VendorClient
from .point_aggregation_service import PointAggregationService
from .session_service import SessionLabelGenerator, SessionService
from .sync_engine import SyncContext, SyncEngine, SyncStage

settings = get_settings()
logger = logging.getLogger(__name__)

BILLABLE = "b"

# Display prefix per kind
KIND_PREFIX = {
    SyncAction.USAGE.value: "usage",
    SyncAction.PRICING.value: "forecast",
}


class StageTracker:
    """Auto-numbers stage names: "usage stage 1: load local data"."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        self.current = 0

    def next(self, description: str) -> str:
        self.current += 1
        return f"{self.prefix} stage {self.current}: {description}"


def local_reading(point: PointInfo, aggregate) -> VendorReading:
    """A stored 5m row seen as a vendor reading, for comparison with remote data."""
    if point.metric_kind is MetricKind.ENERGY:
        value = aggregate.delta
    else:
        value = aggregate.avg if aggregate.avg is not None else aggregate.last

    metadata = PointMetadata(
        origin_id=point.origin_id,
        origin_sub_id=point.origin_sub_id,
        default_name=point.default_name or point.name,
        metric_type=point.metric_type,
        metric_unit=point.metric_unit,
        type=point.type,
        subtype=point.subtype,
        extension=point.extension,
        subsystem=point.subsystem,
        transform=point.transform,
    )
    return VendorReading(
        point_metadata=metadata,
        raw_value=value,
        measurement_time_ms=aggregate.interval_end_ms,
        data_quality=aggregate.data_quality,
    )


class VendorSyncService:
    """
    Application service for vendor synchronization.

    Builds the stage list for a request and runs it through the SyncEngine.
    """

    def __init__(
        self,
        vendor_client: VendorClient,
        system_repo: SystemRepository,
        point_repo: PointRepository,
        aggregate_repo: AggregateRepository,
        session_service: SessionService,
        aggregation_service: Optional[PointAggregationService] = None,
        engine: Optional[SyncEngine] = None,
    ):
        self._vendor = vendor_client
        self._system_repo = system_repo
        self._point_repo = point_repo
        self._aggregate_repo = aggregate_repo
        self._session_service = session_service
        self._aggregation_service = aggregation_service or PointAggregationService(
            aggregate_repo, point_repo
        )
        self._engine = engine or SyncEngine(session_service)
        self._config = settings.sync

    # =========================================================================
    # Entry point
    # =========================================================================

    def validate(self, request: SyncRequest) -> None:
        """
        Raises:
            ValidationException: days outside 1..max_days.
        """
        if request.days < 1 or request.days > self._config.max_days:
            raise ValidationException(
                f"days must be between 1 and {self._config.max_days}",
                errors={"days": [f"must be between 1 and {self._config.max_days}"]},
            )

    async def run(
        self,
        request: SyncRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[SyncEvent]:
        """
        Validate, load the system and start the sync.

        Validation and lookup happen here, before any event is produced, so
        callers can reject a bad request up front. The returned iterator
        yields the session's events.

        Raises:
            ValidationException: Bad request or composite system.
            EntityNotFoundException: Unknown system.
        """
        self.validate(request)

        system = await self._system_repo.get_by_id(request.system_id)
        if system is None:
            raise EntityNotFoundException("System", request.system_id)
        if system.is_composite:
            raise ValidationException(
                "Composite systems cannot be synced",
                errors={"systemId": ["composite system"]},
            )

        stages = self.build_stages(request, system)
        label = SessionLabelGenerator.with_sub_sequence(self._session_service.labels.next(), 1)
        cause = SessionCause.for_admin(request.dry_run)

        logger.info(
            f"Starting {request.action.value} sync for system {system.id}: "
            f"{request.start_date} x{request.days} dry_run={request.dry_run}"
        )
        return self._engine.run(
            request, stages, system, cause, cancel_event=cancel_event, label=label
        )

    # =========================================================================
    # Stages
    # =========================================================================

    def build_stages(self, request: SyncRequest, system: System) -> List[SyncStage]:
        """Four stages per kind; each kind is its own early-exit group."""
        stages: List[SyncStage] = []
        for kind in request.action.kinds():
            tracker = StageTracker(KIND_PREFIX[kind])
            noun = "usage" if kind == SyncAction.USAGE.value else "prices"
            record_noun = "usage" if kind == SyncAction.USAGE.value else "price"
            store_description = f"store superior {record_noun} records"
            if request.dry_run:
                store_description += " (DRY RUN)"

            plan = [
                ("load-local", "load local data", self._load_local_stage, 500),
                ("load-remote", f"load remote {noun}", self._load_remote_stage, 3000),
                ("compare", f"compare local vs remote {noun}", self._compare_stage, 200),
                ("store", store_description, self._store_stage, 1000),
            ]
            for suffix, description, factory, estimated_ms in plan:
                name = tracker.next(description)
                stages.append(SyncStage(
                    id=f"{kind}-{suffix}",
                    name=name,
                    execute=factory(kind, name),
                    estimated_ms=estimated_ms,
                    group=kind,
                ))
        return stages

    def _new_batch(self, request: SyncRequest) -> ReadingsBatch:
        return ReadingsBatch(
            request.start_date,
            request.days,
            interval_minutes=self._config.vendor_interval_minutes,
            offset_minutes=self._config.vendor_offset_minutes,
        )

    def _info(self, batch: ReadingsBatch):
        return batch.get_info(
            canonical_keys=self._config.canonical_point_keys,
            sample_limit=self._config.sample_records_per_point,
        )

    def _load_local_stage(self, kind: str, name: str):
        async def execute(ctx: SyncContext) -> StageResult:
            result = StageResult(stage=name)
            try:
                batch = await self._load_local(ctx.system.id, ctx.request)
            except Exception as e:
                await self._aggregate_repo.rollback()
                logger.error(f"Loading local {kind} data for system {ctx.system.id} failed: {e}")
                result.error = str(e)
                result.halt = True
                return result

            ctx.state[f"{kind}-local"] = batch
            result.info = self._info(batch)
            quality = result.info.uniform_quality

            has_price_points = any(
                key in result.info.overviews for key in self._config.pricing_point_keys
            )
            if kind == SyncAction.PRICING.value:
                if quality == BILLABLE and has_price_points:
                    result.discovery = "local forecasts already up to date"
                    result.halt = True
            elif quality == BILLABLE:
                result.discovery = "yay, we already have BILLABLE usage data locally for this period"
                result.halt = True
            elif quality is not None:
                result.discovery = "billable usage data held locally for this period is INCOMPLETE"
            return result

        return execute

    def _load_remote_stage(self, kind: str, name: str):
        async def execute(ctx: SyncContext) -> StageResult:
            batch = self._new_batch(ctx.request)
            start_unix = batch.range_start_ms // 1000
            end_unix = batch.range_end_ms // 1000
            result = StageResult(
                stage=name,
                request=(
                    f"GET {kind} site={ctx.system.vendor_site_id} "
                    f"start={start_unix} end={end_unix}"
                ),
            )

            timeout = self._config.vendor_timeout_seconds
            try:
                intervals = await asyncio.wait_for(
                    self._vendor.fetch_intervals(ctx.system, start_unix, end_unix, kind=kind),
                    timeout=timeout,
                )
                received_ms = int(time.time() * 1000)
                for interval in intervals:
                    for field_name, value in interval.fields.items():
                        batch.add(VendorReading(
                            point_metadata=self._vendor.describe_field(field_name),
                            raw_value=value,
                            measurement_time_ms=interval.end_ms,
                            received_time_ms=received_ms,
                            data_quality=interval.quality,
                        ))
            except asyncio.TimeoutError:
                logger.error(f"Vendor {kind} request for system {ctx.system.id} timed out")
                result.error = f"vendor request timed out after {timeout}s"
                result.halt = True
                return result
            except Exception as e:
                logger.error(f"Vendor {kind} request for system {ctx.system.id} failed: {e}")
                result.error = str(e)
                result.halt = True
                return result

            ctx.state[f"{kind}-remote"] = batch
            result.info = self._info(batch)
            quality = result.info.uniform_quality

            if result.info.num_records == 0:
                if kind == SyncAction.PRICING.value:
                    result.discovery = "no price data available yet"
                else:
                    result.discovery = "remote usage data for this interval is NOT AVAILABLE"
                result.halt = True
            elif kind == SyncAction.PRICING.value:
                if quality == BILLABLE:
                    result.discovery = "remote has all actual prices"
                else:
                    result.discovery = "remote has price forecasts available"
            elif quality == BILLABLE:
                result.discovery = "remote has full day of data"
            return result

        return execute

    def _compare_stage(self, kind: str, name: str):
        async def execute(ctx: SyncContext) -> StageResult:
            result = StageResult(stage=name)
            local: ReadingsBatch = ctx.state[f"{kind}-local"]
            remote: ReadingsBatch = ctx.state[f"{kind}-remote"]

            # Pricing compares every remote point; usage prefers the local point set
            if kind == SyncAction.PRICING.value:
                keys = remote.get_keys()
            else:
                keys = local.get_keys() or remote.get_keys()

            superior, comparison = compare_batches(local, remote, keys)
            ctx.state[f"{kind}-superior"] = superior

            result.info = self._info(superior)
            result.info.comparison_overviews = comparison

            count = result.info.num_records
            if count == 0:
                if kind == SyncAction.PRICING.value:
                    result.discovery = "local prices are already equal to or better than remote"
                else:
                    result.discovery = "local usage is already equal to or better than remote"
                result.halt = True
            elif kind == SyncAction.PRICING.value:
                result.discovery = f"found {count} superior remote price records to update/insert"
            else:
                result.discovery = f"found {count} superior remote records to update/insert"
            return result

        return execute

    def _store_stage(self, kind: str, name: str):
        async def execute(ctx: SyncContext) -> StageResult:
            superior: ReadingsBatch = ctx.state[f"{kind}-superior"]
            readings = superior.readings()
            result = StageResult(stage=name, info=self._info(superior))

            if ctx.dry_run:
                result.discovery = f"would insert {len(readings)} readings (dry run, skipped)"
                result.num_rows_would_insert = len(readings)
                return result

            try:
                written = await self._aggregation_service.insert_direct_to_5m(
                    ctx.system.id, ctx.session.id, readings
                )
            except Exception as e:
                await self._aggregate_repo.rollback()
                logger.error(f"Storing {kind} readings for system {ctx.system.id} failed: {e}")
                result.error = str(e)
                result.halt = True
                return result

            await self._aggregate_repo.commit()
            result.discovery = f"inserted {written} readings into database"
            result.num_rows_inserted = written
            return result

        return execute

    async def _load_local(self, system_id: int, request: SyncRequest) -> ReadingsBatch:
        batch = self._new_batch(request)

        points = await self._point_repo.get_points_for_system(system_id)
        if not points:
            return batch

        points_by_index: Dict[int, PointInfo] = {point.index: point for point in points}
        expected = set(batch.interval_ends)
        aggregates = await self._aggregate_repo.get_5m_range(
            system_id, batch.interval_ends[0], batch.range_end_ms
        )
        for aggregate in aggregates:
            point = points_by_index.get(aggregate.point_id)
            if point is None or aggregate.interval_end_ms not in expected:
                continue
            batch.add(local_reading(point, aggregate))
        return batch
