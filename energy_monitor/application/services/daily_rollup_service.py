"""
Daily rollup of five-minute aggregates.

A day in a system's offset spans the 00:05 bucket through the next day's
00:00 bucket. The 00:00 bucket of the day itself only supplies `last`.
"""
import logging
import time
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from ...config import get_settings
from ...domain.entities.aggregate import (
    PointAggregate1d,
    PointAggregate5m,
    RangeAggregationResult,
    RangeDeletionResult,
    SystemDayResult,
)
from ...domain.entities.point import PointInfo
from ...domain.entities.system import System
from ...domain.exceptions import InvalidDateRangeException, ValidationException
from ...domain.services.aggregation_rules import AggregationField, Interval, computed_fields
from ...domain.value_objects import AggregationWindow, DateRange
from ...infrastructure.database.repositories import (
    AggregateRepository,
    PointRepository,
    SystemRepository,
)

settings = get_settings()
logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def aggregation_window(day: date, offset_minutes: int, bucket_minutes: int = 5) -> AggregationWindow:
    """Bucket range [00:05, next 00:00] of a day, in milliseconds."""
    return AggregationWindow.for_day(day, offset_minutes, bucket_minutes)


def rollup_point(
    system_id: int,
    point: PointInfo,
    day: date,
    records: List[PointAggregate5m],
    last: Optional[float],
) -> PointAggregate1d:
    """
    Reduce one point's five-minute rows for a day.

    avg is the unweighted mean of bucket averages. Fields the metric type
    does not carry at one day are left null.
    """
    avg_values = [r.avg for r in records if r.avg is not None]
    min_values = [r.min for r in records if r.min is not None]
    max_values = [r.max for r in records if r.max is not None]
    delta_values = [r.delta for r in records if r.delta is not None]

    stats = {
        AggregationField.AVG: sum(avg_values) / len(avg_values) if avg_values else None,
        AggregationField.MIN: min(min_values) if min_values else None,
        AggregationField.MAX: max(max_values) if max_values else None,
        AggregationField.LAST: last,
        AggregationField.DELTA: sum(delta_values) if delta_values else None,
    }

    allowed = computed_fields(point.metric_type, Interval.ONE_DAY)
    for agg_field in stats:
        if agg_field not in allowed:
            stats[agg_field] = None

    return PointAggregate1d(
        system_id=system_id,
        point_id=point.index,
        day=day,
        avg=stats[AggregationField.AVG],
        min=stats[AggregationField.MIN],
        max=stats[AggregationField.MAX],
        last=stats[AggregationField.LAST],
        delta=stats[AggregationField.DELTA],
        sample_count=sum(r.sample_count or 0 for r in records),
        error_count=sum(r.error_count or 0 for r in records),
    )


class DailyRollupService:
    """
    Builds point_readings_agg_1d from point_readings_agg_5m.

    Range operations commit each system-day on its own; a failure rolls
    that day back, is logged, and the loop carries on.
    """

    def __init__(
        self,
        aggregate_repo: AggregateRepository,
        system_repo: SystemRepository,
        point_repo: PointRepository,
        min_date: Optional[date] = None,
        recent_window_days: Optional[int] = None,
        bucket_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._aggregate_repo = aggregate_repo
        self._system_repo = system_repo
        self._point_repo = point_repo
        self._min_date = min_date or settings.aggregation.min_date
        self._recent_window_days = recent_window_days or settings.aggregation.recent_window_days
        self._bucket_minutes = bucket_minutes or settings.aggregation.bucket_minutes
        self._clock = clock

    # =========================================================================
    # Single Day
    # =========================================================================

    async def aggregate_day(self, system: System, day: date) -> Optional[List[PointAggregate1d]]:
        """
        Roll up one system for one day.

        Returns:
            The rows written, or None when no five-minute data exists.
        """
        started = time.perf_counter()
        window = aggregation_window(day, system.timezone_offset_min, self._bucket_minutes)

        rows = await self._aggregate_repo.get_5m_range(
            system.id, window.previous_boundary_ms, window.end_ms
        )
        if not rows:
            logger.info(f"No point data found for system {system.id} on {day}")
            return None

        last_values: Dict[int, Optional[float]] = {}
        by_point: Dict[int, List[PointAggregate5m]] = {}
        for row in rows:
            if row.interval_end_ms == window.previous_boundary_ms:
                last_values[row.point_id] = row.last
            elif window.contains(row.interval_end_ms):
                by_point.setdefault(row.point_id, []).append(row)

        if not by_point:
            logger.info(f"No 5-min data found for system {system.id} on {day}")
            return None

        points = {
            point.index: point
            for point in await self._point_repo.get_points_for_system(system.id)
        }

        aggregates: List[PointAggregate1d] = []
        for point_id, records in by_point.items():
            point = points.get(point_id)
            if point is None:
                logger.debug(f"Skipping inactive or unknown point {system.id}.{point_id}")
                continue
            aggregates.append(
                rollup_point(system.id, point, day, records, last_values.get(point_id))
            )

        if not aggregates:
            return None

        await self._aggregate_repo.upsert_1d(aggregates)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Aggregated {len(aggregates)} points for system {system.id} on {day} in {elapsed_ms:.2f}ms"
        )
        return aggregates

    # =========================================================================
    # Range Operations
    # =========================================================================

    async def aggregate_yesterday(self) -> List[SystemDayResult]:
        """Roll up yesterday, in each system's own offset, for systems with recent data."""
        systems = await self._systems_with_recent_data(self._recent_window_days)
        if not systems:
            logger.info("No systems with recent point data found")
            return []

        logger.info(f"Aggregating yesterday's point data for {len(systems)} systems")

        now = self._clock()
        results: List[SystemDayResult] = []
        for system in systems:
            yesterday = system.yesterday(now)
            try:
                aggregates = await self._aggregate_day_isolated(system, yesterday)
            except Exception as e:
                logger.error(f"Failed to aggregate {yesterday} for system {system.id}: {e}")
                continue
            if aggregates:
                results.append(SystemDayResult(
                    system_id=system.id,
                    days_aggregated=1,
                    points_aggregated=len(aggregates),
                    day=yesterday,
                ))

        logger.info(f"Aggregated yesterday's point data for {len(results)} systems")
        return results

    async def regenerate_date(self, day: date) -> RangeAggregationResult:
        """Delete one day for every system, then re-aggregate systems with recent data."""
        DateRange.validated(day, day, self._min_date)

        deleted = await self._aggregate_repo.delete_1d_range(day, day)
        await self._aggregate_repo.commit()
        logger.info(f"Deleted {deleted} existing aggregations for {day}")

        systems = await self._systems_with_recent_data(self._recent_window_days)
        result = RangeAggregationResult(start_date=day, end_date=day, days_aggregated=1)

        for system in systems:
            try:
                aggregates = await self._aggregate_day_isolated(system, day)
            except Exception as e:
                logger.error(f"Failed to aggregate points for system {system.id} on {day}: {e}")
                continue
            if aggregates:
                result.results.append(SystemDayResult(
                    system_id=system.id,
                    days_aggregated=1,
                    points_aggregated=len(aggregates),
                    day=day,
                ))
                result.points_aggregated += len(aggregates)

        result.systems_processed = len(result.results)
        logger.info(
            f"Aggregated {result.points_aggregated} points across "
            f"{result.systems_processed} systems for {day}"
        )
        return result

    async def aggregate_range(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> RangeAggregationResult:
        """
        Backfill every day in [start, end] for systems with data since start.

        With neither bound given, the range runs from the earliest
        five-minute data to yesterday.
        """
        date_range = await self._resolve_range(start, end)
        logger.info(f"Aggregating date range from {date_range.start} to {date_range.end}")

        start_ms = int(datetime.combine(date_range.start, datetime.min.time(), tzinfo=timezone.utc).timestamp() * 1000)
        system_ids = await self._aggregate_repo.get_system_ids_with_5m_since(start_ms)
        systems = await self._system_repo.get_by_ids(system_ids)

        result = RangeAggregationResult(start_date=date_range.start, end_date=date_range.end)
        if not systems:
            logger.info("No systems with data in the specified range")
            return result

        days = list(date_range.days())
        result.days_aggregated = len(days)

        for system in systems:
            points = await self._aggregate_days(system, days)
            result.results.append(SystemDayResult(
                system_id=system.id,
                days_aggregated=len(days),
                points_aggregated=points,
            ))
            result.points_aggregated += points
            logger.info(f"Aggregated {points} points across {len(days)} days for system {system.id}")

        result.systems_processed = len(result.results)
        return result

    async def aggregate_all_missing_days(self) -> List[SystemDayResult]:
        """Per system, fill every day from its earliest bucket to yesterday that has no rows yet."""
        system_ids = await self._aggregate_repo.get_system_ids_with_5m_since(0)
        systems = await self._system_repo.get_by_ids(system_ids)
        logger.info(f"Found {len(systems)} systems to process for all missing days")

        now = self._clock()
        results: List[SystemDayResult] = []
        total = 0

        for system in systems:
            try:
                earliest_ms = await self._aggregate_repo.get_earliest_5m_ms(system.id)
                if earliest_ms is None:
                    logger.info(f"No point data found for system {system.id}")
                    continue

                first_day = self._local_date(earliest_ms, system)
                last_day = system.yesterday(now)
                if first_day > last_day:
                    continue

                existing = await self._aggregate_repo.get_existing_days(system.id, first_day, last_day)
                missing = [
                    day for day in DateRange(first_day, last_day).days()
                    if day not in existing
                ]
                logger.info(f"Found {len(missing)} missing days to aggregate for system {system.id}")

                points = await self._aggregate_days(system, missing)
            except Exception as e:
                await self._aggregate_repo.rollback()
                logger.error(f"Failed to aggregate all days for system {system.id}: {e}")
                continue

            total += points
            results.append(SystemDayResult(
                system_id=system.id,
                days_aggregated=len(missing),
                points_aggregated=points,
            ))

        logger.info(f"Aggregated {total} total points across {len(systems)} systems")
        return results

    async def delete_range(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> RangeDeletionResult:
        """Delete daily rows for every system in [start, end]."""
        date_range = await self._resolve_range(start, end)
        logger.info(f"Deleting aggregations from {date_range.start} to {date_range.end}")

        deleted = await self._aggregate_repo.delete_1d_range(date_range.start, date_range.end)
        return RangeDeletionResult(
            start_date=date_range.start,
            end_date=date_range.end,
            rows_deleted=deleted,
        )

    async def regenerate_last_days(self, days: int) -> List[SystemDayResult]:
        """
        Delete then re-aggregate the last `days` days, today included.

        The deleted range is computed in the first system's offset; each
        system then re-aggregates in its own.
        """
        if days < 1:
            raise ValidationException(
                "Number of days must be at least 1",
                errors={"days": ["must be at least 1"]},
            )

        logger.info(f"Regenerating last {days} days")
        systems = await self._systems_with_recent_data(days)
        if not systems:
            logger.info("No systems with recent point data found")
            return []

        now = self._clock()
        today = systems[0].today(now)
        start = today - timedelta(days=days - 1)
        await self._aggregate_repo.delete_1d_range(start, today)
        await self._aggregate_repo.commit()
        logger.info(f"Deleted aggregations from {start} to {today}")

        results: List[SystemDayResult] = []
        for system in systems:
            system_today = system.today(now)
            day_list = [system_today - timedelta(days=i) for i in range(days)]
            points = await self._aggregate_days(system, day_list)
            results.append(SystemDayResult(
                system_id=system.id,
                days_aggregated=len(day_list),
                points_aggregated=points,
            ))
            logger.info(f"Regenerated {len(day_list)} days for system {system.id}")

        return results

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _aggregate_day_isolated(
        self, system: System, day: date
    ) -> Optional[List[PointAggregate1d]]:
        """aggregate_day in its own transaction."""
        try:
            aggregates = await self.aggregate_day(system, day)
        except Exception:
            await self._aggregate_repo.rollback()
            raise
        await self._aggregate_repo.commit()
        return aggregates

    async def _aggregate_days(self, system: System, days: List[date]) -> int:
        points = 0
        for day in days:
            try:
                aggregates = await self._aggregate_day_isolated(system, day)
            except Exception as e:
                logger.error(f"Failed to aggregate {day} for system {system.id}: {e}")
                continue
            if aggregates:
                points += len(aggregates)
        return points

    async def _systems_with_recent_data(self, window_days: int) -> List[System]:
        since_ms = int(self._clock().timestamp() * 1000) - window_days * DAY_MS
        system_ids = await self._aggregate_repo.get_system_ids_with_5m_since(since_ms)
        return await self._system_repo.get_by_ids(system_ids)

    async def _resolve_range(self, start: Optional[date], end: Optional[date]) -> DateRange:
        """
        Validate explicit bounds, or default both when neither is given.

        Raises:
            InvalidDateRangeException: One bound missing, start after end, or
                start before the minimum date.
        """
        DateRange.require_both_or_neither(start, end)

        if start is None:
            earliest_ms = await self._aggregate_repo.get_earliest_5m_ms()
            if earliest_ms is None:
                raise InvalidDateRangeException("No 5-minute point data found")

            system_ids = await self._aggregate_repo.get_system_ids_with_5m_since(0)
            systems = await self._system_repo.get_by_ids(system_ids[:1])
            if not systems:
                raise InvalidDateRangeException("No systems found")

            start = self._local_date(earliest_ms, systems[0])
            end = systems[0].yesterday(self._clock())

        return DateRange.validated(start, end, self._min_date)

    @staticmethod
    def _local_date(timestamp_ms: int, system: System) -> date:
        return datetime.fromtimestamp(timestamp_ms / 1000, tz=system.tzinfo).date()
