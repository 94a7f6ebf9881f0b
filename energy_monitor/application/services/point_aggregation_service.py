"""
Five-minute aggregation of point readings.

Readings are bucketed into (end - 5m, end] intervals where
end = ceil(t / 5m) * 5m.
"""
import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence

from ...domain.entities.aggregate import PointAggregate5m, PointReading
from ...domain.entities.point import PointInfo, PointTransform
from ...domain.entities.sync import VendorReading
from ...domain.services.aggregation_rules import MetricKind
from ...domain.value_objects import FIVE_MINUTES_MS
from ...infrastructure.database.repositories import AggregateRepository, PointRepository

logger = logging.getLogger(__name__)


def interval_end_for(measurement_time_ms: int, interval_ms: int = FIVE_MINUTES_MS) -> int:
    """End of the bucket a measurement time falls in; exact boundaries belong to the earlier bucket."""
    return math.ceil(measurement_time_ms / interval_ms) * interval_ms


def aggregate_point_readings(
    system_id: int,
    point: PointInfo,
    interval_end_ms: int,
    readings: Iterable[PointReading],
    previous_last: Optional[float] = None,
) -> PointAggregate5m:
    """
    Reduce one point's readings in one bucket.

    Null values count as errors. Differenced points (transform "d") get
    delta = last - previous last and no avg/min/max; energy points also sum
    their values into delta.
    """
    values: List[float] = []
    error_count = 0
    for reading in readings:
        if reading.value is None:
            error_count += 1
        else:
            values.append(reading.value)

    aggregate = PointAggregate5m(
        system_id=system_id,
        point_id=point.index,
        interval_end_ms=interval_end_ms,
        sample_count=len(values),
        error_count=error_count,
    )

    if not values:
        return aggregate

    aggregate.last = values[-1]

    if point.point_transform is PointTransform.DELTA:
        if previous_last is not None:
            aggregate.delta = aggregate.last - previous_last
        return aggregate

    aggregate.avg = sum(values) / len(values)
    aggregate.min = min(values)
    aggregate.max = max(values)
    if point.metric_kind is MetricKind.ENERGY:
        aggregate.delta = sum(values)

    return aggregate


class PointAggregationService:
    """
    Maintains point_readings_agg_5m.
    """

    def __init__(
        self,
        aggregate_repo: AggregateRepository,
        point_repo: Optional[PointRepository] = None,
    ):
        self._aggregate_repo = aggregate_repo
        self._point_repo = point_repo

    async def get_last_values_5m(
        self,
        system_id: int,
        point_ids: Sequence[int],
        interval_end_ms: int,
    ) -> Dict[int, float]:
        """Last values at an interval end, used to difference transform "d" points."""
        return await self._aggregate_repo.get_last_values_5m(system_id, point_ids, interval_end_ms)

    async def update_5m_aggregates(
        self,
        system_id: int,
        points: Sequence[PointInfo],
        measurement_time_ms: int,
        previous_last_values: Optional[Dict[int, float]] = None,
    ) -> int:
        """
        Recompute the bucket containing measurement_time_ms for the given points.

        Args:
            system_id: System ID.
            points: Points whose readings were just stored.
            measurement_time_ms: Any time inside the bucket.
            previous_last_values: point index -> last of the previous bucket,
                for differenced points.

        Returns:
            Number of aggregate rows written.
        """
        if not points:
            return 0

        previous_last_values = previous_last_values or {}
        interval_end_ms = interval_end_for(measurement_time_ms)
        interval_start_ms = interval_end_ms - FIVE_MINUTES_MS

        readings = await self._aggregate_repo.get_readings(system_id, interval_start_ms, interval_end_ms)
        if not readings:
            return 0

        points_by_index = {point.index: point for point in points}
        grouped: Dict[int, List[PointReading]] = {}
        for reading in readings:
            if reading.point_id in points_by_index:
                grouped.setdefault(reading.point_id, []).append(reading)

        aggregates = [
            aggregate_point_readings(
                system_id,
                points_by_index[point_id],
                interval_end_ms,
                point_readings,
                previous_last_values.get(point_id),
            )
            for point_id, point_readings in grouped.items()
        ]

        written = await self._aggregate_repo.upsert_5m(aggregates)
        logger.info(
            f"Updated {written} point aggregates for system {system_id} "
            f"interval ending {interval_end_ms}"
        )
        return written

    async def insert_direct_to_5m(
        self,
        system_id: int,
        session_id: Optional[int],
        readings: Sequence[VendorReading],
    ) -> int:
        """
        Store pre-aggregated vendor readings, one value per interval end.

        avg = min = max = last = value with a sample count of 1, and energy
        points also carry the value as delta. A missing value becomes an
        error row. Points are created on first sight.

        Returns:
            Number of aggregate rows written.
        """
        if not readings:
            return 0

        if self._point_repo is None:
            raise RuntimeError("insert_direct_to_5m requires a point repository")

        points = await self._point_repo.ensure_points(
            system_id, [reading.point_metadata for reading in readings]
        )

        aggregates: List[PointAggregate5m] = []
        for reading in readings:
            point = points.get(reading.point_metadata.uniqueness_key)
            if point is None:
                logger.warning(f"No point for {reading.point_key} in system {system_id}, skipping")
                continue

            value = _convert_value(reading.raw_value, point)
            is_error = value is None
            is_energy = point.metric_kind is MetricKind.ENERGY
            aggregates.append(PointAggregate5m(
                system_id=system_id,
                point_id=point.index,
                interval_end_ms=reading.measurement_time_ms,
                avg=None if is_error else value,
                min=None if is_error else value,
                max=None if is_error else value,
                last=None if is_error else value,
                delta=value if is_energy and not is_error else None,
                sample_count=0 if is_error else 1,
                error_count=1 if is_error else 0,
                data_quality=reading.data_quality,
                session_id=session_id,
            ))

        written = await self._aggregate_repo.upsert_5m(aggregates)
        logger.info(f"Inserted {written} pre-aggregated 5m readings for system {system_id}")
        return written


def _convert_value(raw_value, point: PointInfo) -> Optional[float]:
    if raw_value is None or isinstance(raw_value, bool):
        return None
    try:
        value = float(raw_value)
    except (TypeError, ValueError):
        return None
    return point.point_transform.apply(value)
