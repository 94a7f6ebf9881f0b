"""
Repository for raw readings and their 5-minute and daily aggregates.
"""
import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy import and_, delete, distinct, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.energy_model import (
    PointReadingAgg1dModel,
    PointReadingAgg5mModel,
    PointReadingModel,
)
from ....domain.entities.aggregate import (
    PointAggregate1d,
    PointAggregate5m,
    PointReading,
)

logger = logging.getLogger(__name__)


class AggregateRepository:
    """
    Repository for point_readings, point_readings_agg_5m and point_readings_agg_1d.

    Upserts are batched into a single statement per call.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        """Discard uncommitted writes so the session accepts statements again."""
        await self._session.rollback()

    # =========================================================================
    # Raw Readings
    # =========================================================================

    async def get_readings(
        self,
        system_id: int,
        start_ms: int,
        end_ms: int,
    ) -> List[PointReading]:
        """
        Raw readings in (start_ms, end_ms], ordered by point then time.
        """
        query = (
            select(PointReadingModel)
            .where(
                and_(
                    PointReadingModel.system_id == system_id,
                    PointReadingModel.measurement_time > start_ms,
                    PointReadingModel.measurement_time <= end_ms,
                )
            )
            .order_by(PointReadingModel.point_id, PointReadingModel.measurement_time)
        )
        result = await self._session.execute(query)
        return [self._model_to_reading(m) for m in result.scalars().all()]

    # =========================================================================
    # Five-minute Aggregates
    # =========================================================================

    async def get_5m_range(
        self,
        system_id: int,
        start_ms: int,
        end_ms: int,
    ) -> List[PointAggregate5m]:
        """
        Five-minute rows with start_ms <= interval_end <= end_ms.
        """
        query = (
            select(PointReadingAgg5mModel)
            .where(
                and_(
                    PointReadingAgg5mModel.system_id == system_id,
                    PointReadingAgg5mModel.interval_end >= start_ms,
                    PointReadingAgg5mModel.interval_end <= end_ms,
                )
            )
            .order_by(PointReadingAgg5mModel.interval_end)
        )
        result = await self._session.execute(query)
        return [self._model_to_5m(m) for m in result.scalars().all()]

    async def get_last_values_5m(
        self,
        system_id: int,
        point_ids: Sequence[int],
        interval_end_ms: int,
    ) -> Dict[int, float]:
        """
        Map point_id to `last` at one interval end, skipping null values.
        """
        if not point_ids:
            return {}

        query = select(PointReadingAgg5mModel.point_id, PointReadingAgg5mModel.last).where(
            and_(
                PointReadingAgg5mModel.system_id == system_id,
                PointReadingAgg5mModel.point_id.in_(list(point_ids)),
                PointReadingAgg5mModel.interval_end == interval_end_ms,
            )
        )
        result = await self._session.execute(query)
        return {row.point_id: row.last for row in result if row.last is not None}

    async def upsert_5m(self, aggregates: List[PointAggregate5m]) -> int:
        """
        Insert or overwrite five-minute rows.

        Returns:
            Number of rows written.
        """
        if not aggregates:
            return 0

        values = [agg.to_row() for agg in aggregates]

        stmt = pg_insert(PointReadingAgg5mModel).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["system_id", "point_id", "interval_end"],
            set_={
                "avg": stmt.excluded.avg,
                "min": stmt.excluded.min,
                "max": stmt.excluded.max,
                "last": stmt.excluded.last,
                "delta": stmt.excluded.delta,
                "sample_count": stmt.excluded.sample_count,
                "error_count": stmt.excluded.error_count,
                "data_quality": stmt.excluded.data_quality,
                "session_id": stmt.excluded.session_id,
                "updated_at": func.now(),
            }
        )

        await self._session.execute(stmt)
        return len(values)

    async def get_earliest_5m_ms(self, system_id: Optional[int] = None) -> Optional[int]:
        """Earliest interval end overall, or for one system."""
        query = select(func.min(PointReadingAgg5mModel.interval_end))
        if system_id is not None:
            query = query.where(PointReadingAgg5mModel.system_id == system_id)

        result = await self._session.execute(query)
        return result.scalar()

    async def get_system_ids_with_5m_since(self, since_ms: int) -> List[int]:
        """Distinct systems having any five-minute data at or after since_ms."""
        query = (
            select(distinct(PointReadingAgg5mModel.system_id))
            .where(PointReadingAgg5mModel.interval_end >= since_ms)
            .order_by(PointReadingAgg5mModel.system_id)
        )
        result = await self._session.execute(query)
        return list(result.scalars().all())

    # =========================================================================
    # Daily Aggregates
    # =========================================================================

    async def upsert_1d(self, aggregates: List[PointAggregate1d]) -> int:
        """
        Insert or overwrite daily rows, refreshing updated_at.

        Every statistical field is overwritten so re-running a day is idempotent.
        """
        if not aggregates:
            return 0

        now = datetime.now(timezone.utc)
        values = []
        for agg in aggregates:
            row = agg.to_row()
            row["created_at"] = now
            row["updated_at"] = now
            values.append(row)

        stmt = pg_insert(PointReadingAgg1dModel).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["system_id", "point_id", "day"],
            set_={
                "avg": stmt.excluded.avg,
                "min": stmt.excluded.min,
                "max": stmt.excluded.max,
                "last": stmt.excluded.last,
                "delta": stmt.excluded.delta,
                "sample_count": stmt.excluded.sample_count,
                "error_count": stmt.excluded.error_count,
                "updated_at": stmt.excluded.updated_at,
            }
        )

        await self._session.execute(stmt)
        return len(values)

    async def get_1d_range(
        self,
        system_id: int,
        start: date,
        end: date,
    ) -> List[PointAggregate1d]:
        query = (
            select(PointReadingAgg1dModel)
            .where(
                and_(
                    PointReadingAgg1dModel.system_id == system_id,
                    PointReadingAgg1dModel.day >= start,
                    PointReadingAgg1dModel.day <= end,
                )
            )
            .order_by(PointReadingAgg1dModel.day, PointReadingAgg1dModel.point_id)
        )
        result = await self._session.execute(query)
        return [self._model_to_1d(m) for m in result.scalars().all()]

    async def get_existing_days(self, system_id: int, start: date, end: date) -> Set[date]:
        """Days in [start, end] that already have at least one daily row."""
        query = select(distinct(PointReadingAgg1dModel.day)).where(
            and_(
                PointReadingAgg1dModel.system_id == system_id,
                PointReadingAgg1dModel.day >= start,
                PointReadingAgg1dModel.day <= end,
            )
        )
        result = await self._session.execute(query)
        return set(result.scalars().all())

    async def delete_1d_range(self, start: date, end: date) -> int:
        """
        Delete daily rows for every system with start <= day <= end.

        Returns:
            Number of rows deleted.
        """
        stmt = delete(PointReadingAgg1dModel).where(
            and_(
                PointReadingAgg1dModel.day >= start,
                PointReadingAgg1dModel.day <= end,
            )
        )
        result = await self._session.execute(stmt)

        deleted = result.rowcount
        logger.info(f"Deleted {deleted} daily aggregate rows from {start} to {end}")

        return deleted

    # =========================================================================
    # Mapping
    # =========================================================================

    def _model_to_reading(self, model: PointReadingModel) -> PointReading:
        return PointReading(
            system_id=model.system_id,
            point_id=model.point_id,
            measurement_time_ms=model.measurement_time,
            value=model.value,
            value_str=model.value_str,
            received_time_ms=model.received_time,
            data_quality=model.data_quality,
            error=model.error,
            session_id=model.session_id,
        )

    def _model_to_5m(self, model: PointReadingAgg5mModel) -> PointAggregate5m:
        return PointAggregate5m(
            system_id=model.system_id,
            point_id=model.point_id,
            interval_end_ms=model.interval_end,
            avg=model.avg,
            min=model.min,
            max=model.max,
            last=model.last,
            delta=model.delta,
            sample_count=model.sample_count,
            error_count=model.error_count,
            data_quality=model.data_quality,
            session_id=model.session_id,
        )

    def _model_to_1d(self, model: PointReadingAgg1dModel) -> PointAggregate1d:
        return PointAggregate1d(
            system_id=model.system_id,
            point_id=model.point_id,
            day=model.day,
            avg=model.avg,
            min=model.min,
            max=model.max,
            last=model.last,
            delta=model.delta,
            sample_count=model.sample_count,
            error_count=model.error_count,
        )
