"""
Repository for point definitions.

Points are created on first ingest from vendor metadata and are never
physically deleted.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.energy_model import PointInfoModel
from ....domain.entities.point import PointInfo, PointMetadata
from ....domain.entities.system import PointReference

logger = logging.getLogger(__name__)


class PointRepository:
    """
    Repository for point_info rows.

    A point's index is allocated per system as max(index) + 1.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_point(self, system_id: int, index: int) -> Optional[PointInfo]:
        query = select(PointInfoModel).where(
            and_(
                PointInfoModel.system_id == system_id,
                PointInfoModel.id == index,
            )
        )
        result = await self._session.execute(query)
        model = result.scalar_one_or_none()

        return self._model_to_entity(model) if model else None

    async def get_points_for_system(
        self,
        system_id: int,
        active_only: bool = True,
    ) -> List[PointInfo]:
        """
        Get the points of a system ordered by index.

        Args:
            system_id: System ID.
            active_only: Exclude deactivated points.

        Returns:
            List of PointInfo entities.
        """
        conditions = [PointInfoModel.system_id == system_id]
        if active_only:
            conditions.append(PointInfoModel.active.is_(True))

        query = (
            select(PointInfoModel)
            .where(and_(*conditions))
            .order_by(PointInfoModel.id)
        )
        result = await self._session.execute(query)
        return [self._model_to_entity(m) for m in result.scalars().all()]

    async def get_points_by_refs(self, refs: Sequence[PointReference]) -> List[PointInfo]:
        """
        Resolve cross-system references in a single query.

        Missing references are simply absent from the result.
        """
        if not refs:
            return []

        unique_refs = list(dict.fromkeys(refs))
        conditions = [
            and_(
                PointInfoModel.system_id == ref.system_id,
                PointInfoModel.id == ref.point_index,
            )
            for ref in unique_refs
        ]

        query = select(PointInfoModel).where(or_(*conditions))
        result = await self._session.execute(query)
        return [self._model_to_entity(m) for m in result.scalars().all()]

    # =========================================================================
    # Ingest
    # =========================================================================

    async def ensure_points(
        self,
        system_id: int,
        metadata: Iterable[PointMetadata],
    ) -> Dict[str, PointInfo]:
        """
        Make sure a point exists for every origin, creating missing ones.

        Uniqueness is (system_id, origin_id, origin_sub_id); the metric type
        never takes part in it.

        Returns:
            Dict mapping uniqueness key to PointInfo.
        """
        existing = await self.get_points_for_system(system_id, active_only=False)
        by_key = {point.uniqueness_key(): point for point in existing}

        missing: Dict[str, PointMetadata] = {}
        for meta in metadata:
            key = meta.uniqueness_key
            if key not in by_key and key not in missing:
                missing[key] = meta

        if not missing:
            return by_key

        next_index = max((p.index for p in existing), default=0) + 1
        now = datetime.now(timezone.utc)
        values = []
        for offset, meta in enumerate(missing.values()):
            values.append(self._metadata_to_values(system_id, next_index + offset, meta, now))

        stmt = pg_insert(PointInfoModel).values(values).on_conflict_do_nothing()
        await self._session.execute(stmt)

        logger.info(f"Created {len(values)} points for system {system_id}")

        refreshed = await self.get_points_for_system(system_id, active_only=False)
        by_key = {point.uniqueness_key(): point for point in refreshed}

        unresolved = [key for key in missing if key not in by_key]
        if unresolved:
            logger.warning(
                f"Could not create points {unresolved} for system {system_id}"
            )

        return by_key

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    async def create(
        self,
        system_id: int,
        metadata: PointMetadata,
        display_name: Optional[str] = None,
    ) -> PointInfo:
        """Create a point at the next free index of its system."""
        max_query = select(func.max(PointInfoModel.id)).where(
            PointInfoModel.system_id == system_id
        )
        result = await self._session.execute(max_query)
        next_index = (result.scalar() or 0) + 1

        values = self._metadata_to_values(system_id, next_index, metadata, datetime.now(timezone.utc))
        model = PointInfoModel(**values, display_name=display_name)

        self._session.add(model)
        await self._session.flush()
        await self._session.refresh(model)

        logger.info(f"Created point {system_id}.{next_index} ({metadata.uniqueness_key})")
        return self._model_to_entity(model)

    async def update(self, point: PointInfo) -> PointInfo:
        """
        Update the user-editable fields of a point.

        Origin identity and metric type are fixed at creation.
        """
        point.updated_at = datetime.now(timezone.utc)

        stmt = (
            update(PointInfoModel)
            .where(
                and_(
                    PointInfoModel.system_id == point.system_id,
                    PointInfoModel.id == point.index,
                )
            )
            .values(
                display_name=point.display_name,
                type=point.type,
                subtype=point.subtype,
                extension=point.extension,
                transform=point.transform,
                active=point.active,
                updated_at=point.updated_at,
            )
        )

        await self._session.execute(stmt)
        return point

    async def deactivate(self, system_id: int, index: int) -> bool:
        """
        Mark a point inactive.

        Returns:
            True if a point was updated, False if not found.
        """
        stmt = (
            update(PointInfoModel)
            .where(
                and_(
                    PointInfoModel.system_id == system_id,
                    PointInfoModel.id == index,
                )
            )
            .values(active=False, updated_at=datetime.now(timezone.utc))
        )

        result = await self._session.execute(stmt)
        return result.rowcount > 0

    # =========================================================================
    # Mapping
    # =========================================================================

    def _metadata_to_values(
        self,
        system_id: int,
        index: int,
        meta: PointMetadata,
        now: datetime,
    ) -> dict:
        return {
            "system_id": system_id,
            "id": index,
            "origin_id": meta.origin_id,
            # Stored as null so the unique constraint treats "no sub id" uniformly
            "origin_sub_id": meta.origin_sub_id or None,
            "default_name": meta.default_name,
            "subsystem": meta.subsystem,
            "type": meta.type,
            "subtype": meta.subtype,
            "extension": meta.extension,
            "metric_type": meta.metric_type,
            "metric_unit": meta.metric_unit,
            "transform": meta.transform,
            "active": True,
            "created_at": now,
        }

    def _model_to_entity(self, model: PointInfoModel) -> PointInfo:
        """Convert SQLAlchemy model to domain entity."""
        return PointInfo(
            system_id=model.system_id,
            index=model.id,
            origin_id=model.origin_id,
            origin_sub_id=model.origin_sub_id,
            default_name=model.default_name,
            display_name=model.display_name,
            subsystem=model.subsystem,
            type=model.type,
            subtype=model.subtype,
            extension=model.extension,
            metric_type=model.metric_type,
            metric_unit=model.metric_unit,
            transform=model.transform,
            active=model.active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
