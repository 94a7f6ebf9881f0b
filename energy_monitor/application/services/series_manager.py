"""
Point/Series Manager.

Resolves the queryable series of a system: composite remapping, expansion
into aggregation fields, interval filtering and glob filtering.
"""
import logging
from typing import List, Optional

from ...config import get_settings
from ...domain.entities.point import PointInfo, PointMetadata
from ...domain.entities.series import SeriesInfo, series_for_point
from ...domain.entities.system import CompositeMetadataV2, System
from ...domain.exceptions import EntityNotFoundException
from ...domain.services.aggregation_rules import Interval
from ...domain.services.series_filter import SeriesFilter
from ...infrastructure.cache import SeriesCache
from ...infrastructure.database.repositories import PointRepository

settings = get_settings()
logger = logging.getLogger(__name__)


class SeriesManager:
    """
    Application service for series resolution and point mutations.

    Regular systems are cached per system ID. Composite results depend on
    other systems' points and are resolved on every call.
    """

    def __init__(
        self,
        point_repo: PointRepository,
        cache: Optional[SeriesCache] = None,
    ):
        self._point_repo = point_repo
        self._cache = cache if cache is not None else SeriesCache(settings.series.cache_ttl_seconds)

    @property
    def cache(self) -> SeriesCache:
        return self._cache

    # =========================================================================
    # Series Resolution
    # =========================================================================

    async def get_series_for_system(
        self,
        system: System,
        series_filter: Optional[SeriesFilter] = None,
        interval: Optional[Interval] = None,
        typed_only: bool = False,
    ) -> List[SeriesInfo]:
        """
        Get the series of a system.

        Args:
            system: Regular or composite system.
            series_filter: Parsed glob patterns, None for no filter.
            interval: Keep only series available at this interval.
            typed_only: Exclude points without a type hierarchy.

        Returns:
            List of SeriesInfo; empty when the system has no points.
        """
        if system.is_composite:
            series = await self._get_composite_series(system)
        else:
            series = await self._get_system_series(system.id)

        if interval is not None:
            series = [s for s in series if s.supports(interval)]

        if typed_only:
            series = [s for s in series if s.point.is_typed()]

        if series_filter is not None:
            series = [s for s in series if series_filter.matches(s.path)]

        return series

    async def _get_system_series(self, system_id: int) -> List[SeriesInfo]:
        cached = self._cache.get(system_id)
        if cached is not None:
            return cached

        points = await self._point_repo.get_points_for_system(system_id)
        series: List[SeriesInfo] = []
        for point in points:
            series.extend(series_for_point(system_id, point))

        self._cache.put(system_id, series)
        return series

    async def _get_composite_series(self, system: System) -> List[SeriesInfo]:
        metadata = system.composite_metadata()
        if not isinstance(metadata, CompositeMetadataV2):
            logger.warning(
                f"Composite system {system.id} has unsupported metadata version {metadata.version}"
            )
            return []

        refs = metadata.references()
        if not refs:
            return []

        points = await self._point_repo.get_points_by_refs(refs)
        by_ref = {point.reference(): point for point in points}

        series: List[SeriesInfo] = []
        seen = set()
        for ref in refs:
            key = str(ref)
            point = by_ref.get(key)
            if point is None or key in seen:
                continue
            seen.add(key)
            if not point.active:
                continue
            series.extend(series_for_point(system.id, point))

        return series

    # =========================================================================
    # Point Mutations
    # =========================================================================

    async def create_point(
        self,
        system_id: int,
        metadata: PointMetadata,
        display_name: Optional[str] = None,
    ) -> PointInfo:
        point = await self._point_repo.create(system_id, metadata, display_name)
        self.invalidate_system(system_id)
        return point

    async def update_point(self, point: PointInfo) -> PointInfo:
        updated = await self._point_repo.update(point)
        self.invalidate_system(point.system_id)
        return updated

    async def deactivate_point(self, system_id: int, index: int) -> None:
        """
        Raises:
            EntityNotFoundException: No such point.
        """
        found = await self._point_repo.deactivate(system_id, index)
        self.invalidate_system(system_id)
        if not found:
            raise EntityNotFoundException("Point", f"{system_id}.{index}")

    # =========================================================================
    # Cache Control
    # =========================================================================

    def invalidate_system(self, system_id: int) -> None:
        """Drop one system's cached series; call after any point_info write."""
        self._cache.invalidate(system_id)

    def invalidate_all(self) -> None:
        self._cache.invalidate_all()
