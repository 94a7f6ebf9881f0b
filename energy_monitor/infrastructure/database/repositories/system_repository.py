"""
Repository for monitored systems.
"""
import logging
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.energy_model import SystemModel
from ....domain.entities.system import System

logger = logging.getLogger(__name__)


class SystemRepository:
    """
    Repository for system lookups.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, system_id: int) -> Optional[System]:
        """
        Get a system by ID.

        Args:
            system_id: System ID.

        Returns:
            System if found, None otherwise.
        """
        query = select(SystemModel).where(SystemModel.id == system_id)
        result = await self._session.execute(query)
        model = result.scalar_one_or_none()

        return self._model_to_entity(model) if model else None

    async def get_by_ids(self, system_ids: Sequence[int]) -> List[System]:
        """Get systems by ID, ordered by ID."""
        if not system_ids:
            return []

        query = (
            select(SystemModel)
            .where(SystemModel.id.in_(list(system_ids)))
            .order_by(SystemModel.id)
        )
        result = await self._session.execute(query)
        return [self._model_to_entity(m) for m in result.scalars().all()]

    async def get_all(self) -> List[System]:
        query = select(SystemModel).order_by(SystemModel.id)
        result = await self._session.execute(query)
        return [self._model_to_entity(m) for m in result.scalars().all()]

    def _model_to_entity(self, model: SystemModel) -> System:
        """Convert SQLAlchemy model to domain entity."""
        return System(
            id=model.id,
            vendor_type=model.vendor_type,
            vendor_site_id=model.vendor_site_id,
            display_name=model.display_name,
            timezone_offset_min=model.timezone_offset_min,
            status=model.status,
            metadata=model.metadata_,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
