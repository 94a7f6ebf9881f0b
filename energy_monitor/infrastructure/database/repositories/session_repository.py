"""
Repository for session audit rows.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.energy_model import SessionModel
from ....domain.entities.session import SessionCause, SessionRecord

logger = logging.getLogger(__name__)


class SessionRepository:
    """
    Repository for the sessions table.

    A row is written once at start and updated once when finalized. Both
    writes commit immediately so a crashed sync still leaves a record.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(
        self,
        system_id: int,
        cause: SessionCause,
        started: datetime,
        session_label: Optional[str] = None,
        vendor_type: Optional[str] = None,
        system_name: Optional[str] = None,
    ) -> SessionRecord:
        """
        Insert a pending session row.

        Returns:
            SessionRecord with its assigned id.
        """
        model = SessionModel(
            session_label=session_label,
            system_id=system_id,
            vendor_type=vendor_type,
            system_name=system_name,
            cause=cause.value if isinstance(cause, SessionCause) else cause,
            started=started,
            duration=0,
            successful=None,
            num_rows=0,
        )

        self._session.add(model)
        await self._session.flush()
        await self._session.refresh(model)
        # Durable before any vendor call
        await self._session.commit()

        return self._model_to_entity(model)

    async def get_by_id(self, session_id: int) -> Optional[SessionRecord]:
        query = select(SessionModel).where(SessionModel.id == session_id)
        result = await self._session.execute(query)
        model = result.scalar_one_or_none()

        return self._model_to_entity(model) if model else None

    async def finalize(
        self,
        session_id: int,
        duration_ms: int,
        successful: bool,
        error_code: Optional[str] = None,
        error: Optional[str] = None,
        response: Optional[Dict[str, Any]] = None,
        num_rows: int = 0,
    ) -> bool:
        """
        Write the terminal state of a session.

        The row was committed at create, so when an earlier statement left
        the transaction aborted the update is retried after a rollback.

        Returns:
            True if the row was updated, False if not found.
        """
        stmt = (
            update(SessionModel)
            .where(SessionModel.id == session_id)
            .values(
                duration=duration_ms,
                successful=successful,
                error_code=error_code,
                error=error,
                response=response,
                num_rows=num_rows,
            )
        )

        try:
            result = await self._session.execute(stmt)
        except DBAPIError as e:
            logger.warning(f"Retrying finalize of session {session_id} after rollback: {e}")
            await self._session.rollback()
            result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount > 0

    def _model_to_entity(self, model: SessionModel) -> SessionRecord:
        """Convert SQLAlchemy model to domain entity."""
        return SessionRecord(
            id=model.id,
            system_id=model.system_id,
            cause=SessionCause(model.cause),
            started=model.started,
            session_label=model.session_label,
            duration_ms=model.duration,
            successful=model.successful,
            error_code=model.error_code,
            error=model.error,
            response=model.response,
            num_rows=model.num_rows,
            created_at=model.created_at,
        )
