"""
Session Service.

Creates session rows up front, finalizes them exactly once and publishes
the finalized record.
"""
import base64
import dataclasses
import logging
import secrets
import time
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from ...domain.entities.session import SessionCause, SessionHandle, SessionRecord
from ...infrastructure.database.repositories import SessionRepository
from ...infrastructure.messaging import SessionPublisher

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_OFFSET_MINUTES = 600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionLabelGenerator:
    """
    Labels of the form "prefix/sequence", e.g. "sEfn/3".

    The prefix is 3 random bytes in URL-safe base64 (4 characters) and is
    fixed for the lifetime of the generator.
    """

    def __init__(self, prefix: Optional[str] = None):
        self.prefix = prefix or base64.urlsafe_b64encode(secrets.token_bytes(3)).decode("ascii")
        self.sequence = 0
        logger.info(f"Session labels initialized with prefix: {self.prefix}")

    def next(self) -> str:
        self.sequence += 1
        return f"{self.prefix}/{self.sequence}"

    @staticmethod
    def with_sub_sequence(label: str, sub_sequence: int) -> str:
        """"sEfn/3" and 1 give "sEfn/3.1"."""
        return f"{label}.{sub_sequence}"


def transform_for_storage(obj: Any, offset_minutes: int = DEFAULT_STORAGE_OFFSET_MINUTES) -> Any:
    """
    Make an audit payload JSON-ready.

    Dataclasses become dicts and enums their values. Datetimes become ISO
    strings in the given offset and dates ISO dates. Integer fields ending in
    "_time_ms" or "TimeMs" lose the "ms" suffix and become ISO datetimes.
    """
    tz = timezone(timedelta(minutes=offset_minutes))

    if obj is None:
        return None
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        obj = {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=timezone.utc)
        return obj.astimezone(tz).isoformat(timespec="seconds")
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, (list, tuple)):
        return [transform_for_storage(item, offset_minutes) for item in obj]
    if isinstance(obj, dict):
        transformed: Dict[str, Any] = {}
        for key, value in obj.items():
            key = str(key)
            is_ms = isinstance(value, int) and not isinstance(value, bool)
            if is_ms and key.endswith("_time_ms"):
                when = datetime.fromtimestamp(value / 1000, tz=tz)
                transformed[key[:-3]] = when.isoformat(timespec="seconds")
            elif is_ms and key.endswith("TimeMs"):
                when = datetime.fromtimestamp(value / 1000, tz=tz)
                transformed[key[:-2]] = when.isoformat(timespec="seconds")
            else:
                transformed[key] = transform_for_storage(value, offset_minutes)
        return transformed
    return obj


@dataclasses.dataclass
class TimedOutcome:
    """What an operation wrapped by record_timed_session reports."""
    successful: bool
    error_code: Optional[str] = None
    error: Optional[str] = None
    response: Any = None
    num_rows: int = 0


class SessionService:
    """
    Application service for session audit records.
    """

    def __init__(
        self,
        session_repo: SessionRepository,
        publisher: Optional[SessionPublisher] = None,
        label_generator: Optional[SessionLabelGenerator] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_repo = session_repo
        self._publisher = publisher
        self._labels = label_generator or SessionLabelGenerator()
        self._clock = clock

    @property
    def labels(self) -> SessionLabelGenerator:
        return self._labels

    async def create_session(
        self,
        system_id: int,
        cause: SessionCause,
        label: Optional[str] = None,
        started: Optional[datetime] = None,
        vendor_type: Optional[str] = None,
        system_name: Optional[str] = None,
    ) -> SessionHandle:
        """
        Persist a pending session: duration 0, successful null, no rows.

        Failures propagate; a sync must not start without its record.
        """
        started = started or self._clock()
        label = label or self._labels.next()

        record = await self._session_repo.create(
            system_id=system_id,
            cause=cause,
            started=started,
            session_label=label,
            vendor_type=vendor_type,
            system_name=system_name,
        )

        logger.info(f"Created session {record.id} ({label}) for system {system_id} cause {cause.value}")
        return SessionHandle(id=record.id, started=started, label=label)

    async def finalize_session(
        self,
        session_id: int,
        duration_ms: int,
        successful: bool,
        error_code: Optional[str] = None,
        error: Optional[str] = None,
        response: Any = None,
        num_rows: int = 0,
    ) -> bool:
        """
        Write the single terminal update and publish the result.

        Failures are logged rather than raised so the caller's own outcome
        is not replaced by a bookkeeping error.

        Returns:
            True if the session row was updated.
        """
        stored_response = transform_for_storage(response) if response is not None else None

        try:
            updated = await self._session_repo.finalize(
                session_id,
                duration_ms=duration_ms,
                successful=successful,
                error_code=error_code or None,
                error=error or None,
                response=stored_response,
                num_rows=num_rows,
            )
        except Exception as e:
            logger.error(f"Failed to finalize session {session_id}: {e}")
            return False

        if not updated:
            logger.warning(f"Session {session_id} not found when finalizing")
            return False

        logger.info(
            f"Finalized session {session_id}: successful={successful} "
            f"rows={num_rows} duration={duration_ms}ms"
        )

        if self._publisher is not None:
            record = await self._session_repo.get_by_id(session_id)
            if record is not None:
                await self._publisher.publish(self._record_to_message(record))

        return True

    async def record_timed_session(
        self,
        system_id: int,
        cause: SessionCause,
        operation: Callable[[], Awaitable[TimedOutcome]],
        label: Optional[str] = None,
    ) -> TimedOutcome:
        """
        Run an operation inside a session, timing it and recording the outcome.

        Exceptions from the operation are recorded as a failed session and
        not re-raised.
        """
        handle = await self.create_session(system_id, cause, label=label)
        started = time.monotonic()

        try:
            outcome = await operation()
        except Exception as e:
            logger.error(f"Session {handle.id} operation failed: {e}")
            outcome = TimedOutcome(successful=False, error=str(e))

        duration_ms = int((time.monotonic() - started) * 1000)
        await self.finalize_session(
            handle.id,
            duration_ms=duration_ms,
            successful=outcome.successful,
            error_code=outcome.error_code,
            error=outcome.error,
            response=outcome.response,
            num_rows=outcome.num_rows,
        )
        return outcome

    def _record_to_message(self, record: SessionRecord) -> Dict[str, Any]:
        return {
            "id": record.id,
            "session_label": record.session_label,
            "system_id": record.system_id,
            "cause": record.cause.value,
            "started": record.started.isoformat() if record.started else None,
            "duration": record.duration_ms,
            "successful": record.successful,
            "error_code": record.error_code,
            "error": record.error,
            "response": record.response,
            "num_rows": record.num_rows,
            "created_at": record.created_at.isoformat() if record.created_at else None,
        }
