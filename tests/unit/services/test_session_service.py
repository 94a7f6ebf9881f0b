"""
Unit tests for SessionService.

Tests session creation, single finalization, publishing and the audit
payload transform.
"""
import json
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from energy_monitor.application.services.session_service import (
    SessionLabelGenerator,
    SessionService,
    TimedOutcome,
    transform_for_storage,
)
from energy_monitor.domain.entities.session import SessionCause, SessionRecord
from energy_monitor.domain.entities.sync import StageStatus
from energy_monitor.infrastructure.messaging import SessionPublisher, StreamProducer

STARTED = datetime(2025, 6, 1, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(mock_session_repo):
    return SessionService(
        mock_session_repo,
        label_generator=SessionLabelGenerator(prefix="sEfn"),
        clock=lambda: STARTED,
    )


class TestSessionLabels:
    """Tests for session label generation."""

    def test_random_prefix_is_four_characters(self):
        assert len(SessionLabelGenerator().prefix) == 4

    def test_sequence(self):
        labels = SessionLabelGenerator(prefix="sEfn")

        assert labels.next() == "sEfn/1"
        assert labels.next() == "sEfn/2"

    def test_sub_sequence(self):
        assert SessionLabelGenerator.with_sub_sequence("sEfn/3", 1) == "sEfn/3.1"


class TestTransformForStorage:
    """Tests for the JSON-ready audit payload."""

    def test_time_ms_fields_become_iso(self):
        stored = transform_for_storage({"start_time_ms": 0, "durationMs": 5, "startTimeMs": 0}, 600)

        assert stored == {
            "start_time": "1970-01-01T10:00:00+10:00",
            "durationMs": 5,
            "startTime": "1970-01-01T10:00:00+10:00",
        }

    def test_dataclasses_enums_and_dates(self):
        @dataclass
        class Payload:
            status: StageStatus
            day: date
            nested: Optional[dict] = None

        stored = transform_for_storage(Payload(StageStatus.SKIPPED, date(2025, 6, 1), {"a": [1, 2]}))

        assert stored == {"status": "skipped", "day": "2025-06-01", "nested": {"a": [1, 2]}}

    def test_booleans_are_not_times(self):
        assert transform_for_storage({"flag_time_ms": True}) == {"flag_time_ms": True}

    def test_naive_datetime_is_utc(self):
        assert transform_for_storage(datetime(2025, 6, 1, 0, 0), 0) == "2025-06-01T00:00:00+00:00"


class TestCreateSession:
    """Tests for the pending session."""

    @pytest.mark.asyncio
    async def test_create_session(self, service, mock_session_repo):
        handle = await service.create_session(1, SessionCause.ADMIN, vendor_type="amber")

        assert handle.id == 101
        assert handle.label == "sEfn/1"
        assert handle.started == STARTED
        kwargs = mock_session_repo.create.call_args.kwargs
        assert kwargs["cause"] is SessionCause.ADMIN
        assert kwargs["vendor_type"] == "amber"

    @pytest.mark.asyncio
    async def test_create_failure_propagates(self, service, mock_session_repo):
        mock_session_repo.create.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await service.create_session(1, SessionCause.ADMIN)


class TestFinalizeSession:
    """Tests for the terminal update."""

    @pytest.mark.asyncio
    async def test_finalize_transforms_response(self, service, mock_session_repo):
        await service.finalize_session(7, 1500, True, response={"start_time_ms": 0}, num_rows=4)

        kwargs = mock_session_repo.finalize.call_args.kwargs
        assert kwargs["response"] == {"start_time": "1970-01-01T10:00:00+10:00"}
        assert kwargs["num_rows"] == 4
        assert kwargs["error_code"] is None

    @pytest.mark.asyncio
    async def test_finalize_failure_is_logged(self, service, mock_session_repo):
        mock_session_repo.finalize.side_effect = RuntimeError("db down")

        assert await service.finalize_session(7, 0, False, error="boom") is False

    @pytest.mark.asyncio
    async def test_finalize_missing_session(self, service, mock_session_repo):
        mock_session_repo.finalize.return_value = False

        assert await service.finalize_session(7, 0, True) is False

    @pytest.mark.asyncio
    async def test_finalize_publishes(self, mock_session_repo, mock_redis):
        """Test the finalized record is added to the session stream."""
        publisher = SessionPublisher(StreamProducer("sessions", client=mock_redis), enabled=True)
        service = SessionService(mock_session_repo, publisher=publisher)
        mock_session_repo.get_by_id.return_value = SessionRecord(
            id=7,
            system_id=1,
            cause=SessionCause.ADMIN,
            started=STARTED,
            session_label="sEfn/1.1",
            duration_ms=1500,
            successful=True,
            num_rows=4,
        )

        await service.finalize_session(7, 1500, True, num_rows=4)

        messages = await mock_redis.xrange("sessions")
        assert len(messages) == 1
        payload = json.loads(messages[0][1][b"data"])
        assert payload["type"] == "session_finalized"
        assert payload["session"]["id"] == 7
        assert payload["session"]["cause"] == "ADMIN"
        assert messages[0][1][b"system_id"] == b"1"
        assert messages[0][1][b"successful"] == b"True"
        assert publisher.get_stats()["published"] == 1

    @pytest.mark.asyncio
    async def test_disabled_publisher_publishes_nothing(self, mock_redis):
        publisher = SessionPublisher(StreamProducer("sessions", client=mock_redis), enabled=False)

        assert await publisher.publish({"id": 1}) is None
        assert await mock_redis.xlen("sessions") == 0

    @pytest.mark.asyncio
    async def test_publish_failure_is_swallowed(self):
        producer = AsyncMock()
        producer.add.side_effect = ConnectionError("redis down")
        publisher = SessionPublisher(producer, enabled=True)

        assert await publisher.publish({"id": 1}) is None
        assert publisher.get_stats()["failed"] == 1


class TestRecordTimedSession:
    """Tests for wrapping an operation in a session."""

    @pytest.mark.asyncio
    async def test_success(self, service, mock_session_repo):
        async def operation():
            return TimedOutcome(successful=True, num_rows=3)

        outcome = await service.record_timed_session(1, SessionCause.POLL, operation)

        assert outcome.successful
        kwargs = mock_session_repo.finalize.call_args.kwargs
        assert kwargs["successful"] is True
        assert kwargs["num_rows"] == 3

    @pytest.mark.asyncio
    async def test_exception_is_recorded(self, service, mock_session_repo):
        async def operation():
            raise ValueError("vendor said no")

        outcome = await service.record_timed_session(1, SessionCause.POLL, operation)

        assert outcome.successful is False
        assert outcome.error == "vendor said no"
        mock_session_repo.finalize.assert_called_once()
        assert mock_session_repo.finalize.call_args.kwargs["error"] == "vendor said no"
