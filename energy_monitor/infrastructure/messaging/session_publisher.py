"""
Publishes finalized sessions to a Redis stream.

Consumers (activity feeds, alerting) read the stream; the sync flow never
depends on them, so publishing failures are logged and swallowed.
"""
import logging
from typing import Any, Dict, Optional

from .redis_streams import StreamProducer
from ...config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class SessionPublisher:
    """Publishes one message per finalized session."""

    def __init__(
        self,
        producer: Optional[StreamProducer] = None,
        enabled: Optional[bool] = None,
    ):
        self._producer = producer or StreamProducer(settings.redis.session_stream)
        self._enabled = settings.redis.publish_sessions if enabled is None else enabled
        self._published = 0
        self._failed = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def publish(self, session: Dict[str, Any]) -> Optional[str]:
        """
        Publish a finalized session.

        Returns:
            The stream message ID, or None when disabled or on failure.
        """
        if not self._enabled:
            return None

        try:
            message_id = await self._producer.add(
                {
                    'type': 'session_finalized',
                    'session': session,
                },
                headers={
                    'type': 'session_finalized',
                    'system_id': session.get('system_id'),
                    'successful': session.get('successful'),
                },
            )
            self._published += 1
            logger.debug(f"Published session {session.get('id')} as {message_id}")
            return message_id
        except Exception as e:
            self._failed += 1
            logger.error(f"Failed to publish session {session.get('id')}: {e}")
            return None

    def get_stats(self) -> Dict[str, Any]:
        return {
            'enabled': self._enabled,
            'published': self._published,
            'failed': self._failed,
        }
