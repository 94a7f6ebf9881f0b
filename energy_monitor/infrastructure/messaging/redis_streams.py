"""
Redis Streams client and producer.

Stream entries carry a JSON "data" field plus optional flat header fields
(e.g. type, system_id) that consumers can filter on without decoding.
"""
import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis

from ...config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class RedisStreamManager:
    """Lazily created process-wide client."""

    _client: Optional[redis.Redis] = None

    @classmethod
    async def get_client(cls) -> redis.Redis:
        if cls._client is None:
            cls._client = redis.from_url(settings.redis.url, decode_responses=True)
            logger.info(f"Redis client created for {settings.redis.host}:{settings.redis.port}")
        return cls._client

    @classmethod
    async def close(cls) -> None:
        if cls._client is None:
            return
        await cls._client.aclose()
        cls._client = None


def encode_entry(data: Dict[str, Any], headers: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    """Stream fields for one entry; None headers are dropped."""
    fields = {
        name: str(value)
        for name, value in (headers or {}).items()
        if value is not None
    }
    fields['data'] = json.dumps(data, default=str)
    return fields


class StreamProducer:
    """
    Appends entries to one capped stream.

    Uses the shared client unless one is injected.
    """

    def __init__(
        self,
        stream_name: str,
        max_len: Optional[int] = None,
        client: Optional[redis.Redis] = None,
    ):
        self.stream_name = stream_name
        self.max_len = max_len or settings.redis.stream_max_len
        self._client = client

    async def add(self, data: Dict[str, Any], headers: Optional[Dict[str, Any]] = None) -> str:
        """
        Returns:
            The auto-generated entry ID.
        """
        client = self._client or await RedisStreamManager.get_client()
        return await client.xadd(
            self.stream_name,
            encode_entry(data, headers),
            maxlen=self.max_len,
            approximate=True,
        )


async def health_check() -> bool:
    try:
        client = await RedisStreamManager.get_client()
        return bool(await client.ping())
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        return False
