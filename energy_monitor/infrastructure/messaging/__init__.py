# Messaging Infrastructure - Redis Streams
from .redis_streams import (
    RedisStreamManager,
    StreamProducer,
    health_check,
)
from .session_publisher import SessionPublisher

__all__ = [
    "RedisStreamManager",
    "StreamProducer",
    "health_check",
    "SessionPublisher",
]
