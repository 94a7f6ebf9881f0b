# Repository Implementations

from .system_repository import SystemRepository
from .point_repository import PointRepository
from .aggregate_repository import AggregateRepository
from .session_repository import SessionRepository

__all__ = [
    "SystemRepository",
    "PointRepository",
    "AggregateRepository",
    "SessionRepository",
]
