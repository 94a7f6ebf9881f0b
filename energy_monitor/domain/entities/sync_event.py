"""
Events emitted while a sync session runs.

The engine yields these; wire encoding happens at the API boundary.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .sync import StageState


@dataclass(frozen=True)
class ProgressEvent:
    """Overall progress, monotonic in progress/total."""
    message: str
    progress: int
    total: int = 100


@dataclass(frozen=True)
class StagesEvent:
    """Snapshot of every stage's state."""
    stages: List[StageState]


@dataclass(frozen=True)
class CompleteEvent:
    session_id: int
    summary: Dict[str, Any]


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    session_id: Optional[int] = None


SyncEvent = Union[ProgressEvent, StagesEvent, CompleteEvent, ErrorEvent]
