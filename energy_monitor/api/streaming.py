"""
Newline-delimited JSON encoding of sync events.
"""
import json
from typing import Any, Dict

from ..domain.entities.sync_event import (
    CompleteEvent,
    ErrorEvent,
    ProgressEvent,
    StagesEvent,
    SyncEvent,
)

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def event_to_dict(event: SyncEvent) -> Dict[str, Any]:
    """Wire form of an event, discriminated by "type"."""
    if isinstance(event, ProgressEvent):
        return {
            "type": "progress",
            "message": event.message,
            "progress": event.progress,
            "total": event.total,
        }
    if isinstance(event, StagesEvent):
        return {
            "type": "stages",
            "stages": [stage.to_dict() for stage in event.stages],
        }
    if isinstance(event, CompleteEvent):
        return {
            "type": "complete",
            "sessionId": event.session_id,
            "summary": event.summary,
        }
    if isinstance(event, ErrorEvent):
        return {
            "type": "error",
            "message": event.message,
            "sessionId": event.session_id,
        }
    raise TypeError(f"Unknown sync event: {type(event).__name__}")


def encode_ndjson(event: SyncEvent) -> str:
    """One JSON object followed by a newline."""
    return json.dumps(event_to_dict(event), default=str) + "\n"
