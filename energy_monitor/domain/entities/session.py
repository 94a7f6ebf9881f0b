"""
Session domain entities.

A session is the audit record of one vendor synchronization attempt.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class SessionCause(str, Enum):
    """What triggered a session."""
    POLL = "POLL"
    PUSH = "PUSH"
    USER = "USER"
    ADMIN = "ADMIN"
    ADMIN_DRYRUN = "ADMIN-DRYRUN"
    USER_TEST = "USER-TEST"

    @classmethod
    def for_admin(cls, dry_run: bool) -> "SessionCause":
        return cls.ADMIN_DRYRUN if dry_run else cls.ADMIN


@dataclass
class SessionRecord:
    """
    Persisted session row.

    successful is None while the session is still running.
    """
    id: int
    system_id: int
    cause: SessionCause
    started: datetime
    session_label: Optional[str] = None
    duration_ms: int = 0
    successful: Optional[bool] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None
    num_rows: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_pending(self) -> bool:
        return self.successful is None


@dataclass(frozen=True)
class SessionHandle:
    """What callers keep while a session is in flight."""
    id: int
    started: datetime
    label: Optional[str] = None
