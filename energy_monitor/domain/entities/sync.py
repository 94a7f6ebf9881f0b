"""
Sync domain entities.

Requests, per-stage results and the structured audit payload of a vendor
synchronization.
"""
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from .point import PointMetadata


class SyncAction(str, Enum):
    """What to synchronize from the vendor."""
    USAGE = "usage"
    PRICING = "pricing"
    BOTH = "both"

    def kinds(self) -> List[str]:
        if self is SyncAction.BOTH:
            return [SyncAction.USAGE.value, SyncAction.PRICING.value]
        return [self.value]


class StageStatus(str, Enum):
    """Lifecycle of one stage within a session."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class SyncRequest:
    """A request to synchronize days of vendor data for one system."""
    system_id: int
    action: SyncAction
    start_date: date
    days: int = 1
    dry_run: bool = False
    show_sample: bool = False


@dataclass
class VendorReading:
    """One vendor reading for one point at one interval end."""
    point_metadata: PointMetadata
    raw_value: Optional[float]
    measurement_time_ms: int
    received_time_ms: Optional[int] = None
    data_quality: Optional[str] = None
    error: Optional[str] = None

    @property
    def point_key(self) -> str:
        return self.point_metadata.point_key


@dataclass
class CharacterisationRange:
    """A run of consecutive intervals sharing a quality across a set of points."""
    range_start_time_ms: int
    range_end_time_ms: int
    quality: str
    point_origin_ids: List[str]
    num_periods: int


@dataclass
class SampleRecord:
    """Simplified reading kept in the audit payload."""
    raw_value: Optional[float]
    measurement_time_ms: int
    received_time_ms: Optional[int]
    quality: Optional[str]


@dataclass
class PointSamples:
    records: List[SampleRecord]
    num_skipped: Optional[int] = None


@dataclass
class BatchInfo:
    """Views of a readings batch attached to a stage result."""
    num_records: int = 0
    overviews: Dict[str, str] = field(default_factory=dict)
    uniform_quality: Optional[str] = None
    characterisation: Optional[List[CharacterisationRange]] = None
    sample_records: Dict[str, PointSamples] = field(default_factory=dict)
    canonical: List[str] = field(default_factory=list)
    comparison_overviews: Optional[Dict[str, str]] = None


@dataclass
class StageResult:
    """
    Outcome of one stage.

    error is stage-level and does not abort later stages by itself; halt
    requests an early exit that marks the remaining stages skipped.
    A dry-run store counts into num_rows_would_insert instead.
    """
    stage: str
    request: Optional[str] = None
    discovery: Optional[str] = None
    info: Optional[BatchInfo] = None
    error: Optional[str] = None
    num_rows_inserted: int = 0
    num_rows_would_insert: int = 0
    halt: bool = False


@dataclass
class StageState:
    """Stage status as streamed to listeners."""
    id: str
    name: str
    status: StageStatus = StageStatus.PENDING
    detail: Optional[str] = None
    progress: Optional[float] = None
    start_time_ms: Optional[int] = None
    duration_ms: Optional[int] = None
    result: Optional[StageResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "detail": self.detail,
            "progress": self.progress,
            "startTimeMs": self.start_time_ms,
            "durationMs": self.duration_ms,
            "result": asdict(self.result) if self.result is not None else None,
        }


@dataclass
class SyncSummary:
    total_stages: int
    num_rows_inserted: int
    duration_ms: int
    num_rows_would_insert: int = 0
    error: Optional[str] = None
    exception: Optional[str] = None


@dataclass
class SyncResult:
    """Full audit payload stored with the session."""
    action: str
    success: bool
    system_id: int
    first_day: date
    number_of_days: int
    stages: List[StageResult]
    summary: SyncSummary
    dry_run: bool = False
