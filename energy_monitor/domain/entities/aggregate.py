"""
Aggregate domain entities.

One row per (system, point, interval end) at 5 minutes and one row per
(system, point, day) at 1 day. Times are Unix milliseconds.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional


@dataclass
class PointReading:
    """A raw reading for one point."""
    system_id: int
    point_id: int
    measurement_time_ms: int
    value: Optional[float] = None
    value_str: Optional[str] = None
    received_time_ms: Optional[int] = None
    data_quality: Optional[str] = None
    error: Optional[str] = None
    session_id: Optional[int] = None


@dataclass
class PointAggregate5m:
    """Five-minute aggregate for one point."""
    system_id: int
    point_id: int
    interval_end_ms: int
    avg: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    last: Optional[float] = None
    delta: Optional[float] = None
    sample_count: int = 0
    error_count: int = 0
    data_quality: Optional[str] = None
    session_id: Optional[int] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "system_id": self.system_id,
            "point_id": self.point_id,
            "interval_end": self.interval_end_ms,
            "avg": self.avg,
            "min": self.min,
            "max": self.max,
            "last": self.last,
            "delta": self.delta,
            "sample_count": self.sample_count,
            "error_count": self.error_count,
            "data_quality": self.data_quality,
            "session_id": self.session_id,
        }


@dataclass
class PointAggregate1d:
    """Daily aggregate for one point, where the day is in the system's offset."""
    system_id: int
    point_id: int
    day: date
    avg: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    last: Optional[float] = None
    delta: Optional[float] = None
    sample_count: int = 0
    error_count: int = 0

    def to_row(self) -> Dict[str, Any]:
        return {
            "system_id": self.system_id,
            "point_id": self.point_id,
            "day": self.day,
            "avg": self.avg,
            "min": self.min,
            "max": self.max,
            "last": self.last,
            "delta": self.delta,
            "sample_count": self.sample_count,
            "error_count": self.error_count,
        }


@dataclass
class SystemDayResult:
    """Outcome of rolling up one system over a set of days."""
    system_id: int
    days_aggregated: int
    points_aggregated: int
    day: Optional[date] = None


@dataclass
class RangeAggregationResult:
    """Outcome of a range operation across systems."""
    start_date: Optional[date]
    end_date: Optional[date]
    systems_processed: int = 0
    days_aggregated: int = 0
    points_aggregated: int = 0
    results: List[SystemDayResult] = field(default_factory=list)


@dataclass
class RangeDeletionResult:
    """Outcome of a destructive range delete."""
    start_date: date
    end_date: date
    rows_deleted: int

    @property
    def message(self) -> str:
        return f"Deleted {self.rows_deleted} aggregation rows from {self.start_date} to {self.end_date}"
