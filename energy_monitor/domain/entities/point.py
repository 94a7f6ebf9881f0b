"""
Point domain entities.

A point is a single monitored signal (e.g. "Solar Power") scoped to one
system, normalised from whatever a vendor reports.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from ..services.aggregation_rules import AggregationField, MetricKind


class PointTransform(str, Enum):
    """How raw vendor values are turned into stored values."""
    IDENTITY = "n"
    INVERT = "i"
    DELTA = "d"

    @classmethod
    def from_code(cls, code: Optional[str]) -> "PointTransform":
        """Map a stored transform code; None means identity."""
        if not code:
            return cls.IDENTITY
        return cls(code)

    def apply(self, value: Optional[float]) -> Optional[float]:
        """Apply an identity or invert transform. Delta points are differenced at aggregation time."""
        if value is None:
            return None
        if self is PointTransform.INVERT:
            return -value
        return value


def build_uniqueness_key(origin_id: str, origin_sub_id: Optional[str] = None) -> str:
    """Ingest deduplication key; metric type never takes part in it."""
    if origin_sub_id:
        return f"{origin_id}:{origin_sub_id}"
    return origin_id


@dataclass
class PointMetadata:
    """
    Vendor-side description of an origin, used to create its point on first ingest.
    """
    origin_id: str
    default_name: str
    metric_type: str
    metric_unit: str
    origin_sub_id: Optional[str] = None
    type: Optional[str] = None
    subtype: Optional[str] = None
    extension: Optional[str] = None
    subsystem: Optional[str] = None
    transform: Optional[str] = None

    @property
    def uniqueness_key(self) -> str:
        return build_uniqueness_key(self.origin_id, self.origin_sub_id)

    @property
    def point_key(self) -> str:
        """Key used to group readings in a batch, e.g. "E1.perKwh"."""
        if self.origin_sub_id:
            return f"{self.origin_id}.{self.origin_sub_id}"
        return self.origin_id


@dataclass
class PointInfo:
    """
    A monitored signal.

    Identity is (system_id, index); origin identity is (origin_id, origin_sub_id).
    """
    system_id: int
    index: int
    origin_id: str
    default_name: str
    metric_type: str
    metric_unit: str
    origin_sub_id: Optional[str] = None
    display_name: Optional[str] = None
    subsystem: Optional[str] = None
    type: Optional[str] = None
    subtype: Optional[str] = None
    extension: Optional[str] = None
    transform: Optional[str] = None
    active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        """Display name if set, otherwise the vendor default."""
        return self.display_name or self.default_name

    @property
    def metric_kind(self) -> MetricKind:
        return MetricKind.from_metric_type(self.metric_type)

    @property
    def point_transform(self) -> PointTransform:
        return PointTransform.from_code(self.transform)

    def identifier(self) -> Optional[str]:
        """
        Hierarchical identifier from type.subtype.extension.

        Returns None when the point has no type. An extension is only used
        when a subtype is present.
        """
        if not self.type:
            return None
        parts = [self.type]
        if self.subtype:
            parts.append(self.subtype)
            if self.extension:
                parts.append(self.extension)
        return ".".join(parts)

    def logical_path(self) -> str:
        """
        Preferred path, e.g. "source.solar/power".

        Falls back to "{index}/{metric_type}" for points without a hierarchy.
        """
        identifier = self.identifier()
        if identifier:
            return f"{identifier}/{self.metric_type}"
        return f"{self.index}/{self.metric_type}"

    def is_typed(self) -> bool:
        return self.identifier() is not None

    def preferred_aggregation(self) -> AggregationField:
        """Default series to chart for this point."""
        kind = self.metric_kind
        if kind is MetricKind.ENERGY:
            return AggregationField.DELTA
        if kind is MetricKind.SOC:
            return AggregationField.LAST
        return AggregationField.AVG

    def reference(self) -> str:
        """Cross-system reference in "systemId.pointIndex" form."""
        return f"{self.system_id}.{self.index}"

    def uniqueness_key(self) -> str:
        return build_uniqueness_key(self.origin_id, self.origin_sub_id)
