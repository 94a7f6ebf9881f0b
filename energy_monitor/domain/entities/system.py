"""
System domain entities.

A system is one monitored installation. Composite systems carry no points of
their own; their series are remapped from other systems through metadata.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

COMPOSITE_VENDOR_TYPE = "composite"


@dataclass(frozen=True)
class PointReference:
    """A "systemId.pointIndex" pointer into another system's points."""
    system_id: int
    point_index: int

    @classmethod
    def parse(cls, ref: Any) -> Optional["PointReference"]:
        """Parse a reference string, returning None when malformed."""
        if not isinstance(ref, str):
            return None
        parts = ref.split(".")
        if len(parts) != 2:
            return None
        try:
            return cls(system_id=int(parts[0]), point_index=int(parts[1]))
        except ValueError:
            return None

    def __str__(self) -> str:
        return f"{self.system_id}.{self.point_index}"


@dataclass(frozen=True)
class CompositeMetadataV2:
    """Version 2 composite metadata: category name to point references."""
    mappings: Dict[str, Tuple[str, ...]]
    version: int = 2

    def references(self) -> List[PointReference]:
        """Every parseable reference across all categories, malformed ones dropped."""
        refs: List[PointReference] = []
        for raw_refs in self.mappings.values():
            for raw in raw_refs:
                ref = PointReference.parse(raw)
                if ref is not None:
                    refs.append(ref)
        return refs


@dataclass(frozen=True)
class UnsupportedCompositeMetadata:
    """Metadata whose version or shape is not understood; resolves to nothing."""
    version: Any = None


CompositeMetadata = Union[CompositeMetadataV2, UnsupportedCompositeMetadata]


def parse_composite_metadata(metadata: Optional[Dict[str, Any]]) -> CompositeMetadata:
    """Discriminate composite metadata on its version tag."""
    if not isinstance(metadata, dict):
        return UnsupportedCompositeMetadata()

    version = metadata.get("version")
    if version != 2:
        return UnsupportedCompositeMetadata(version=version)

    raw_mappings = metadata.get("mappings")
    if not isinstance(raw_mappings, dict):
        return UnsupportedCompositeMetadata(version=version)

    mappings: Dict[str, Tuple[str, ...]] = {}
    for category, refs in raw_mappings.items():
        if isinstance(refs, list):
            mappings[str(category)] = tuple(refs)
    return CompositeMetadataV2(mappings=mappings)


@dataclass
class System:
    """A monitored installation."""
    id: int
    vendor_type: str
    vendor_site_id: str
    display_name: str
    timezone_offset_min: int = 0
    status: str = "active"
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @property
    def is_composite(self) -> bool:
        return self.vendor_type == COMPOSITE_VENDOR_TYPE

    @property
    def tzinfo(self) -> timezone:
        return timezone(timedelta(minutes=self.timezone_offset_min))

    def composite_metadata(self) -> CompositeMetadata:
        return parse_composite_metadata(self.metadata)

    def today(self, now: Optional[datetime] = None) -> date:
        """Calendar date in the system's own offset."""
        now = now or datetime.now(timezone.utc)
        return now.astimezone(self.tzinfo).date()

    def yesterday(self, now: Optional[datetime] = None) -> date:
        return self.today(now) - timedelta(days=1)
