"""
Domain entities for the energy monitor core.
"""
from .point import (
    PointInfo,
    PointMetadata,
    PointTransform,
    build_uniqueness_key,
)
from .system import (
    System,
    PointReference,
    CompositeMetadataV2,
    UnsupportedCompositeMetadata,
    parse_composite_metadata,
    COMPOSITE_VENDOR_TYPE,
)
from .aggregate import (
    PointReading,
    PointAggregate5m,
    PointAggregate1d,
    SystemDayResult,
    RangeAggregationResult,
    RangeDeletionResult,
)
from .series import SeriesInfo, series_for_point
from .session import SessionCause, SessionRecord, SessionHandle
from .sync import (
    SyncAction,
    SyncRequest,
    SyncResult,
    SyncSummary,
    StageStatus,
    StageState,
    StageResult,
    BatchInfo,
    CharacterisationRange,
    SampleRecord,
    PointSamples,
    VendorReading,
)
from .sync_event import (
    SyncEvent,
    ProgressEvent,
    StagesEvent,
    CompleteEvent,
    ErrorEvent,
)

__all__ = [
    "PointInfo",
    "PointMetadata",
    "PointTransform",
    "build_uniqueness_key",
    "System",
    "PointReference",
    "CompositeMetadataV2",
    "UnsupportedCompositeMetadata",
    "parse_composite_metadata",
    "COMPOSITE_VENDOR_TYPE",
    "PointReading",
    "PointAggregate5m",
    "PointAggregate1d",
    "SystemDayResult",
    "RangeAggregationResult",
    "RangeDeletionResult",
    "SeriesInfo",
    "series_for_point",
    "SessionCause",
    "SessionRecord",
    "SessionHandle",
    "SyncAction",
    "SyncRequest",
    "SyncResult",
    "SyncSummary",
    "StageStatus",
    "StageState",
    "StageResult",
    "BatchInfo",
    "CharacterisationRange",
    "SampleRecord",
    "PointSamples",
    "VendorReading",
    "SyncEvent",
    "ProgressEvent",
    "StagesEvent",
    "CompleteEvent",
    "ErrorEvent",
]
