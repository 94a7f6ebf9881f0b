# Pydantic Schemas for series, sync and aggregation endpoints

from .series_schemas import (
    SeriesResponse,
    SeriesListResponse,
)
from .sync_schemas import (
    SyncRequestSchema,
)
from .aggregation_schemas import (
    DailyAggregationAction,
    DailyAggregationRequest,
    DailyAggregationResponse,
)

__all__ = [
    "SeriesResponse",
    "SeriesListResponse",
    "SyncRequestSchema",
    "DailyAggregationAction",
    "DailyAggregationRequest",
    "DailyAggregationResponse",
]
