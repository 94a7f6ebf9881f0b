"""
Pydantic schemas for series listing.
"""
from typing import List

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ...domain.entities.series import SeriesInfo


class SeriesResponse(BaseModel):
    """One queryable series."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    path: str
    intervals: List[str]
    label: str
    metric_unit: str
    system_id: int
    point_index: int
    aggregation_field: str

    @classmethod
    def from_series(cls, series: SeriesInfo) -> "SeriesResponse":
        return cls(
            id=series.series_id,
            path=series.path,
            intervals=[interval.value for interval in series.intervals],
            label=series.point.name,
            metric_unit=series.point.metric_unit,
            system_id=series.point.system_id,
            point_index=series.point.index,
            aggregation_field=series.aggregation_field.value,
        )


class SeriesListResponse(BaseModel):
    """Series of one system."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    system_id: int
    count: int
    series: List[SeriesResponse]
