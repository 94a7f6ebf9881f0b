"""
Series domain entities.

A series is a derived, non-persisted (point, aggregation field) pair with
the intervals it can be queried at.
"""
from dataclasses import dataclass
from typing import Any, Dict, List

from .point import PointInfo
from ..services.aggregation_rules import (
    AggregationField,
    Interval,
    fields_for,
    supported_intervals,
)


@dataclass(frozen=True)
class SeriesInfo:
    """A queryable series of one point."""
    system_id: int
    point: PointInfo
    aggregation_field: AggregationField
    intervals: tuple

    @property
    def path(self) -> str:
        """Series path without the system prefix, e.g. "source.solar/power.avg"."""
        return f"{self.point.logical_path()}.{self.aggregation_field.value}"

    @property
    def series_id(self) -> str:
        return f"system.{self.system_id}/{self.path}"

    def supports(self, interval: Interval) -> bool:
        return interval in self.intervals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.series_id,
            "path": self.path,
            "intervals": [interval.value for interval in self.intervals],
            "label": self.point.name,
            "metricUnit": self.point.metric_unit,
            "systemId": self.point.system_id,
            "pointIndex": self.point.index,
            "aggregationField": self.aggregation_field.value,
        }


def series_for_point(system_id: int, point: PointInfo) -> List[SeriesInfo]:
    """One series per aggregation field the point's metric type has."""
    return [
        SeriesInfo(
            system_id=system_id,
            point=point,
            aggregation_field=agg_field,
            intervals=tuple(supported_intervals(point.metric_type, agg_field)),
        )
        for agg_field in fields_for(point.metric_type)
    ]
