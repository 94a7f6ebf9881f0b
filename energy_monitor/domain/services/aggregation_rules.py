"""
Aggregation rules per metric kind.

Single table answering which statistical fields exist for a metric type and
which intervals carry each of them. The 5-minute aggregator, the daily rollup
engine and the series manager all read from here.
"""
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class MetricKind(str, Enum):
    """Statistical family of a metric type."""
    ENERGY = "energy"
    SOC = "soc"
    POWER_LIKE = "power_like"

    @classmethod
    def from_metric_type(cls, metric_type: Optional[str]) -> "MetricKind":
        """Classify a raw metric type; anything not energy or soc is power-like."""
        if metric_type == "energy":
            return cls.ENERGY
        if metric_type == "soc":
            return cls.SOC
        return cls.POWER_LIKE


class AggregationField(str, Enum):
    """Statistic computed over an interval."""
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    LAST = "last"
    DELTA = "delta"


class Interval(str, Enum):
    """Rollup resolution."""
    FIVE_MINUTES = "5m"
    ONE_DAY = "1d"


BOTH: FrozenSet[Interval] = frozenset({Interval.FIVE_MINUTES, Interval.ONE_DAY})
DAILY_ONLY: FrozenSet[Interval] = frozenset({Interval.ONE_DAY})

# Field order is the order series are exposed in.
AGGREGATION_RULES: Dict[MetricKind, Tuple[Tuple[AggregationField, FrozenSet[Interval]], ...]] = {
    MetricKind.ENERGY: (
        (AggregationField.DELTA, BOTH),
    ),
    MetricKind.SOC: (
        (AggregationField.LAST, BOTH),
        (AggregationField.AVG, DAILY_ONLY),
        (AggregationField.MIN, DAILY_ONLY),
        (AggregationField.MAX, DAILY_ONLY),
    ),
    # 5-minute min/max have nothing finer to aggregate over
    MetricKind.POWER_LIKE: (
        (AggregationField.AVG, BOTH),
        (AggregationField.MIN, DAILY_ONLY),
        (AggregationField.MAX, DAILY_ONLY),
        (AggregationField.LAST, BOTH),
    ),
}

_INTERVAL_ORDER = (Interval.FIVE_MINUTES, Interval.ONE_DAY)


def fields_for(metric_type: Optional[str]) -> List[AggregationField]:
    """Aggregation fields that exist at all for a metric type."""
    kind = MetricKind.from_metric_type(metric_type)
    return [agg_field for agg_field, _ in AGGREGATION_RULES[kind]]


def supported_intervals(metric_type: Optional[str], agg_field: AggregationField) -> List[Interval]:
    """
    Intervals at which a (metric type, field) pair is available.

    Returns an empty list for fields the metric type does not have.
    """
    kind = MetricKind.from_metric_type(metric_type)
    for rule_field, intervals in AGGREGATION_RULES[kind]:
        if rule_field == agg_field:
            return [interval for interval in _INTERVAL_ORDER if interval in intervals]
    return []


def supports(metric_type: Optional[str], agg_field: AggregationField, interval: Interval) -> bool:
    """Check whether a field is available for a metric type at an interval."""
    return interval in supported_intervals(metric_type, agg_field)


def computed_fields(metric_type: Optional[str], interval: Interval) -> FrozenSet[AggregationField]:
    """Fields an aggregator must populate for a metric type at an interval."""
    kind = MetricKind.from_metric_type(metric_type)
    return frozenset(
        agg_field for agg_field, intervals in AGGREGATION_RULES[kind]
        if interval in intervals
    )
