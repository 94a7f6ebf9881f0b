# Domain Value Objects
from .aggregation_window import AggregationWindow, DateRange, FIVE_MINUTES_MS

__all__ = [
    "AggregationWindow",
    "DateRange",
    "FIVE_MINUTES_MS",
]
