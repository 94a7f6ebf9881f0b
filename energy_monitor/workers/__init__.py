"""
Background workers.

- Daily aggregation: rolls yesterday's 5-minute data into daily rows
"""
from .daily_aggregation_worker import DailyAggregationWorker

__all__ = [
    "DailyAggregationWorker",
]
