# Application Services - aggregation, series resolution, sessions, sync

from .point_aggregation_service import PointAggregationService
from .daily_rollup_service import DailyRollupService
from .series_manager import SeriesManager
from .session_service import SessionLabelGenerator, SessionService, TimedOutcome
from .sync_engine import SyncContext, SyncEngine, SyncStage
from .vendor_sync_service import VendorSyncService

__all__ = [
    "PointAggregationService",
    "DailyRollupService",
    "SeriesManager",
    "SessionLabelGenerator",
    "SessionService",
    "TimedOutcome",
    "SyncContext",
    "SyncEngine",
    "SyncStage",
    "VendorSyncService",
]
