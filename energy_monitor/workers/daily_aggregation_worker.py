"""
Daily aggregation worker.

Rolls yesterday's 5-minute aggregates into daily rows once per UTC day,
after a configured hour so every system's local day has ended.
"""
import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..domain.entities.aggregate import SystemDayResult

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DailyAggregationWorker:
    """
    Background worker for the daily rollup.

    The rollup itself is supplied as a callback so the worker owns no
    database session; each run opens its own.
    """

    def __init__(
        self,
        run_after_hour_utc: int = 14,
        check_interval_seconds: int = 300,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the daily aggregation worker.

        Args:
            run_after_hour_utc: Earliest UTC hour at which a day's run starts.
            check_interval_seconds: How often to wake up and check.
            clock: Returns the current UTC time.
        """
        self.run_after_hour_utc = run_after_hour_utc
        self.check_interval_seconds = check_interval_seconds
        self._clock = clock

        self._aggregate_yesterday: Optional[Callable[[], Awaitable[List[SystemDayResult]]]] = None

        # State
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._last_run_date: Optional[date] = None

        # Stats
        self._runs_completed = 0
        self._runs_failed = 0
        self._last_run_time: Optional[datetime] = None
        self._last_run_duration: Optional[float] = None
        self._last_points_aggregated = 0

    def set_aggregate_yesterday(self, callback: Callable[[], Awaitable[List[SystemDayResult]]]) -> None:
        """Set callback that rolls up yesterday for every system."""
        self._aggregate_yesterday = callback

    async def start(self) -> None:
        """Start the worker."""
        if self._running:
            logger.warning("Daily aggregation worker already running")
            return

        logger.info("Starting daily aggregation worker")
        self._running = True
        self._shutdown_event.clear()

        self._task = asyncio.create_task(
            self._run_loop(),
            name="daily_aggregation_worker",
        )

    async def stop(self) -> None:
        """Stop the worker."""
        if not self._running:
            return

        logger.info("Stopping daily aggregation worker")
        self._running = False
        self._shutdown_event.set()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info(f"Daily aggregation worker stopped. Runs completed: {self._runs_completed}")

    async def _run_loop(self) -> None:
        logger.debug("Daily aggregation worker loop started")

        while self._running:
            try:
                await self.run_if_due()

                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self.check_interval_seconds,
                    )
                    break  # Shutdown requested
                except asyncio.TimeoutError:
                    pass

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in daily aggregation worker loop: {e}")
                await asyncio.sleep(60)

        logger.debug("Daily aggregation worker loop ended")

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """True once per UTC day, at or after the configured hour."""
        now = now or self._clock()
        if now.hour < self.run_after_hour_utc:
            return False
        return self._last_run_date != now.date()

    async def run_if_due(self) -> bool:
        """
        Run the rollup if today's run has not happened yet.

        Returns:
            True if a run was attempted.
        """
        now = self._clock()
        if self._aggregate_yesterday is None or not self.is_due(now):
            return False

        # Marked before running so a failing day is not retried every check
        self._last_run_date = now.date()
        self._last_run_time = now

        try:
            results = await self._aggregate_yesterday()
        except Exception as e:
            self._runs_failed += 1
            logger.error(f"Daily aggregation failed: {e}")
            return True

        self._last_run_duration = (self._clock() - now).total_seconds()
        self._last_points_aggregated = sum(result.points_aggregated for result in results)
        self._runs_completed += 1

        logger.info(
            f"Daily aggregation completed for {len(results)} systems, "
            f"{self._last_points_aggregated} point rows in {self._last_run_duration:.2f}s"
        )
        return True

    def get_stats(self) -> Dict[str, Any]:
        """Get worker statistics."""
        return {
            "running": self._running,
            "runs_completed": self._runs_completed,
            "runs_failed": self._runs_failed,
            "last_run_date": self._last_run_date.isoformat() if self._last_run_date else None,
            "last_run_time": self._last_run_time.isoformat() if self._last_run_time else None,
            "last_run_duration_seconds": self._last_run_duration,
            "last_points_aggregated": self._last_points_aggregated,
            "run_after_hour_utc": self.run_after_hour_utc,
        }

    @property
    def is_running(self) -> bool:
        """Check if worker is running."""
        return self._running
