"""
Aggregation window and date range value objects.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional

from ..exceptions import InvalidDateRangeException

FIVE_MINUTES_MS = 5 * 60 * 1000


@dataclass(frozen=True)
class AggregationWindow:
    """
    Five-minute bucket range covering one calendar day in a fixed offset.

    The bucket labelled 00:00 holds the trailing five minutes of the previous
    day, so a day runs from its 00:05 bucket through the next day's 00:00
    bucket inclusive. The 00:00 bucket of the day itself supplies the value
    of "last" as of the previous midnight boundary.
    """
    day: date
    offset_minutes: int
    start_ms: int
    end_ms: int
    bucket_ms: int = FIVE_MINUTES_MS

    @classmethod
    def for_day(cls, day: date, offset_minutes: int, bucket_minutes: int = 5) -> "AggregationWindow":
        tz = timezone(timedelta(minutes=offset_minutes))
        midnight = datetime.combine(day, time.min, tzinfo=tz)
        start = midnight + timedelta(minutes=bucket_minutes)
        end = midnight + timedelta(days=1)
        return cls(
            day=day,
            offset_minutes=offset_minutes,
            start_ms=int(start.timestamp() * 1000),
            end_ms=int(end.timestamp() * 1000),
            bucket_ms=bucket_minutes * 60 * 1000,
        )

    @property
    def previous_boundary_ms(self) -> int:
        """The 00:00 bucket immediately before the window's first bucket."""
        return self.start_ms - self.bucket_ms

    @property
    def num_buckets(self) -> int:
        return (self.end_ms - self.start_ms) // self.bucket_ms + 1

    def contains(self, interval_end_ms: int) -> bool:
        return self.start_ms <= interval_end_ms <= self.end_ms


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive calendar date range validated against a minimum floor date.
    """
    start: date
    end: date

    @classmethod
    def validated(cls, start: date, end: date, min_date: date) -> "DateRange":
        if start < min_date:
            raise InvalidDateRangeException(
                f"Start date {start.isoformat()} is earlier than minimum allowed date {min_date.isoformat()}",
                start=start,
                end=end,
            )
        if start > end:
            raise InvalidDateRangeException(
                f"Start date {start.isoformat()} must be before or equal to end date {end.isoformat()}",
                start=start,
                end=end,
            )
        return cls(start=start, end=end)

    @staticmethod
    def require_both_or_neither(start: Optional[date], end: Optional[date]) -> None:
        if (start is None) != (end is None):
            raise InvalidDateRangeException(
                "Both start and end must be null, or both must be provided",
                start=start,
                end=end,
            )

    @property
    def num_days(self) -> int:
        return (self.end - self.start).days + 1

    def days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)
