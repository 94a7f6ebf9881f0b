"""
Readings batch: a window of vendor readings organised by interval and point.

Produces the audit views attached to sync stages (overviews, uniform quality,
characterisation, samples, canonical display) and the local-vs-remote
comparison that decides which remote readings to store.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from ..entities.sync import (
    BatchInfo,
    CharacterisationRange,
    PointSamples,
    SampleRecord,
    VendorReading,
)
from ..exceptions import ReadingOutOfRangeException

MISSING_QUALITY = "."

# Returned by get_uniform_quality when readings disagree
MIXED = "mixed"

QUALITY_RANK: Dict[str, int] = {
    "b": 4,  # billable
    "a": 3,  # actual
    "e": 2,  # estimated
    "f": 1,  # forecast
    ".": 0,  # missing
}


def abbreviate_quality(quality: Optional[str]) -> str:
    """First character, lowercased; "." when missing."""
    if not quality:
        return MISSING_QUALITY
    return quality[0].lower()


def generate_interval_ends(
    first_day: date,
    number_of_days: int,
    interval_minutes: int,
    offset_minutes: int,
) -> List[int]:
    """Interval end times (ms) from first_day 00:00 + one interval through the final midnight."""
    tz = timezone(timedelta(minutes=offset_minutes))
    current = datetime.combine(first_day, time.min, tzinfo=tz)
    per_day = (24 * 60) // interval_minutes
    step = timedelta(minutes=interval_minutes)

    ends: List[int] = []
    for _ in range(per_day * number_of_days):
        current += step
        ends.append(int(current.timestamp() * 1000))
    return ends


class ReadingsBatch:
    """
    Readings for a run of whole days at a fixed vendor interval.

    Every interval end is prepopulated, so views render gaps as ".".
    """

    def __init__(
        self,
        first_day: date,
        number_of_days: int = 1,
        interval_minutes: int = 30,
        offset_minutes: int = 600,
    ):
        self.first_day = first_day
        self.number_of_days = number_of_days
        self.interval_minutes = interval_minutes
        self.offset_minutes = offset_minutes
        self.interval_ends = generate_interval_ends(
            first_day, number_of_days, interval_minutes, offset_minutes
        )
        self._records: Dict[int, Dict[str, VendorReading]] = {
            end: {} for end in self.interval_ends
        }

    @property
    def interval_ms(self) -> int:
        return self.interval_minutes * 60 * 1000

    @property
    def range_start_ms(self) -> int:
        return self.interval_ends[0] - self.interval_ms

    @property
    def range_end_ms(self) -> int:
        return self.interval_ends[-1]

    def empty_copy(self) -> "ReadingsBatch":
        return ReadingsBatch(
            self.first_day, self.number_of_days, self.interval_minutes, self.offset_minutes
        )

    # =========================================================================
    # Mutation and access
    # =========================================================================

    def add(self, reading: VendorReading) -> None:
        """
        Add a reading, normalising its quality to one character.

        Raises:
            ReadingOutOfRangeException: Reading lies outside the batch window.
        """
        t = reading.measurement_time_ms
        if t < self.range_start_ms or t > self.range_end_ms:
            raise ReadingOutOfRangeException(
                reading.point_key, t, self.range_start_ms, self.range_end_ms
            )

        reading.data_quality = abbreviate_quality(reading.data_quality)
        self._records.setdefault(t, {})[reading.point_key] = reading

    def get(self, interval_end_ms: int, point_key: str) -> Optional[VendorReading]:
        return self._records.get(interval_end_ms, {}).get(point_key)

    def readings(self) -> List[VendorReading]:
        """All readings in interval order."""
        result: List[VendorReading] = []
        for end in sorted(self._records):
            result.extend(self._records[end].values())
        return result

    def get_keys(self) -> List[str]:
        keys = set()
        for point_map in self._records.values():
            keys.update(point_map.keys())
        return sorted(keys)

    def count(self) -> int:
        return sum(len(point_map) for point_map in self._records.values())

    # =========================================================================
    # Views
    # =========================================================================

    def get_overview(self, point_key: str) -> str:
        """One quality character per interval for a point."""
        chars = []
        for end in self.interval_ends:
            reading = self._records[end].get(point_key)
            chars.append(reading.data_quality if reading else MISSING_QUALITY)
        return "".join(chars)

    def get_uniform_quality(self) -> Optional[str]:
        """
        The shared quality of every reading.

        Returns None when there is no data and MIXED when qualities differ.
        """
        first: Optional[str] = None
        for point_map in self._records.values():
            for reading in point_map.values():
                if first is None:
                    first = reading.data_quality
                elif reading.data_quality != first:
                    return MIXED
        return first

    def _range_start(self, start_idx: int) -> int:
        if start_idx == 0:
            return self.range_start_ms
        return self.interval_ends[start_idx - 1]

    def get_characterisation(self) -> Optional[List[CharacterisationRange]]:
        """
        Ranges of consecutive intervals where a set of points share a quality.

        Open ranges extend while every member keeps its quality; points that
        change or appear can only join ranges opened in the same interval.
        Returns None when there is no data.
        """
        if self.count() == 0:
            return None

        # each open range: [quality, point keys, start idx, end idx]
        open_ranges: List[list] = []
        closed: List[CharacterisationRange] = []

        def close(entry: list) -> None:
            quality, keys, start_idx, end_idx = entry
            closed.append(CharacterisationRange(
                range_start_time_ms=self._range_start(start_idx),
                range_end_time_ms=self.interval_ends[end_idx],
                quality=quality,
                point_origin_ids=sorted(keys),
                num_periods=end_idx - start_idx + 1,
            ))

        for i, end in enumerate(self.interval_ends):
            bag = {
                key: reading.data_quality
                for key, reading in self._records[end].items()
                if reading.data_quality
            }

            still_open = []
            for entry in open_ranges:
                quality, keys = entry[0], entry[1]
                if all(bag.get(key) == quality for key in keys):
                    entry[3] = i
                    for key in keys:
                        bag.pop(key, None)
                    still_open.append(entry)
                else:
                    close(entry)

            new_ranges: List[list] = []
            for key, quality in bag.items():
                match = next((r for r in new_ranges if r[0] == quality), None)
                if match:
                    match[1].add(key)
                else:
                    new_ranges.append([quality, {key}, i, i])

            open_ranges = still_open + new_ranges

        for entry in open_ranges:
            close(entry)

        return closed

    def get_sample_records(self, limit: int = 2) -> Dict[str, PointSamples]:
        """Up to `limit` earliest valued readings per point, with a count of the rest."""
        samples: Dict[str, PointSamples] = {}
        for key in self.get_keys():
            valued = [
                self._records[end][key]
                for end in sorted(self._records)
                if key in self._records[end] and self._records[end][key].raw_value is not None
            ]
            if not valued:
                continue
            records = [
                SampleRecord(
                    raw_value=r.raw_value,
                    measurement_time_ms=r.measurement_time_ms,
                    received_time_ms=r.received_time_ms,
                    quality=r.data_quality,
                )
                for r in valued[:limit]
            ]
            skipped = len(valued) - limit if len(valued) > limit else None
            samples[key] = PointSamples(records=records, num_skipped=skipped)
        return samples

    def get_canonical_display(self, keys: Sequence[str]) -> List[str]:
        """
        Monospaced table: interval start times, one row per key, then the
        quality row of the first key. Columns are six characters wide.
        """
        if not keys:
            return []

        tz = timezone(timedelta(minutes=self.offset_minutes))
        time_row: List[str] = []
        value_rows: List[List[str]] = [[] for _ in keys]
        quality_row: List[str] = []

        for end in self.interval_ends:
            start = datetime.fromtimestamp((end - self.interval_ms) / 1000, tz=tz)
            time_row.append(start.strftime("%H:%M"))
            point_map = self._records[end]
            for row, key in zip(value_rows, keys):
                reading = point_map.get(key)
                row.append("-" if reading is None or reading.raw_value is None else str(round(reading.raw_value)))
            lead = point_map.get(keys[0])
            quality_row.append(lead.data_quality if lead and lead.raw_value is not None else MISSING_QUALITY)

        rows = [time_row] + value_rows + [quality_row]
        return ["".join(cell.rjust(6) for cell in row) for row in rows]

    def get_info(self, canonical_keys: Sequence[str] = (), sample_limit: int = 2) -> BatchInfo:
        return BatchInfo(
            num_records=self.count(),
            overviews={key: self.get_overview(key) for key in self.get_keys()},
            uniform_quality=self.get_uniform_quality(),
            characterisation=self.get_characterisation(),
            sample_records=self.get_sample_records(sample_limit),
            canonical=self.get_canonical_display(canonical_keys),
        )


# =============================================================================
# Comparison
# =============================================================================

def compare_readings(local: Optional[VendorReading], remote: VendorReading) -> int:
    """
    Decide between a local and a remote reading.

    Returns 1 if remote wins, -1 if local wins, 0 if equal.
    """
    if local is None:
        return 1

    local_rank = QUALITY_RANK.get(local.data_quality or MISSING_QUALITY, 0)
    remote_rank = QUALITY_RANK.get(remote.data_quality or MISSING_QUALITY, 0)

    if remote_rank > local_rank:
        return 1
    if local_rank > remote_rank:
        return -1
    if remote.raw_value != local.raw_value:
        return 1
    return 0


def compare_batches(
    local: ReadingsBatch,
    remote: ReadingsBatch,
    point_keys: Sequence[str],
) -> Tuple[ReadingsBatch, Dict[str, str]]:
    """
    Collect remote readings superior to local ones.

    The comparison overview uses "." when neither side has data, the
    uppercase remote quality when remote wins, the lowercase local quality
    when local wins and "=" when both agree.
    """
    superior = remote.empty_copy()
    builders: Dict[str, List[str]] = {key: [] for key in point_keys}

    for end in remote.interval_ends:
        for key in point_keys:
            local_reading = local.get(end, key)
            remote_reading = remote.get(end, key)

            if local_reading is None and remote_reading is None:
                builders[key].append(MISSING_QUALITY)
            elif remote_reading is None:
                builders[key].append(local_reading.data_quality or MISSING_QUALITY)
            else:
                outcome = compare_readings(local_reading, remote_reading)
                if outcome > 0:
                    builders[key].append((remote_reading.data_quality or MISSING_QUALITY).upper())
                    superior.add(remote_reading)
                elif outcome == 0:
                    builders[key].append("=")
                else:
                    builders[key].append(local_reading.data_quality or MISSING_QUALITY)

    return superior, {key: "".join(chars) for key, chars in builders.items()}
