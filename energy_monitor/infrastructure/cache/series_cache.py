"""
In-process cache of resolved series per system.
"""
import logging
import time
from typing import Callable, Dict, List, Optional

from ...domain.entities.series import SeriesInfo

logger = logging.getLogger(__name__)


class SeriesCache:
    """
    Series lists keyed by system ID.

    The whole cache expires together: once `ttl_seconds` have passed since
    the last full reload, the next access clears every entry.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[int, List[SeriesInfo]] = {}
        self._loaded_at: Optional[float] = None
        self._hits = 0
        self._misses = 0

    def _expire_if_stale(self) -> None:
        if self._loaded_at is None:
            return
        if self._clock() - self._loaded_at >= self._ttl_seconds:
            logger.debug(f"Series cache expired, dropping {len(self._entries)} systems")
            self._entries.clear()
            self._loaded_at = None

    def get(self, system_id: int) -> Optional[List[SeriesInfo]]:
        self._expire_if_stale()
        entry = self._entries.get(system_id)
        if entry is None:
            self._misses += 1
        else:
            self._hits += 1
        return entry

    def put(self, system_id: int, series: List[SeriesInfo]) -> None:
        self._expire_if_stale()
        if self._loaded_at is None:
            self._loaded_at = self._clock()
        self._entries[system_id] = list(series)

    def invalidate(self, system_id: int) -> None:
        self._entries.pop(system_id, None)

    def invalidate_all(self) -> None:
        self._entries.clear()
        self._loaded_at = None

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, int]:
        return {
            "systems": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
        }
