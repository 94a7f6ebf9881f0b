from .series_cache import SeriesCache

__all__ = ["SeriesCache"]
