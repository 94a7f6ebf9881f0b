"""
Configuration management for the energy monitor core.

Uses Pydantic settings for validation and environment variable support.
"""
from datetime import date
from functools import lru_cache
from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL configuration for points, aggregates and sessions."""

    model_config = SettingsConfigDict(
        env_prefix='DATABASE_',
        env_file='.env',
        extra='ignore'
    )

    host: str = Field(default='localhost', description='Database host')
    port: int = Field(default=5432, description='Database port')
    name: str = Field(default='energy_monitor', description='Database name')
    user: str = Field(default='postgres', description='Database user')
    password: str = Field(default='postgres', description='Database password')
    pool_size: int = Field(default=10, description='Connection pool size')
    max_overflow: int = Field(default=20, description='Max overflow connections')
    echo_sql: bool = Field(default=False, description='Echo SQL queries')
    dsn: Optional[str] = Field(default=None, description='Full asyncpg URL; overrides the parts above')

    @property
    def url(self) -> str:
        if self.dsn:
            return self.dsn
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"


class RedisSettings(BaseSettings):
    """Redis configuration for session publishing."""

    model_config = SettingsConfigDict(
        env_prefix='REDIS_',
        env_file='.env',
        extra='ignore'
    )

    host: str = Field(default='localhost', description='Redis host')
    port: int = Field(default=6379, description='Redis port')
    db: int = Field(default=0, description='Redis database number')
    password: Optional[str] = Field(default=None, description='Redis password')
    ssl: bool = Field(default=False, description='Use SSL connection')

    publish_sessions: bool = Field(default=True, description='Publish finalized sessions')
    session_stream: str = Field(default='sessions', description='Stream for finalized sessions')
    stream_max_len: int = Field(default=10000, description='Max stream length')

    @property
    def url(self) -> str:
        """Build Redis URL."""
        auth = f":{self.password}@" if self.password else ""
        protocol = "rediss" if self.ssl else "redis"
        return f"{protocol}://{auth}{self.host}:{self.port}/{self.db}"


class AggregationSettings(BaseSettings):
    """Rollup pipeline configuration."""

    model_config = SettingsConfigDict(
        env_prefix='AGGREGATION_',
        env_file='.env',
        extra='ignore'
    )

    min_date: date = Field(default=date(2025, 1, 1), description='Earliest date range ops may touch')
    recent_window_days: int = Field(default=7, description='Window used to find systems with recent data')
    bucket_minutes: int = Field(default=5, description='Fine-grained bucket size in minutes')


class SeriesSettings(BaseSettings):
    """Series resolution configuration."""

    model_config = SettingsConfigDict(
        env_prefix='SERIES_',
        env_file='.env',
        extra='ignore'
    )

    cache_ttl_seconds: float = Field(default=60.0, description='Series cache TTL')
    max_filter_length: int = Field(default=200, description='Max length of one filter pattern')


class SyncSettings(BaseSettings):
    """Vendor synchronization configuration."""

    model_config = SettingsConfigDict(
        env_prefix='SYNC_',
        env_file='.env',
        extra='ignore'
    )

    max_days: int = Field(default=30, description='Max days per sync request')
    vendor_interval_minutes: int = Field(default=30, description='Vendor interval length')
    vendor_offset_minutes: int = Field(default=600, description='Fixed UTC offset of vendor days')
    vendor_timeout_seconds: float = Field(default=60.0, description='Timeout for one vendor call')
    sample_records_per_point: int = Field(default=2, description='Sample records kept per point')
    canonical_point_keys: List[str] = Field(
        default=['E1.perKwh', 'grid.renewables'],
        description='Point keys rendered in the canonical display'
    )
    pricing_point_keys: List[str] = Field(
        default=['grid.spotPerKwh', 'grid.renewables'],
        description='Local point keys that show pricing data is present'
    )


class WorkerSettings(BaseSettings):
    """Background worker configuration."""

    model_config = SettingsConfigDict(
        env_prefix='WORKER_',
        env_file='.env',
        extra='ignore'
    )

    daily_aggregation_enabled: bool = Field(default=True)
    daily_aggregation_hour_utc: int = Field(default=14, description='Hour (UTC) after which yesterday is rolled up')
    check_interval_seconds: int = Field(default=300, description='How often the worker wakes up')


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    # Application
    app_name: str = Field(default='Energy Monitor')
    app_version: str = Field(default='1.0.0')
    debug: bool = Field(default=False)
    environment: str = Field(default='development')

    # API
    api_prefix: str = Field(default='/api')
    api_version: str = Field(default='v1')

    # Logging
    log_level: str = Field(default='INFO')

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    aggregation: AggregationSettings = Field(default_factory=AggregationSettings)
    series: SeriesSettings = Field(default_factory=SeriesSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    workers: WorkerSettings = Field(default_factory=WorkerSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get cached application settings.

    Sections read their own env prefixes, e.g. SYNC_MAX_DAYS or WORKER_DAILY_AGGREGATION_HOUR_UTC.
    """
    return AppSettings()
