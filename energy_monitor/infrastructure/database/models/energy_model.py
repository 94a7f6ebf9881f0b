"""
SQLAlchemy models for systems, points, readings, aggregates and sessions.

Measurement and interval times are stored as Unix milliseconds.
"""
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UnixMillis


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SystemModel(Base):
    """
    A monitored installation.
    """
    __tablename__ = "systems"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_type: Mapped[str] = mapped_column(String(50), nullable=False)
    vendor_site_id: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone_offset_min: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    # Composite mappings live here
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSONB, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_systems_vendor", "vendor_type", "vendor_site_id"),
    )


class PointInfoModel(Base):
    """
    A monitored signal within a system.

    `id` is the point index, unique within its system.
    """
    __tablename__ = "point_info"

    system_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("systems.id", ondelete="CASCADE"), primary_key=True
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Origin identity
    origin_id: Mapped[str] = mapped_column(String(255), nullable=False)
    origin_sub_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Naming
    default_name: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Hierarchy
    subsystem: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    subtype: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    extension: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    metric_type: Mapped[str] = mapped_column(String(50), nullable=False)
    metric_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    transform: Mapped[Optional[str]] = mapped_column(String(1), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # NULLS NOT DISTINCT so points without a sub id still collide
        UniqueConstraint(
            "system_id", "origin_id", "origin_sub_id",
            name="uq_point_info_origin",
            postgresql_nulls_not_distinct=True,
        ),
        Index("idx_point_info_metric_type", "metric_type"),
    )


class PointReadingModel(Base):
    """
    Raw point readings.
    """
    __tablename__ = "point_readings"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    system_id: Mapped[int] = mapped_column(Integer, nullable=False)
    point_id: Mapped[int] = mapped_column(Integer, nullable=False)
    session_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    measurement_time: Mapped[int] = mapped_column(UnixMillis, nullable=False)
    received_time: Mapped[int] = mapped_column(UnixMillis, nullable=False)

    value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    value_str: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    data_quality: Mapped[str] = mapped_column(String(20), nullable=False, default="good")

    __table_args__ = (
        UniqueConstraint("system_id", "point_id", "measurement_time", name="uq_point_readings_point_time"),
        Index("idx_point_readings_system_time", "system_id", "measurement_time"),
        Index("idx_point_readings_session", "session_id"),
    )


class PointReadingAgg5mModel(Base):
    """
    Five-minute aggregates, keyed by the interval end.
    """
    __tablename__ = "point_readings_agg_5m"

    system_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    point_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    interval_end: Mapped[int] = mapped_column(UnixMillis, primary_key=True)

    # Null when every reading in the interval was an error
    avg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    min: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delta: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    sample_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    data_quality: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    session_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_agg_5m_system_time", "system_id", "interval_end"),
    )


class PointReadingAgg1dModel(Base):
    """
    Daily aggregates, where `day` is in the owning system's offset.
    """
    __tablename__ = "point_readings_agg_1d"

    system_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    point_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    day: Mapped[date] = mapped_column(Date, primary_key=True)

    avg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    min: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delta: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    sample_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_agg_1d_day", "day"),
    )


class SessionModel(Base):
    """
    Audit record of one communication session with a vendor.

    `successful` stays null until the session is finalized.
    """
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_label: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    system_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("systems.id", ondelete="CASCADE"), nullable=False, index=True
    )
    vendor_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    system_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    cause: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    started: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    error_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    num_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
