"""
SQLAlchemy ORM models.
"""
from .base import Base, metadata
from .energy_model import (
    SystemModel,
    PointInfoModel,
    PointReadingModel,
    PointReadingAgg5mModel,
    PointReadingAgg1dModel,
    SessionModel,
)

__all__ = [
    # Base
    "Base",
    "metadata",
    # Models
    "SystemModel",
    "PointInfoModel",
    "PointReadingModel",
    "PointReadingAgg5mModel",
    "PointReadingAgg1dModel",
    "SessionModel",
]
