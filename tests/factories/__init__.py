"""
Test data factories for the energy monitor.

Provides factory classes for generating test data.
"""
from .system_factory import SystemFactory, CompositeSystemFactory
from .point_factory import PointInfoFactory, PointMetadataFactory
from .aggregate_factory import Aggregate5mFactory, VendorReadingFactory

__all__ = [
    "SystemFactory",
    "CompositeSystemFactory",
    "PointInfoFactory",
    "PointMetadataFactory",
    "Aggregate5mFactory",
    "VendorReadingFactory",
]
