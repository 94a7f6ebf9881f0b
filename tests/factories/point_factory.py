"""
Point-related test data factories.
"""
from datetime import datetime, timezone

import factory

from energy_monitor.domain.entities.point import PointInfo, PointMetadata


class PointInfoFactory(factory.Factory):
    """
    Factory for point definitions.

    Usage:
        point = PointInfoFactory(metric_type="soc", type="bidi", subtype="battery")
    """

    class Meta:
        model = PointInfo

    system_id = 1
    index = factory.Sequence(lambda n: n + 1)
    origin_id = factory.Sequence(lambda n: f"P{n}")
    default_name = factory.LazyAttribute(lambda o: f"Point {o.origin_id}")
    metric_type = "power"
    metric_unit = "W"
    origin_sub_id = None
    display_name = None
    subsystem = None
    type = None
    subtype = None
    extension = None
    transform = None
    active = True
    created_at = factory.LazyFunction(lambda: datetime.now(timezone.utc))


class PointMetadataFactory(factory.Factory):
    """Factory for vendor point metadata, e.g. the "E1.kwh" usage field."""

    class Meta:
        model = PointMetadata

    origin_id = "E1"
    origin_sub_id = "kwh"
    default_name = "Grid Import"
    metric_type = "energy"
    metric_unit = "kWh"
    type = "load"
    subtype = "grid"
