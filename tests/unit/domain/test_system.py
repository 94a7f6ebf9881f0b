"""
Unit tests for systems and composite metadata.
"""
from datetime import date, datetime, timezone

import pytest

from energy_monitor.domain.entities.system import (
    CompositeMetadataV2,
    PointReference,
    UnsupportedCompositeMetadata,
    parse_composite_metadata,
)

from factories import CompositeSystemFactory, SystemFactory


class TestPointReference:
    """Tests for "systemId.pointIndex" parsing."""

    def test_parse(self):
        assert PointReference.parse("12.3") == PointReference(system_id=12, point_index=3)

    @pytest.mark.parametrize("raw", ["12", "1.2.3", "a.b", "", None, 12])
    def test_malformed_returns_none(self, raw):
        assert PointReference.parse(raw) is None

    def test_str(self):
        assert str(PointReference(5, 1)) == "5.1"


class TestCompositeMetadata:
    """Tests for version-tagged metadata."""

    def test_version_2(self):
        metadata = parse_composite_metadata({
            "version": 2,
            "mappings": {"solar": ["1.1", "2.1"], "battery": ["1.2"]},
        })

        assert isinstance(metadata, CompositeMetadataV2)
        assert [str(ref) for ref in metadata.references()] == ["1.1", "2.1", "1.2"]

    def test_malformed_references_are_dropped(self):
        metadata = parse_composite_metadata({
            "version": 2,
            "mappings": {"solar": ["1.1", "bogus", "3"]},
        })

        assert [str(ref) for ref in metadata.references()] == ["1.1"]

    @pytest.mark.parametrize("raw", [
        None,
        {"mappings": {"solar": ["1.1"]}},
        {"version": 1, "mappings": {"solar": ["1.1"]}},
        {"version": 2, "mappings": ["1.1"]},
    ])
    def test_unsupported(self, raw):
        assert isinstance(parse_composite_metadata(raw), UnsupportedCompositeMetadata)


class TestSystem:
    """Tests for system helpers."""

    def test_composite_flag(self):
        assert CompositeSystemFactory().is_composite
        assert not SystemFactory().is_composite

    def test_today_uses_system_offset(self):
        system = SystemFactory(timezone_offset_min=600)
        now = datetime(2025, 6, 1, 15, 0, tzinfo=timezone.utc)

        assert system.today(now) == date(2025, 6, 2)
        assert system.yesterday(now) == date(2025, 6, 1)

    def test_negative_offset(self):
        system = SystemFactory(timezone_offset_min=-300)
        now = datetime(2025, 6, 1, 2, 0, tzinfo=timezone.utc)

        assert system.today(now) == date(2025, 5, 31)
