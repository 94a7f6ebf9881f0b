"""
Unit tests for series glob filtering.
"""
import pytest

from energy_monitor.domain.exceptions import InvalidFilterException, ValidationException
from energy_monitor.domain.services.series_filter import (
    SeriesFilter,
    split_brace_aware,
    validate_pattern,
)


class TestSplitBraceAware:
    """Tests for comma splitting."""

    def test_splits_top_level_commas(self):
        assert split_brace_aware("source.solar/*,bidi.battery/soc.{avg,min}") == [
            "source.solar/*",
            "bidi.battery/soc.{avg,min}",
        ]

    def test_trims_and_drops_empty_parts(self):
        assert split_brace_aware(" a/* , ,b/* ") == ["a/*", "b/*"]

    def test_single_pattern(self):
        assert split_brace_aware("**/power.avg") == ["**/power.avg"]


class TestValidatePattern:
    """Tests for pattern validation errors."""

    @pytest.mark.parametrize("pattern,error", [
        ("", "Empty pattern"),
        ("invalid$pattern", "Invalid characters in pattern"),
        ("source.solar/power.{avg", "Unmatched opening brace"),
        ("source.solar}/power", "Unmatched closing brace"),
    ])
    def test_rejects(self, pattern, error):
        with pytest.raises(InvalidFilterException) as exc_info:
            validate_pattern(pattern)

        assert exc_info.value.error == error
        assert exc_info.value.code == "INVALID_FILTER"
        assert exc_info.value.details["pattern"] == pattern

    def test_rejects_long_pattern(self):
        with pytest.raises(InvalidFilterException) as exc_info:
            validate_pattern("a" * 21, max_length=20)

        assert exc_info.value.error == "Pattern too long"

    def test_invalid_characters_are_listed(self):
        with pytest.raises(InvalidFilterException) as exc_info:
            validate_pattern("invalid$pattern")

        assert '"$"' in exc_info.value.errors["filter"][0]

    def test_filter_error_is_a_validation_error(self):
        with pytest.raises(ValidationException):
            validate_pattern("a b")

    def test_accepts_valid_pattern(self):
        validate_pattern("**/{power,soc}.avg")


class TestSeriesFilter:
    """Tests for parsing and matching."""

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_means_no_filter(self, raw):
        assert SeriesFilter.parse(raw) is None

    def test_parse_rejects_any_bad_pattern(self):
        with pytest.raises(InvalidFilterException):
            SeriesFilter.parse("source.solar/*,invalid$pattern")

    def test_star_stays_within_segment(self):
        series_filter = SeriesFilter.parse("source.solar/*")

        assert series_filter.matches("source.solar/power.avg")
        assert series_filter.matches("source.solar/power.last")
        assert not series_filter.matches("source.solar.extra/power.avg")
        assert not series_filter.matches("bidi.battery/soc.last")

    def test_globstar_spans_segments(self):
        series_filter = SeriesFilter.parse("**/power.avg")

        assert series_filter.matches("source.solar/power.avg")
        assert not series_filter.matches("source.solar/power.last")

    def test_braces_alternate(self):
        series_filter = SeriesFilter.parse("bidi.battery/soc.{avg,min}")

        assert series_filter.matches("bidi.battery/soc.avg")
        assert series_filter.matches("bidi.battery/soc.min")
        assert not series_filter.matches("bidi.battery/soc.last")

    def test_patterns_are_ored(self):
        series_filter = SeriesFilter.parse("source.solar/*,*/soc.last")

        assert series_filter.matches("source.solar/power.avg")
        assert series_filter.matches("bidi.battery/soc.last")
        assert not series_filter.matches("load.grid/energy.delta")

    def test_from_patterns(self):
        assert SeriesFilter.from_patterns([]) is None
        series_filter = SeriesFilter.from_patterns([" */energy.delta "])
        assert series_filter.patterns == ("*/energy.delta",)
        assert series_filter.matches("load.grid/energy.delta")
