"""Tests for maptext/coordinates.py: two-decimal formatting and tolerant parsing."""
from __future__ import annotations

import math

import pytest

from maptext.coordinates import (
    check_quad,
    clamp_unit,
    format_coordinate,
    format_label,
    format_pair,
    format_quad,
    parse_pair,
    parse_quad,
    parse_single,
    parse_values,
    quad_is_degenerate,
    round_coordinate,
    validate_quad,
)


class TestFormatting:
    def test_two_decimals(self):
        assert format_coordinate(0.5) == "0.50"
        assert format_coordinate(0.123456) == "0.12"

    def test_clamps(self):
        assert format_coordinate(1.7) == "1.00"
        assert format_coordinate(-0.2) == "0.00"

    def test_integers_accepted(self):
        assert format_coordinate(1) == "1.00"

    @pytest.mark.parametrize("bad", [math.nan, math.inf, "0.5", None, True])
    def test_rejects_non_numbers(self, bad):
        with pytest.raises(ValueError):
            format_coordinate(bad)

    def test_pair(self):
        assert format_pair(0.3, 0.8) == "[0.30, 0.80]"

    def test_quad(self):
        assert format_quad(0.9, 0.1, 0.8, 0.2) == "[0.90, 0.10, 0.80, 0.20]"

    def test_label_offsets_not_clamped(self):
        assert format_label(-10, 20) == "label [-10, 20]"
        assert format_label(2.5, -3) == "label [2.5, -3]"


class TestParsing:
    def test_pair(self):
        assert parse_pair("0.3, 0.8") == (0.3, 0.8)

    def test_pair_defaults_for_missing(self):
        assert parse_pair(None) == (0.9, 0.1)
        assert parse_pair("0.4") == (0.4, 0.1)

    def test_pair_non_numeric_uses_default(self):
        assert parse_pair("abc, 0.6") == (0.9, 0.6)

    def test_pair_clamped(self):
        assert parse_pair("1.4, -2") == (1.0, 0.0)

    def test_values_nan_is_none(self):
        assert parse_values("nan, 0.5") == [None, 0.5]

    def test_quad(self):
        assert parse_quad("0.9, 0.1, 0.7, 0.3") == (0.9, 0.1, 0.7, 0.3)

    def test_single(self):
        assert parse_single("0.65", 0.2) == 0.65
        assert parse_single("", 0.2) == 0.2

    @pytest.mark.parametrize("visibility,maturity", [
        (0.123, 0.987), (0.005, 0.995), (0.3333, 0.6667), (1.0, 0.0), (0.456, 0.554),
    ])
    def test_round_trip_within_rounding_tolerance(self, visibility, maturity):
        text = format_pair(visibility, maturity)
        parsed = parse_pair(text.strip("[]"))
        assert abs(parsed[0] - visibility) <= 0.005 + 1e-9
        assert abs(parsed[1] - maturity) <= 0.005 + 1e-9


class TestQuadValidation:
    def test_valid_box(self):
        assert validate_quad(0.9, 0.1, 0.7, 0.3) is None

    def test_maturity_order(self):
        assert "maturity2" in validate_quad(0.9, 0.5, 0.7, 0.3)

    def test_visibility_order(self):
        assert "visibility1" in validate_quad(0.5, 0.1, 0.7, 0.3)

    def test_out_of_range(self):
        assert validate_quad(1.5, 0.1, 0.7, 0.3) is not None

    def test_degenerate(self):
        assert quad_is_degenerate(0.9, 0.1, 0.895, 0.3)
        assert not quad_is_degenerate(0.9, 0.1, 0.7, 0.3)

    def test_one_step_extent_is_not_degenerate(self):
        # 0.15 - 0.14 evaluates just below 0.01
        assert not quad_is_degenerate(0.9, 0.14, 0.7, 0.15)
        assert not quad_is_degenerate(0.58, 0.1, 0.57, 0.3)

    def test_round_coordinate(self):
        assert round_coordinate(0.126) == 0.13
        assert round_coordinate(1.2) == 1.0
        assert round_coordinate(-0.3) == 0.0

    def test_check_quad_valid(self):
        assert check_quad(0.9, 0.1, 0.7, 0.3) is None
        assert check_quad(0.9, 0.14, 0.7, 0.15) is None

    def test_check_quad_rounds_first(self):
        # Ordered as given, but both visibilities are written as 0.90
        assert validate_quad(0.9, 0.1, 0.896, 0.3) is None
        assert "visibility1" in check_quad(0.9, 0.1, 0.896, 0.3)
        assert "maturity2" in check_quad(0.9, 0.1, 0.7, 0.104)

    def test_check_quad_rejects_non_numbers(self):
        assert check_quad(0.9, "0.1", 0.7, 0.3) == "coordinates must be numbers"
        assert check_quad(0.9, float("nan"), 0.7, 0.3) == "coordinates must be numbers"

    def test_clamp_unit(self):
        assert clamp_unit(2) == 1.0
        assert clamp_unit(-1) == 0.0
