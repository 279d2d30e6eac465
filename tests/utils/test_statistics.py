"""
Tests for statistics module

Tests numeric coercion and the mean/median helpers behind aggregation metrics.
"""

import pytest

from query_engine.utils.statistics import calculate_mean, calculate_median, is_number, numeric_values, to_number


class TestToNumber:
    """Tests for to_number function."""

    @pytest.mark.parametrize(
        "value,expected",
        [(3, 3), (2.5, 2.5), ("4", 4), (" 4.5 ", 4.5), ("1e3", 1000.0), ("-2", -2)],
    )
    def test_numeric_values(self, value, expected):
        """Test ints, floats and numeric strings coerce."""
        assert to_number(value) == expected

    @pytest.mark.parametrize("value", [None, True, False, "", "open", "nan", "inf", float("nan"), [], {}])
    def test_non_numeric_values(self, value):
        """Test null, bools and non-numeric values are not numbers."""
        assert to_number(value) is None

    def test_integer_string_stays_int(self):
        assert isinstance(to_number("7"), int)
        assert isinstance(to_number("7.0"), float)


class TestIsNumber:
    """Tests for is_number function."""

    def test_only_real_numbers(self):
        assert is_number(1) and is_number(1.5)
        assert not is_number(True)
        assert not is_number("1")


class TestNumericValues:
    """Tests for numeric_values function."""

    def test_filters_and_coerces(self):
        """Test non-numbers are dropped and numeric strings converted."""
        assert numeric_values(["3", 4, None, "n/a", 2.5, False]) == [3, 4, 2.5]


class TestMeanAndMedian:
    """Tests for calculate_mean and calculate_median."""

    def test_mean(self):
        assert calculate_mean([1, 2, 3, 4]) == 2.5

    def test_mean_empty_is_zero(self):
        """Test empty mean is 0 rather than NaN."""
        assert calculate_mean([]) == 0

    def test_median_odd_count(self):
        """Test median with an odd number of values."""
        assert calculate_median([5, 1, 3]) == 3

    def test_median_even_count(self):
        """Test median with an even number of values averages the middle pair."""
        assert calculate_median([1.0, 2.0, 3.0, 4.0]) == 2.5

    def test_median_empty_is_none(self):
        assert calculate_median([]) is None
