"""
Statistics Utilities

Numeric helpers shared by the aggregation metrics.

Usage:
    from query_engine.utils.statistics import calculate_median, numeric_values

    values = numeric_values(["3", 4, None, "n/a"])  # [3, 4]
    median = calculate_median(values)
"""

import math
from collections.abc import Iterable, Sequence
from typing import Any


def to_number(value: Any) -> float | int | None:
    """
    Coerce a value to a number, or None if it is not numeric.

    Booleans, None, NaN and non-numeric strings are not numbers. Numeric
    strings ("3", " 4.5 ") are.

    Example:
        >>> to_number("4.5")
        4.5
        >>> to_number("open") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        return None if math.isnan(value) else value

    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            number = float(stripped)
        except ValueError:
            return None
        if math.isnan(number) or math.isinf(number):
            return None
        return int(number) if number.is_integer() and "." not in stripped and "e" not in stripped.lower() else number

    return None


def is_number(value: Any) -> bool:
    """True for int/float values (not bools, not numeric strings)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def numeric_values(values: Iterable[Any]) -> list[float | int]:
    """Keep the values that coerce to numbers, coerced."""
    result = []
    for value in values:
        number = to_number(value)
        if number is not None:
            result.append(number)
    return result


def calculate_mean(data: Sequence[float]) -> float:
    """
    Arithmetic mean; 0 for empty input (never NaN).

    Example:
        >>> calculate_mean([])
        0
    """
    if not data:
        return 0
    return sum(data) / len(data)


def calculate_median(data: Sequence[float]) -> float | None:
    """
    Median value; mean of the two middle values on even-length input.

    Returns:
        Median, or None for empty input

    Example:
        >>> calculate_median([1, 2, 3, 4])
        2.5
        >>> calculate_median([3, 1, 2])
        2
    """
    if not data:
        return None

    sorted_data = sorted(data)
    n = len(sorted_data)
    mid = n // 2

    if n % 2 == 0:
        return (sorted_data[mid - 1] + sorted_data[mid]) / 2
    return sorted_data[mid]
