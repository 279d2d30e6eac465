"""
Row operations shared by the transform pipeline and the aggregator.

All functions are pure: they never mutate their input rows.
"""

import functools
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from query_engine.domain.transforms import FilterOperator, Predicate, SortDirection, SortKey
from query_engine.utils.field_paths import get_nested_value
from query_engine.utils.statistics import is_number, to_number


def _text(value: Any) -> str:
    return str(value).casefold()


def _equals(left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        return left.casefold() == right.casefold()
    if isinstance(left, bool) or isinstance(right, bool):
        return left == right
    left_number, right_number = to_number(left), to_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    return left == right


def _compare_numbers(left: Any, right: Any, test: Callable[[float, float], bool]) -> bool:
    left_number, right_number = to_number(left), to_number(right)
    if left_number is None or right_number is None:
        return False
    return test(left_number, right_number)


def _contains(value: Any, needle: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, list):
        return any(_equals(item, needle) for item in value)
    return _text(needle) in _text(value)


def _members(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


OPERATORS: dict[FilterOperator, Callable[[Any, Any], bool]] = {
    FilterOperator.EQUALS: _equals,
    FilterOperator.NOT_EQUALS: lambda v, x: not _equals(v, x),
    FilterOperator.CONTAINS: _contains,
    FilterOperator.NOT_CONTAINS: lambda v, x: not _contains(v, x),
    FilterOperator.STARTS_WITH: lambda v, x: v is not None and _text(v).startswith(_text(x)),
    FilterOperator.ENDS_WITH: lambda v, x: v is not None and _text(v).endswith(_text(x)),
    FilterOperator.GREATER_THAN: lambda v, x: _compare_numbers(v, x, lambda a, b: a > b),
    FilterOperator.LESS_THAN: lambda v, x: _compare_numbers(v, x, lambda a, b: a < b),
    FilterOperator.GREATER_EQUAL: lambda v, x: _compare_numbers(v, x, lambda a, b: a >= b),
    FilterOperator.LESS_EQUAL: lambda v, x: _compare_numbers(v, x, lambda a, b: a <= b),
    FilterOperator.IN: lambda v, x: any(_equals(v, member) for member in _members(x)),
    FilterOperator.NOT_IN: lambda v, x: not any(_equals(v, member) for member in _members(x)),
    FilterOperator.IS_NULL: lambda v, x: v is None,
    FilterOperator.IS_NOT_NULL: lambda v, x: v is not None,
}


def evaluate(row: Any, predicate: Predicate) -> bool:
    """
    Test one row against one predicate.

    String comparisons ignore case. Ordering operators compare numerically
    and are false when either side is not a number.
    """
    return OPERATORS[predicate.operator](get_nested_value(row, predicate.field), predicate.value)


def filter_rows(rows: Iterable[Any], predicates: Sequence[Predicate]) -> list[Any]:
    """Keep rows for which every predicate holds."""
    return [row for row in rows if all(evaluate(row, predicate) for predicate in predicates)]


def project(row: Any, fields: dict[str, str]) -> dict[str, Any]:
    """Build {output_name: value at source dot-path}."""
    return {name: get_nested_value(row, path) for name, path in fields.items()}


def _compare(left: Any, right: Any, key: SortKey) -> int:
    a = get_nested_value(left, key.field)
    b = get_nested_value(right, key.field)

    # nulls sort first ascending, last descending
    if a is None and b is None:
        return 0
    if a is None:
        result = -1
    elif b is None:
        result = 1
    elif is_number(a) and is_number(b):
        result = (a > b) - (a < b)
    else:
        a_text, b_text = str(a), str(b)
        result = (a_text > b_text) - (a_text < b_text)

    return -result if key.direction is SortDirection.DESC else result


def sort_rows(rows: Iterable[Any], keys: Sequence[SortKey]) -> list[Any]:
    """Stable multi-key sort; ties on one key fall through to the next."""

    def compare(left: Any, right: Any) -> int:
        for key in keys:
            result = _compare(left, right, key)
            if result:
                return result
        return 0

    return sorted(rows, key=functools.cmp_to_key(compare))
