"""
Dot-path field lookup used for payload extraction and row field access.

Not a JSONPath implementation: segments are dict keys, or list indexes when
the current value is a list and the segment is an integer.
"""

from typing import Any


def get_nested_value(obj: Any, path: str | None) -> Any:
    """
    Resolve a dot-path like "data.issues" or "fields.status.name" into obj.

    Args:
        obj: Decoded JSON value
        path: Dot-separated path; empty or None returns obj unchanged

    Returns:
        The value at path, or None when any segment is missing

    Example:
        >>> get_nested_value({"data": {"items": [{"id": 7}]}}, "data.items.0.id")
        7
    """
    if not path:
        return obj

    current = obj
    for segment in path.split("."):
        if isinstance(current, dict):
            current = current.get(segment)
        elif isinstance(current, list) and segment.lstrip("-").isdigit():
            index = int(segment)
            current = current[index] if -len(current) <= index < len(current) else None
        else:
            return None

        if current is None:
            return None

    return current
