"""
Transform Pipeline

Applies a system's declared transforms, by name and in request order, to a
raw payload.

Usage:
    from query_engine.transforms.pipeline import apply_transformations

    data, applied = apply_transformations(payload, ["open_only", "by_status"], system.data_transforms)
"""

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from query_engine.core.exceptions import ValidationError
from query_engine.core.logging_config import get_logger
from query_engine.domain.systems import TransformConfig
from query_engine.domain.transforms import (
    AggregateNode,
    FilterNode,
    LimitNode,
    MapNode,
    SortNode,
    TransformNode,
    parse_transform,
)
from query_engine.transforms.aggregation import aggregate, is_aggregated
from query_engine.transforms.operations import filter_rows, project, sort_rows
from query_engine.utils.error_handling import log_and_continue

logger = get_logger(__name__)


def _on_rows(data: Any, operation: Callable[[list[Any]], list[Any]], node_type: str) -> Any:
    """Apply a row operation to a list, or to the rows of an aggregated envelope."""
    if isinstance(data, list):
        return operation(data)
    if is_aggregated(data):
        rows = operation(data["aggregated_data"])
        return {**data, "aggregated_data": rows, "processed_records": len(rows)}

    logger.debug(f"{node_type} transform skipped: payload is not a list", extra={"payload_type": type(data).__name__})
    return data


def _apply_map(data: Any, node: MapNode) -> Any:
    if node.mapping_type != "fields":
        logger.warning(
            f"{node.mapping_type} mapping is not supported, passing data through unchanged",
            extra={"mapping_type": node.mapping_type, "expression": node.expression},
        )
        return data
    if isinstance(data, dict) and not is_aggregated(data):
        return project(data, node.fields)
    return _on_rows(data, lambda rows: [project(row, node.fields) for row in rows], "Map")


def apply_node(data: Any, node: TransformNode) -> Any:
    """Evaluate one parsed transform against a payload."""
    if isinstance(node, FilterNode):
        return _on_rows(data, lambda rows: filter_rows(rows, node.predicates), "Filter")
    if isinstance(node, MapNode):
        return _apply_map(data, node)
    if isinstance(node, SortNode):
        return _on_rows(data, lambda rows: sort_rows(rows, node.keys), "Sort")
    if isinstance(node, LimitNode):
        return _on_rows(data, lambda rows: rows[: node.count], "Limit")
    if isinstance(node, AggregateNode):
        return aggregate(data, node.spec)
    raise TypeError(f"Unhandled transform node: {type(node).__name__}")


def apply_transformations(
    data: Any,
    names: Sequence[str] | None,
    declared: Mapping[str, TransformConfig],
) -> tuple[Any, list[str]]:
    """
    Apply declared transforms in the order requested.

    Names the system does not declare, and declared transforms whose config
    is malformed, are logged and skipped.

    Args:
        data: Extracted upstream payload
        names: Transform names requested by the caller
        declared: The system's data_transforms

    Returns:
        (transformed data, names actually applied)
    """
    applied: list[str] = []
    for name in names or []:
        transform = declared.get(name)
        if transform is None:
            logger.warning(
                "Transformation not declared on system, skipping",
                extra={"transformation": name, "declared": list(declared)},
            )
            continue

        try:
            node = parse_transform(transform)
        except ValidationError as e:
            log_and_continue(logger, e, {"transformation": name, "type": transform.type}, "Transform parsing")
            continue

        data = apply_node(data, node)
        applied.append(name)
        logger.debug("Applied transformation", extra={"transformation": name, "type": transform.type})

    return data, applied
