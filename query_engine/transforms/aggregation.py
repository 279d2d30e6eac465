"""
Aggregation

Declarative group-by and metrics over a list of records:

    filters -> group (optional) -> metrics -> sort -> limit

Usage:
    from query_engine.domain.transforms import AggregationSpec
    from query_engine.transforms.aggregation import aggregate

    spec = AggregationSpec.from_dict({
        "groupBy": ["status"],
        "metrics": [{"function": "count", "field": "id", "alias": "total"}],
        "sort": [{"field": "total", "direction": "desc"}],
    })
    envelope = aggregate(issues, spec)
    # {"aggregated_data": [{"status": "open", "total": 3, "_group_size": 3}, ...],
    #  "total_records": 5, "processed_records": 2, "aggregation_summary": {...}}
"""

from collections.abc import Callable, Sequence
from typing import Any

from query_engine.core.logging_config import get_logger
from query_engine.domain.transforms import AggregationSpec, MetricFunction, MetricSpec
from query_engine.transforms.operations import filter_rows, sort_rows
from query_engine.utils.error_handling import log_and_return_default
from query_engine.utils.field_paths import get_nested_value
from query_engine.utils.statistics import calculate_mean, calculate_median, numeric_values

logger = get_logger(__name__)

GROUP_KEY_SEPARATOR = "|"
GROUP_SIZE_FIELD = "_group_size"
ROW_CONTAINER_KEYS = ("results", "issues")


def is_aggregated(data: Any) -> bool:
    return isinstance(data, dict) and "aggregated_data" in data and "aggregation_summary" in data


def coerce_rows(data: Any) -> list[Any]:
    """
    Rows to aggregate: a list as-is, the list under "results"/"issues" of an
    object, otherwise the single value as a one-row list.
    """
    if data is None:
        return []
    if isinstance(data, list):
        return list(data)
    if isinstance(data, dict):
        for key in ROW_CONTAINER_KEYS:
            if isinstance(data.get(key), list):
                return list(data[key])
    return [data]


def _values(rows: Sequence[Any], field: str) -> list[Any]:
    return [get_nested_value(row, field) for row in rows]


def _count(rows: Sequence[Any], metric: MetricSpec) -> int:
    return len(rows)


def _count_distinct(rows: Sequence[Any], metric: MetricSpec) -> int:
    hashable: set[Any] = set()
    unhashable: list[Any] = []
    for value in _values(rows, metric.field):
        try:
            hashable.add(value)
        except TypeError:
            # dicts and lists from nested payloads
            if value not in unhashable:
                unhashable.append(value)
    return len(hashable) + len(unhashable)


def _sum(rows: Sequence[Any], metric: MetricSpec) -> float:
    return sum(numeric_values(_values(rows, metric.field)))


def _avg(rows: Sequence[Any], metric: MetricSpec) -> float:
    return calculate_mean(numeric_values(_values(rows, metric.field)))


def _min(rows: Sequence[Any], metric: MetricSpec) -> float | None:
    values = numeric_values(_values(rows, metric.field))
    return min(values) if values else None


def _max(rows: Sequence[Any], metric: MetricSpec) -> float | None:
    values = numeric_values(_values(rows, metric.field))
    return max(values) if values else None


def _median(rows: Sequence[Any], metric: MetricSpec) -> float | None:
    return calculate_median(numeric_values(_values(rows, metric.field)))


def _concat(rows: Sequence[Any], metric: MetricSpec) -> str:
    return metric.separator.join(str(value) for value in _values(rows, metric.field) if value is not None)


METRICS: dict[MetricFunction, Callable[[Sequence[Any], MetricSpec], Any]] = {
    MetricFunction.COUNT: _count,
    MetricFunction.COUNT_DISTINCT: _count_distinct,
    MetricFunction.SUM: _sum,
    MetricFunction.AVG: _avg,
    MetricFunction.MIN: _min,
    MetricFunction.MAX: _max,
    MetricFunction.MEDIAN: _median,
    MetricFunction.CONCAT: _concat,
}


def compute_metric(rows: Sequence[Any], metric: MetricSpec) -> Any:
    """
    Compute one metric over rows. Unknown functions log a warning and yield None.
    """
    kind = metric.kind
    if kind is None:
        logger.warning(
            f"Unknown aggregation function: {metric.function}",
            extra={"function": metric.function, "field": metric.field},
        )
        return None

    try:
        return METRICS[kind](rows, metric)
    except (TypeError, ValueError) as e:
        return log_and_return_default(
            logger, e, {"metric": metric.label, "output": metric.output_name}, None, "Metric computation"
        )


def compute_metrics(rows: Sequence[Any], metrics: Sequence[MetricSpec]) -> dict[str, Any]:
    return {metric.output_name: compute_metric(rows, metric) for metric in metrics}


def _group_key(row: Any, group_by: Sequence[str]) -> str:
    parts = []
    for field in group_by:
        value = get_nested_value(row, field)
        parts.append("" if value is None else str(value))
    return GROUP_KEY_SEPARATOR.join(parts)


def group_rows(rows: Sequence[Any], group_by: Sequence[str], metrics: Sequence[MetricSpec]) -> list[dict[str, Any]]:
    """One output row per distinct group key, in first-seen order."""
    buckets: dict[str, list[Any]] = {}
    for row in rows:
        buckets.setdefault(_group_key(row, group_by), []).append(row)

    grouped = []
    for members in buckets.values():
        record = {field: get_nested_value(members[0], field) for field in group_by}
        record.update(compute_metrics(members, metrics))
        record[GROUP_SIZE_FIELD] = len(members)
        grouped.append(record)
    return grouped


def aggregate(data: Any, spec: AggregationSpec) -> Any:
    """
    Run an aggregation over a payload.

    An already-aggregated envelope is returned unchanged, so aggregating twice
    is a no-op.

    Returns:
        Envelope with aggregated_data, total_records, processed_records and
        aggregation_summary
    """
    if is_aggregated(data):
        logger.debug("Payload is already aggregated, returning unchanged")
        return data

    rows = coerce_rows(data)
    processed = filter_rows(rows, spec.filters) if spec.filters else rows

    if spec.group_by:
        processed = group_rows(processed, spec.group_by, spec.metrics)
    elif spec.metrics:
        processed = [compute_metrics(processed, spec.metrics)]

    if spec.sort:
        processed = sort_rows(processed, spec.sort)

    if spec.limit:
        processed = processed[: spec.limit]

    return {
        "aggregated_data": processed,
        "total_records": len(rows),
        "processed_records": len(processed),
        "aggregation_summary": {
            "grouped_by": list(spec.group_by),
            "metrics_calculated": [metric.label for metric in spec.metrics],
            "filters_applied": len(spec.filters),
            "sorted_by": [key.to_dict() for key in spec.sort],
            "limited_to": spec.limit,
        },
    }
