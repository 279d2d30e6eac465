"""
Transform AST

Declared transforms arrive as loosely-typed {type, config} objects. They are
parsed once into the small typed tree below and then interpreted by the pure
functions in query_engine.transforms.

    FilterNode(predicates)     keep rows matching every predicate
    MapNode(fields)            project/rename via dot-paths
    SortNode(keys)             multi-key sort
    LimitNode(count)           keep the first N rows
    AggregateNode(spec)        filter -> group -> metrics -> sort -> limit
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from query_engine.core.exceptions import ValidationError
from query_engine.domain.systems import TransformConfig


class FilterOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_EQUAL = "greater_equal"
    LESS_EQUAL = "less_equal"
    IN = "in"
    NOT_IN = "not_in"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"

    @classmethod
    def parse(cls, value: str) -> "FilterOperator":
        raw = str(value).strip().lower()
        raw = _OPERATOR_ALIASES.get(raw, raw)
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError(f"Unknown filter operator: {value}") from None


_OPERATOR_ALIASES = {
    "=": "equals",
    "==": "equals",
    "!=": "not_equals",
    ">": "greater_than",
    "<": "less_than",
    ">=": "greater_equal",
    "<=": "less_equal",
}


class MetricFunction(str, Enum):
    COUNT = "count"
    COUNT_DISTINCT = "count_distinct"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    MEDIAN = "median"
    CONCAT = "concat"

    @classmethod
    def lookup(cls, value: str) -> "MetricFunction | None":
        """Parse a metric name; unknown names yield None (reported at compute time)."""
        raw = str(value).strip().lower()
        if raw == "average":
            raw = "avg"
        try:
            return cls(raw)
        except ValueError:
            return None


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value: str | None) -> "SortDirection":
        raw = str(value or "asc").strip().lower()
        if raw in ("descending", "-1"):
            raw = "desc"
        elif raw in ("ascending", "1"):
            raw = "asc"
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError(f"Sort direction must be 'asc' or 'desc', got {value!r}") from None


@dataclass(frozen=True)
class Predicate:
    field: str
    operator: FilterOperator
    value: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> "Predicate":
        if not isinstance(data, dict) or not data.get("field"):
            raise ValidationError(f"Filter condition needs a 'field': {data!r}")
        return cls(field=data["field"], operator=FilterOperator.parse(data.get("operator", "equals")), value=data.get("value"))


@dataclass(frozen=True)
class MetricSpec:
    """A metric to compute per group. `function` keeps the declared name."""

    function: str
    field: str = ""
    alias: str | None = None
    separator: str = ", "

    @property
    def kind(self) -> MetricFunction | None:
        return MetricFunction.lookup(self.function)

    @property
    def output_name(self) -> str:
        return self.alias or f"{self.function}_{self.field}"

    @property
    def label(self) -> str:
        return f"{self.function}({self.field})"

    @classmethod
    def from_dict(cls, data: Any) -> "MetricSpec":
        if not isinstance(data, dict) or not data.get("function"):
            raise ValidationError(f"Metric needs a 'function': {data!r}")
        separator = data.get("separator")
        return cls(
            function=str(data["function"]),
            field=str(data.get("field") or ""),
            alias=data.get("alias"),
            separator=", " if separator is None else str(separator),
        )


@dataclass(frozen=True)
class SortKey:
    field: str
    direction: SortDirection = SortDirection.ASC

    @classmethod
    def from_dict(cls, data: Any) -> "SortKey":
        if isinstance(data, str):
            return cls(field=data)
        if not isinstance(data, dict) or not data.get("field"):
            raise ValidationError(f"Sort key needs a 'field': {data!r}")
        return cls(field=data["field"], direction=SortDirection.parse(data.get("direction") or data.get("order")))

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "direction": self.direction.value}


@dataclass(frozen=True)
class AggregationSpec:
    """
    Declarative aggregation. Grouping is optional: without group_by, metrics
    compute over the whole result set into one synthetic row.
    """

    group_by: tuple[str, ...] = ()
    metrics: tuple[MetricSpec, ...] = ()
    filters: tuple[Predicate, ...] = ()
    sort: tuple[SortKey, ...] = ()
    limit: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "AggregationSpec":
        """
        Raises:
            ValidationError: If the spec is malformed
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Aggregation spec must be an object, got {type(data).__name__}")

        group_by = data.get("groupBy", data.get("group_by")) or []
        if isinstance(group_by, str):
            group_by = [group_by]

        limit = data.get("limit")
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
            raise ValidationError(f"Aggregation limit must be a non-negative integer, got {limit!r}")

        return cls(
            group_by=tuple(str(f) for f in _as_list(group_by, "groupBy")),
            metrics=tuple(MetricSpec.from_dict(m) for m in _as_list(data.get("metrics") or [], "metrics")),
            filters=tuple(Predicate.from_dict(f) for f in _as_list(data.get("filters") or [], "filters")),
            sort=tuple(SortKey.from_dict(s) for s in _as_list(data.get("sort") or [], "sort")),
            limit=limit or None,
        )


@dataclass(frozen=True)
class FilterNode:
    predicates: tuple[Predicate, ...]


@dataclass(frozen=True)
class MapNode:
    fields: dict[str, str] = field(default_factory=dict)
    mapping_type: str = "fields"
    expression: str | None = None


@dataclass(frozen=True)
class SortNode:
    keys: tuple[SortKey, ...]


@dataclass(frozen=True)
class LimitNode:
    count: int


@dataclass(frozen=True)
class AggregateNode:
    spec: AggregationSpec


TransformNode = Union[FilterNode, MapNode, SortNode, LimitNode, AggregateNode]

UNSUPPORTED_MAPPING_TYPES = ("jq", "jsonpath")


def parse_transform(transform: TransformConfig) -> TransformNode:
    """
    Parse a declared transform into its typed node.

    Raises:
        ValidationError: If the type is unknown or the config is malformed
    """
    kind = transform.type.strip().lower()
    config = transform.config

    if kind == "filter":
        return FilterNode(predicates=tuple(Predicate.from_dict(c) for c in _filter_conditions(config)))

    if kind == "map":
        mapping_type = str(config.get("type") or "fields").lower()
        if mapping_type in UNSUPPORTED_MAPPING_TYPES:
            return MapNode(mapping_type=mapping_type, expression=config.get("expression"))
        fields = config.get("fields", config.get("mapping"))
        if not isinstance(fields, dict) or not fields:
            raise ValidationError(f"Map transform '{transform.name}' needs a 'fields' object")
        return MapNode(fields={str(k): str(v) for k, v in fields.items()})

    if kind == "sort":
        keys = config.get("sort", config.get("keys"))
        if keys is None:
            keys = [config]
        return SortNode(keys=tuple(SortKey.from_dict(k) for k in _as_list(keys, "sort")))

    if kind == "limit":
        count = config.get("count", config.get("limit"))
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValidationError(f"Limit transform '{transform.name}' needs a non-negative 'count'")
        return LimitNode(count=count)

    if kind == "aggregate":
        return AggregateNode(spec=AggregationSpec.from_dict(config.get("aggregations", config)))

    raise ValidationError(f"Unknown transform type '{transform.type}' for transform '{transform.name}'")


def _filter_conditions(config: dict[str, Any]) -> list[Any]:
    for key in ("conditions", "filters"):
        if key in config:
            return _as_list(config[key], key)
    if "condition" in config:
        return [config["condition"]]
    return [config]


def _as_list(value: Any, name: str) -> list[Any]:
    if not isinstance(value, list):
        raise ValidationError(f"'{name}' must be a list, got {type(value).__name__}")
    return value
