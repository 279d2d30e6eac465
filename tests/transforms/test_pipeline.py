"""
Tests for the transform pipeline

Tests cover:
- Parsing declared transforms into AST nodes
- Applying transforms by name and in request order
- Skipping undeclared and malformed transforms
- Map projection and jq/jsonpath passthrough
- Row operations on aggregated envelopes
"""

import pytest

from query_engine.core.exceptions import ValidationError
from query_engine.domain.systems import TransformConfig
from query_engine.domain.transforms import (
    AggregateNode,
    FilterNode,
    LimitNode,
    MapNode,
    SortDirection,
    SortNode,
    parse_transform,
)
from query_engine.transforms.pipeline import apply_node, apply_transformations


def declared(**transforms):
    return {name: TransformConfig.from_dict(name, spec) for name, spec in transforms.items()}


class TestParseTransform:
    """Test declared transform parsing"""

    def test_filter_single_condition(self):
        node = parse_transform(TransformConfig("f", "filter", {"field": "status", "operator": "=", "value": "open"}))

        assert isinstance(node, FilterNode)
        assert node.predicates[0].field == "status"
        assert node.predicates[0].operator.value == "equals"

    def test_filter_condition_list(self):
        node = parse_transform(
            TransformConfig(
                "f",
                "filter",
                {"conditions": [{"field": "a", "operator": ">", "value": 1}, {"field": "b", "operator": "is_null"}]},
            )
        )
        assert len(node.predicates) == 2

    def test_map_fields(self):
        node = parse_transform(TransformConfig("m", "map", {"fields": {"id": "key"}}))
        assert node == MapNode(fields={"id": "key"})

    def test_map_jq_passthrough_node(self):
        node = parse_transform(TransformConfig("m", "map", {"type": "jq", "expression": ".items[]"}))
        assert node.mapping_type == "jq"

    def test_sort_keys(self):
        node = parse_transform(TransformConfig("s", "sort", {"sort": [{"field": "p", "order": "desc"}, "key"]}))

        assert isinstance(node, SortNode)
        assert node.keys[0].direction is SortDirection.DESC
        assert node.keys[1].field == "key"

    def test_sort_single_key_config(self):
        node = parse_transform(TransformConfig("s", "sort", {"field": "p", "direction": "asc"}))
        assert node.keys[0].field == "p"

    def test_limit(self):
        assert parse_transform(TransformConfig("l", "limit", {"count": 3})) == LimitNode(count=3)

    def test_aggregate(self):
        node = parse_transform(
            TransformConfig("a", "aggregate", {"aggregations": {"groupBy": ["s"], "limit": 0}})
        )

        assert isinstance(node, AggregateNode)
        assert node.spec.group_by == ("s",)
        assert node.spec.limit is None

    @pytest.mark.parametrize(
        "transform",
        [
            TransformConfig("x", "pivot", {}),
            TransformConfig("x", "limit", {"count": -1}),
            TransformConfig("x", "map", {"fields": []}),
            TransformConfig("x", "filter", {"conditions": [{"operator": "equals"}]}),
            TransformConfig("x", "filter", {"field": "a", "operator": "like"}),
            TransformConfig("x", "aggregate", {"groupBy": ["a"], "metrics": "count"}),
            TransformConfig("x", "sort", {"sort": [{"field": "a", "direction": "sideways"}]}),
        ],
    )
    def test_malformed_configs_raise(self, transform):
        """Test malformed configs raise ValidationError"""
        with pytest.raises(ValidationError):
            parse_transform(transform)


class TestApplyTransformations:
    """Test named, ordered application"""

    def test_applies_in_request_order(self, issues, jira_system):
        """Test transforms run in the order requested and are reported"""
        data, applied = apply_transformations(issues, ["open_only", "top_two"], jira_system.data_transforms)

        assert [row["id"] for row in data] == [1, 3]
        assert applied == ["open_only", "top_two"]

    def test_order_matters(self, issues, jira_system):
        """Test limit-then-filter differs from filter-then-limit"""
        data, _ = apply_transformations(issues, ["top_two", "open_only"], jira_system.data_transforms)
        assert [row["id"] for row in data] == [1]

    def test_undeclared_names_skipped(self, issues, jira_system, caplog):
        """Test names the system does not declare are skipped with a warning"""
        data, applied = apply_transformations(issues, ["nope", "top_two"], jira_system.data_transforms)

        assert len(data) == 2
        assert applied == ["top_two"]
        assert "not declared" in caplog.text

    def test_malformed_declared_transform_skipped(self, issues, jira_system):
        """Test a declared but malformed transform is skipped"""
        data, applied = apply_transformations(issues, ["broken"], jira_system.data_transforms)

        assert data == issues
        assert applied == []

    def test_aggregate_then_sort_and_limit(self, issues):
        """Test row transforms after aggregation act on aggregated_data"""
        transforms = declared(
            agg={"type": "aggregate", "config": {"groupBy": ["assignee"], "metrics": [{"function": "count", "field": "id"}]}},
            first={"type": "limit", "config": {"count": 1}},
        )

        data, applied = apply_transformations(issues, ["agg", "first"], transforms)

        assert applied == ["agg", "first"]
        assert data["aggregated_data"] == [{"assignee": "ana", "count_id": 2, "_group_size": 2}]
        assert data["processed_records"] == 1
        assert data["total_records"] == 5

    def test_no_transformations(self, issues):
        """Test None/empty names return the data unchanged"""
        assert apply_transformations(issues, None, {}) == (issues, [])


class TestApplyNode:
    """Test individual node evaluation"""

    def test_map_list_of_rows(self, issues):
        data = apply_node(issues, MapNode(fields={"ticket": "key", "who": "assignee"}))
        assert data[0] == {"ticket": "CORE-1", "who": "ana"}

    def test_map_single_object(self):
        data = apply_node({"data": {"id": 9, "name": "x"}}, MapNode(fields={"id": "data.id"}))
        assert data == {"id": 9}

    def test_jsonpath_mapping_passes_through(self, issues, caplog):
        """Test unsupported mapping languages leave data unchanged with a warning"""
        data = apply_node(issues, MapNode(mapping_type="jsonpath", expression="$.items[*]"))

        assert data == issues
        assert "jsonpath mapping is not supported" in caplog.text

    def test_row_ops_ignore_scalars(self):
        """Test filter/sort/limit leave non-list payloads unchanged"""
        assert apply_node({"total": 3}, LimitNode(count=1)) == {"total": 3}
        assert apply_node("text", LimitNode(count=1)) == "text"
