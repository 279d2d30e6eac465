"""
Domain Models - Type-safe data structures for the query engine

This package contains dataclasses representing engine concepts:
    - systems: ExternalSystem, QueryMethod, AuthType, ProtocolType
    - queries: CustomQuery, QueryExecutionResult, ExecutionLogEntry
    - transforms: typed transform AST and AggregationSpec

Usage:
    from query_engine.domain import ExternalSystem

    system = ExternalSystem.from_dict(record)
    for name, method in system.query_methods.items():
        print(name, method.type)
"""

from .queries import (
    CustomQuery,
    ErrorDescriptor,
    ExecutionLogEntry,
    ExecutionMetadata,
    ExecutionStatus,
    QueryExecutionResult,
    Visibility,
)
from .systems import (
    AuthConfig,
    AuthType,
    ConnectionConfig,
    ExternalSystem,
    HealthCheckConfig,
    ProtocolType,
    QueryMethod,
    TransformConfig,
)
from .transforms import AggregationSpec, MetricSpec, Predicate, SortKey, parse_transform

__all__ = [
    # Systems
    "ExternalSystem",
    "AuthConfig",
    "AuthType",
    "ConnectionConfig",
    "HealthCheckConfig",
    "ProtocolType",
    "QueryMethod",
    "TransformConfig",
    # Queries
    "CustomQuery",
    "Visibility",
    "ExecutionStatus",
    "ErrorDescriptor",
    "ExecutionMetadata",
    "QueryExecutionResult",
    "ExecutionLogEntry",
    # Transforms
    "AggregationSpec",
    "MetricSpec",
    "Predicate",
    "SortKey",
    "parse_transform",
]
