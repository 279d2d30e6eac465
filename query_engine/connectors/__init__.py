"""
Connectors to external systems: auth headers, system registry, protocol
executors and the dispatcher that routes between them.
"""

from .auth_headers import build_auth_headers, redact_headers
from .dispatcher import QueryDispatcher, resolve_method
from .executors import (
    CustomExecutor,
    ExecutionRequest,
    GraphQLExecutor,
    HttpGetExecutor,
    HttpPostExecutor,
    ProtocolExecutor,
    SqlExecutor,
    default_executors,
)
from .parameters import substitute_parameters
from .registry import SystemConfig, SystemRegistry

__all__ = [
    "build_auth_headers",
    "redact_headers",
    "substitute_parameters",
    "SystemConfig",
    "SystemRegistry",
    "ExecutionRequest",
    "ProtocolExecutor",
    "HttpGetExecutor",
    "HttpPostExecutor",
    "GraphQLExecutor",
    "SqlExecutor",
    "CustomExecutor",
    "default_executors",
    "QueryDispatcher",
    "resolve_method",
]
