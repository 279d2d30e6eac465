"""
Core Infrastructure - Logging, Observability, Error Taxonomy

This package provides centralized infrastructure utilities that should be used
throughout the engine instead of direct library calls.

Usage:
    from query_engine.core import get_logger, ValidationError

    logger = get_logger(__name__)
"""

from .exceptions import (
    AccessDeniedError,
    AuthenticationError,
    ConfigurationError,
    GraphQLError,
    QueryEngineError,
    QueryNotFoundError,
    QueryTimeoutError,
    SystemInactiveError,
    SystemNotFoundError,
    UpstreamError,
    ValidationError,
)
from .logging_config import get_logger, log_with_context, setup_logging
from .observability import (
    capture_exception,
    notify_operator,
    send_slack_notification,
    setup_observability,
    track_performance,
)

__all__ = [
    # Errors
    "QueryEngineError",
    "ValidationError",
    "AuthenticationError",
    "ConfigurationError",
    "QueryTimeoutError",
    "GraphQLError",
    "UpstreamError",
    "SystemNotFoundError",
    "SystemInactiveError",
    "QueryNotFoundError",
    "AccessDeniedError",
    # Logging
    "get_logger",
    "setup_logging",
    "log_with_context",
    # Observability
    "setup_observability",
    "capture_exception",
    "send_slack_notification",
    "notify_operator",
    "track_performance",
]
