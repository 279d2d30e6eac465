"""
Logging helpers for failures the engine recovers from.

A broken transformation or a metric that cannot be computed must not fail the
whole execution. These helpers log such failures with a consistent structured
payload so they are searchable in the JSON logs:

    log_and_continue()        skip the failing item
    log_and_return_default()  substitute a fallback value

Failures that must reach the caller are raised as QueryEngineError subclasses
instead; see query_engine.core.exceptions.
"""

import logging
from typing import Any


def _failure_extra(operation: str, error: Exception, context: dict[str, Any]) -> dict[str, Any]:
    return {
        "error_type": operation,
        "exception_class": type(error).__name__,
        "context": context,
    }


def log_and_continue(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    error_type: str = "Operation",
) -> None:
    """
    Log a recoverable failure at WARNING so the caller can skip the item.

    Example:
        try:
            node = parse_transform(transform)
        except ValidationError as e:
            log_and_continue(logger, e, {"transformation": transform.name}, "Transform parsing")
            continue
    """
    logger.warning(f"{error_type} failed: {error}", extra=_failure_extra(error_type, error, context))


def log_and_return_default(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    default_value: Any = None,
    error_type: str = "Operation",
) -> Any:
    """
    Log a recoverable failure and hand back ``default_value``.

    Example:
        try:
            return compute_metric(rows, metric)
        except (TypeError, ValueError) as e:
            return log_and_return_default(logger, e, {"metric": metric.output_name}, None, "Metric computation")
    """
    extra = _failure_extra(error_type, error, context)
    extra["default_value"] = repr(default_value)
    logger.warning(f"{error_type} failed, returning default value: {error}", extra=extra)
    return default_value
