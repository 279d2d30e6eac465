"""
Operator channel for the query engine.

Failures that the engine swallows to keep a request alive (an execution log
write that fails, for example) still have to reach a human. They are sent to
Sentry and to a Slack webhook. Slow executions are reported through the logs.

Usage:
    from query_engine.core.observability import setup_observability, track_performance

    setup_observability(environment="production")

    with track_performance("query_execution", alert_threshold_ms=10000) as ctx:
        ctx["system_id"] = 3
        await service.execute_query(...)
"""

import time
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from query_engine.core.logging_config import get_logger

logger = get_logger(__name__)

SEVERITY_COLORS = {
    "info": "#36a64f",
    "warning": "#ff9900",
    "error": "#ff0000",
    "critical": "#8b0000",
}
DEFAULT_COLOR = "#808080"
SENTRY_TRACES_SAMPLE_RATE = 0.1
MAX_ERROR_LENGTH = 200


@dataclass
class ObservabilityConfig:
    """
    Active operator channel settings.

    A channel is only enabled when its destination is configured, so
    ``enable_slack=True`` without a webhook URL leaves Slack off.
    """

    sentry_dsn: str | None = None
    slack_webhook_url: str | None = None
    environment: str = "development"
    enable_sentry: bool = False
    enable_slack: bool = False

    def __post_init__(self):
        self.enable_sentry = bool(self.enable_sentry and self.sentry_dsn)
        self.enable_slack = bool(self.enable_slack and self.slack_webhook_url)


_observability_config: ObservabilityConfig | None = None


def _init_sentry(config: ObservabilityConfig) -> None:
    # Events are sent explicitly via capture_exception, never from log records
    sentry_sdk.init(
        dsn=config.sentry_dsn,
        environment=config.environment,
        integrations=[LoggingIntegration(level=None, event_level=None)],
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
    )


def setup_observability(
    sentry_dsn: str | None = None,
    slack_webhook_url: str | None = None,
    environment: str | None = None,
    enable_sentry: bool = True,
    enable_slack: bool = True,
) -> ObservabilityConfig:
    """
    Configure Sentry and Slack for this process.

    Arguments left as None are read from SENTRY_DSN, SLACK_WEBHOOK_URL and
    ENVIRONMENT through the secure config.
    """
    global _observability_config

    from query_engine.secure_config import get_config

    settings = get_config().get_observability_settings()
    config = ObservabilityConfig(
        sentry_dsn=sentry_dsn or settings.sentry_dsn,
        slack_webhook_url=slack_webhook_url or settings.slack_webhook_url,
        environment=environment or settings.environment,
        enable_sentry=enable_sentry,
        enable_slack=enable_slack,
    )

    if config.enable_sentry:
        _init_sentry(config)

    logger.info(
        "Operator channel configured",
        extra={"environment": config.environment, "sentry": config.enable_sentry, "slack": config.enable_slack},
    )
    _observability_config = config
    return config


def capture_exception(exception: Exception, context: dict[str, Any] | None = None) -> None:
    """Send ``exception`` to Sentry with ``context`` as tags, and log it either way."""
    context = context or {}
    sentry_enabled = bool(_observability_config and _observability_config.enable_sentry)

    if sentry_enabled:
        with sentry_sdk.new_scope() as scope:
            for key, value in context.items():
                scope.set_tag(key, str(value))
            sentry_sdk.capture_exception(exception)

    logger.error(
        "Exception captured by Sentry" if sentry_enabled else "Exception occurred (Sentry not configured)",
        exc_info=exception,
        extra={"exception_type": type(exception).__name__, "context": context},
    )


def build_slack_payload(message: str, severity: str, environment: str, context: dict[str, Any]) -> dict[str, Any]:
    fields = [
        {"title": "Environment", "value": environment, "short": True},
        {"title": "Timestamp", "value": datetime.now(UTC).isoformat(), "short": True},
    ]
    fields.extend({"title": key, "value": str(value), "short": True} for key, value in context.items())
    return {
        "text": f"*{severity.upper()}*: {message}",
        "attachments": [{"color": SEVERITY_COLORS.get(severity, DEFAULT_COLOR), "fields": fields}],
    }


def send_slack_notification(message: str, severity: str = "info", context: dict[str, Any] | None = None) -> bool:
    """
    Post an alert to the configured Slack webhook.

    Returns:
        True if Slack accepted the message. Transport errors and non-200
        answers are logged and reported as False.
    """
    config = _observability_config
    if config is None or not config.enable_slack:
        logger.debug("Slack notifications disabled, skipping", extra={"notification": message})
        return False

    from query_engine.http_client import post

    payload = build_slack_payload(message, severity, config.environment, context or {})
    try:
        response = post(config.slack_webhook_url, json=payload, headers={"Content-Type": "application/json"})
    except Exception as e:
        logger.error("Error sending Slack notification", exc_info=True, extra={"error": str(e)})
        return False

    if response.status_code != 200:
        logger.error(
            "Failed to send Slack notification",
            extra={"status_code": response.status_code, "response": response.text},
        )
        return False

    logger.info("Slack notification sent", extra={"notification": message, "severity": severity})
    return True


def notify_operator(message: str, exception: Exception, context: dict[str, Any] | None = None) -> None:
    """Report an internal failure on both channels. Never raises."""
    capture_exception(exception, context=context)
    alert_context = {**(context or {}), "error": str(exception)[:MAX_ERROR_LENGTH]}
    send_slack_notification(message, severity="error", context=alert_context)


@contextmanager
def track_performance(operation_name: str, alert_threshold_ms: float = 5000.0) -> Generator[dict[str, Any], None, None]:
    """
    Time the enclosed block.

    The yielded dict is merged into the log record, so callers can attach
    identifiers while the block runs. Durations above ``alert_threshold_ms``
    are logged at WARNING, everything else at DEBUG.
    """
    context: dict[str, Any] = {}
    started = time.perf_counter()
    try:
        yield context
    finally:
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        extra = {"operation": operation_name, "duration_ms": duration_ms, **context}
        if duration_ms > alert_threshold_ms:
            logger.warning(
                f"Slow operation detected: {operation_name}",
                extra={**extra, "threshold_ms": alert_threshold_ms},
            )
        else:
            logger.debug(f"Performance: {operation_name}", extra=extra)
