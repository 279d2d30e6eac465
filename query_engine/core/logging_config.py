"""
Logging setup for the query engine.

Every module logs through ``get_logger(__name__)`` and attaches structured
fields with ``extra={...}``:

    logger = get_logger(__name__)
    logger.info("Query executed", extra={"system_id": 3, "record_count": 42})

On the console those fields are dropped for readability; the JSON formatter
(used for log files and ``json_output=True``) emits them as top-level keys.
Fields whose names look like credentials are masked before either formatter
sees them.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that emit one line per upstream request
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "urllib3")

SENSITIVE_KEYS = ("password", "token", "api_key", "apikey", "secret", "authorization")
MASK = "***"

_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def _mask(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: (MASK if _is_sensitive(key) else value) for key, value in fields.items()}


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Structured fields attached to a record, nested ones flattened."""
    fields: dict[str, Any] = {}
    nested = getattr(record, "extra_fields", None)
    if isinstance(nested, dict):
        fields.update(nested)
    for key, value in record.__dict__.items():
        if key not in _RECORD_ATTRS and key != "extra_fields":
            fields[key] = value
    return fields


class CredentialFilter(logging.Filter):
    """Mask credential-like extra fields in place."""

    def filter(self, record: logging.LogRecord) -> bool:
        nested = getattr(record, "extra_fields", None)
        if isinstance(nested, dict):
            record.extra_fields = _mask(nested)
        for key in list(record.__dict__):
            if key not in _RECORD_ATTRS and _is_sensitive(key):
                setattr(record, key, MASK)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, extra fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        payload.update(extra_fields(record))
        return json.dumps(payload, default=str)


class ContextFormatter(logging.Formatter):
    """Console formatter; colors the level name when attached to a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, colorize: bool | None = None):
        super().__init__(fmt=CONSOLE_FORMAT, datefmt=CONSOLE_DATE_FORMAT)
        self.colorize = sys.stderr.isatty() if colorize is None else colorize

    def format(self, record: logging.LogRecord) -> str:
        if not self.colorize:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{self.COLORS.get(original, '')}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(CredentialFilter())
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    json_output: bool = False,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Optional JSON log file, parent directories are created
        json_output: Emit JSON on the console as well

    Example:
        setup_logging(level="DEBUG")
        setup_logging(level="INFO", log_file=Path(".tmp/logs/engine.log"), json_output=True)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()

    console_formatter: logging.Formatter = JSONFormatter() if json_output else ContextFormatter()
    root.addHandler(_handler(logging.StreamHandler(sys.stdout), log_level, console_formatter))

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        root.addHandler(_handler(logging.FileHandler(log_file, encoding="utf-8"), log_level, JSONFormatter()))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: str, message: str, **context: Any) -> None:
    """
    Log ``message`` with keyword context nested under ``extra_fields``.

    Example:
        log_with_context(logger, "info", "Cache hit", system_id=3, method="search")
    """
    getattr(logger, level.lower())(message, extra={"extra_fields": context})
