"""
Secure Configuration Management

Provides centralized, validated configuration for the query engine.
Replaces scattered os.getenv() calls with strict validation and fail-fast behavior.

Usage:
    from query_engine.secure_config import get_config

    config = get_config()
    engine_config = config.get_engine_config()
    print(engine_config.default_timeout)

Environment variables:
    QUERY_ENGINE_DEFAULT_TIMEOUT   Outbound call timeout in seconds (default: 30)
    QUERY_ENGINE_CACHE_TTL         TTL for ad-hoc query results in seconds (default: 300)
    QUERY_ENGINE_SYSTEMS_FILE      Optional JSON file with external system definitions
    API_USERNAME / API_PASSWORD    HTTP Basic credentials for the REST API
    ENVIRONMENT                    development | staging | production
    SENTRY_DSN / SLACK_WEBHOOK_URL Operator channel for logging failures

Raises:
    ConfigurationError: If configuration is missing or invalid
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from query_engine.core.exceptions import ConfigurationError

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CACHE_TTL_SECONDS = 300


@dataclass
class EngineConfig:
    """
    Validated engine configuration.
    """

    default_timeout: float = DEFAULT_TIMEOUT_SECONDS
    default_cache_ttl: int = DEFAULT_CACHE_TTL_SECONDS
    systems_file: Path | None = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """
        Validate engine configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if self.default_timeout <= 0:
            raise ConfigurationError(f"QUERY_ENGINE_DEFAULT_TIMEOUT must be positive: {self.default_timeout}")

        if self.default_cache_ttl < 0:
            raise ConfigurationError(f"QUERY_ENGINE_CACHE_TTL must not be negative: {self.default_cache_ttl}")

        if self.systems_file is not None and not self.systems_file.exists():
            raise ConfigurationError(f"QUERY_ENGINE_SYSTEMS_FILE not found: {self.systems_file}")


@dataclass
class ApiAuthConfig:
    """
    Validated REST API credentials.
    """

    username: str
    password: str

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """
        Validate API credentials.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.username:
            raise ConfigurationError("API_USERNAME is required")

        if not self.password:
            raise ConfigurationError("API_PASSWORD is required")

        placeholders = ["your_password", "placeholder", "xxx", "replace_me"]
        if any(placeholder in self.password.lower() for placeholder in placeholders):
            raise ConfigurationError("API_PASSWORD contains a placeholder value")


@dataclass
class ObservabilitySettings:
    """
    Operator channel settings (Sentry + Slack).
    """

    environment: str = "development"
    sentry_dsn: str | None = None
    slack_webhook_url: str | None = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """
        Validate observability settings.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if self.environment not in ("development", "staging", "production", "test"):
            raise ConfigurationError(f"ENVIRONMENT must be development, staging, production or test: {self.environment}")

        if self.slack_webhook_url and not self.slack_webhook_url.startswith("https://"):
            raise ConfigurationError("SLACK_WEBHOOK_URL must use HTTPS")


class SecureConfig:
    """
    Centralized secure configuration manager.

    Loads and validates all engine configuration from environment variables.
    """

    def __init__(self):
        """Initialize configuration (loads .env file)."""
        load_dotenv()

    def get_optional_env(self, name: str, default: str | None = None) -> str | None:
        """Return an environment variable, treating empty strings as unset."""
        value = os.getenv(name)
        return value if value else default

    def get_engine_config(self) -> EngineConfig:
        """
        Get validated engine configuration.

        Returns:
            EngineConfig: Validated configuration

        Raises:
            ConfigurationError: If a value is malformed or invalid
        """
        raw_timeout = self.get_optional_env("QUERY_ENGINE_DEFAULT_TIMEOUT", str(DEFAULT_TIMEOUT_SECONDS))
        raw_ttl = self.get_optional_env("QUERY_ENGINE_CACHE_TTL", str(DEFAULT_CACHE_TTL_SECONDS))
        systems_file = self.get_optional_env("QUERY_ENGINE_SYSTEMS_FILE")

        try:
            default_timeout = float(raw_timeout)  # type: ignore[arg-type]
            default_cache_ttl = int(raw_ttl)  # type: ignore[arg-type]
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric engine setting: {e}") from e

        return EngineConfig(
            default_timeout=default_timeout,
            default_cache_ttl=default_cache_ttl,
            systems_file=Path(systems_file) if systems_file else None,
        )

    def get_api_auth_config(self) -> ApiAuthConfig:
        """
        Get validated REST API credentials.

        Raises:
            ConfigurationError: If credentials are missing or invalid
        """
        return ApiAuthConfig(
            username=os.getenv("API_USERNAME") or "",
            password=os.getenv("API_PASSWORD") or "",
        )

    def get_observability_settings(self) -> ObservabilitySettings:
        """Get validated operator channel settings."""
        return ObservabilitySettings(
            environment=self.get_optional_env("ENVIRONMENT", "development") or "development",
            sentry_dsn=self.get_optional_env("SENTRY_DSN"),
            slack_webhook_url=self.get_optional_env("SLACK_WEBHOOK_URL"),
        )


_config_instance = None


def get_config() -> SecureConfig:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        SecureConfig: The configuration manager
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = SecureConfig()
    return _config_instance


def validate_config_on_startup(required_services: list[str]) -> None:
    """
    Validate required configuration at application startup.

    Args:
        required_services: Services to validate ('engine', 'api', 'observability')

    Raises:
        ConfigurationError: If any required configuration is missing or invalid
        ValueError: If an unknown service name is passed

    Example:
        validate_config_on_startup(["engine", "api"])
    """
    config = get_config()

    for service in required_services:
        if service == "engine":
            config.get_engine_config()
        elif service == "api":
            config.get_api_auth_config()
        elif service == "observability":
            config.get_observability_settings()
        else:
            raise ValueError(f"Unknown service: {service}")
