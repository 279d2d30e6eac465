"""
External system domain models

An ExternalSystem is an administrator-declared upstream (ticket tracker,
dashboard, REST/GraphQL back-end) with its auth descriptor, named query
methods and named transforms. Records arrive from the persistence layer in
camelCase; from_dict() also accepts snake_case keys.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from query_engine.core.exceptions import ConfigurationError


def _pick(data: dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in data and data[camel] is not None:
        return data[camel]
    if snake in data and data[snake] is not None:
        return data[snake]
    return default


class ProtocolType(str, Enum):
    """Wire protocol of a query method."""

    HTTP_GET = "http_get"
    HTTP_POST = "http_post"
    GRAPHQL = "graphql"
    REST = "rest"
    SQL = "sql"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str) -> "ProtocolType":
        """
        Parse a raw protocol string.

        Raises:
            ConfigurationError: If the protocol is not supported
        """
        try:
            return cls(str(value).lower())
        except ValueError:
            supported = ", ".join(p.value for p in cls)
            raise ConfigurationError(f"Unsupported query method type: {value} (supported: {supported})") from None


class AuthType(str, Enum):
    """Authentication scheme of an external system."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"
    API_KEY = "api_key"
    OAUTH = "oauth"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str | None) -> "AuthType":
        """
        Parse a raw auth type string; missing means no auth.

        Raises:
            ConfigurationError: If the auth type is not supported
        """
        if not value:
            return cls.NONE
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError(f"Unsupported auth type: {value}") from None


@dataclass
class AuthConfig:
    """Credentials for the declared auth type. Never logged."""

    username: str | None = None
    password: str | None = None
    token: str | None = None
    api_key: str | None = None
    key: str | None = None
    header: str | None = None
    access_token: str | None = None
    custom_headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AuthConfig":
        data = data or {}
        return cls(
            username=data.get("username"),
            password=data.get("password"),
            token=data.get("token"),
            api_key=_pick(data, "apiKey", "api_key"),
            key=data.get("key"),
            header=data.get("header"),
            access_token=_pick(data, "accessToken", "access_token"),
            custom_headers=dict(_pick(data, "customHeaders", "custom_headers", {})),
        )


@dataclass
class ConnectionConfig:
    """
    Transport settings of an external system.

    Attributes:
        timeout: System-wide timeout in seconds (between method and engine default)
        retries: Declared retry budget; parsed but not acted upon (no automatic retries)
        ssl_verify: Declared SSL preference; verification is always enforced
        additional_headers: Headers merged on top of the auth headers
    """

    timeout: float | None = None
    retries: int | None = None
    ssl_verify: bool = True
    additional_headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ConnectionConfig":
        data = data or {}
        timeout = data.get("timeout")
        return cls(
            timeout=_seconds(timeout),
            retries=data.get("retries"),
            ssl_verify=bool(_pick(data, "sslVerify", "ssl_verify", True)),
            additional_headers=dict(_pick(data, "additionalHeaders", "additional_headers", {})),
        )


@dataclass
class HealthCheckConfig:
    endpoint: str
    method: str = "GET"
    timeout: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "HealthCheckConfig | None":
        if not data or not data.get("endpoint"):
            return None
        return cls(
            endpoint=data["endpoint"],
            method=str(data.get("method") or "GET").upper(),
            timeout=_seconds(data.get("timeout")),
        )


@dataclass
class QueryMethod:
    """
    A named, declared way of talking to one external system.

    The protocol is kept as the raw declared string; the dispatcher parses it
    so that one malformed method does not make the whole system unloadable.
    """

    name: str
    type: str
    endpoint: str | None = None
    query_param: str | None = None
    query_field: str | None = None
    parameters_field: str | None = None
    data_path: str | None = None
    http_method: str | None = None
    default_payload: dict[str, Any] = field(default_factory=dict)
    timeout: float | None = None
    custom_endpoint: str | None = None

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "QueryMethod":
        return cls(
            name=name,
            type=str(data.get("type") or ""),
            endpoint=data.get("endpoint"),
            query_param=_pick(data, "queryParam", "query_param"),
            query_field=_pick(data, "queryField", "query_field"),
            parameters_field=_pick(data, "parametersField", "parameters_field"),
            data_path=_pick(data, "dataPath", "data_path"),
            http_method=_pick(data, "httpMethod", "http_method"),
            default_payload=dict(_pick(data, "defaultPayload", "default_payload", {})),
            timeout=_seconds(data.get("timeout")),
            custom_endpoint=_pick(data, "customEndpoint", "custom_endpoint"),
        )


@dataclass
class TransformConfig:
    """Declared transform, still untyped; see query_engine.domain.transforms.parse_transform()."""

    name: str
    type: str
    config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "TransformConfig":
        return cls(name=name, type=str(data.get("type") or ""), config=dict(data.get("config") or {}))


@dataclass
class ExternalSystem:
    """
    An external system definition, read-mostly at execution time.

    Attributes:
        id: Record identifier
        system_name: Machine name (e.g. "jira")
        display_name: Human-readable name
        base_url: Base address that method endpoints are appended to
        auth_type: Declared auth scheme
        auth_config: Credentials for auth_type
        connection_config: Timeouts and extra headers
        query_methods: Declared methods in declaration order
        data_transforms: Declared transforms by name
        health_check_config: Endpoint used by test_connection()
        is_active: Disabled systems cannot be resolved
    """

    id: int | str
    system_name: str
    base_url: str
    display_name: str | None = None
    auth_type: AuthType = AuthType.NONE
    auth_config: AuthConfig = field(default_factory=AuthConfig)
    connection_config: ConnectionConfig = field(default_factory=ConnectionConfig)
    query_methods: dict[str, QueryMethod] = field(default_factory=dict)
    data_transforms: dict[str, TransformConfig] = field(default_factory=dict)
    health_check_config: HealthCheckConfig | None = None
    is_active: bool = True

    @property
    def name(self) -> str:
        return self.display_name or self.system_name

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExternalSystem":
        """
        Build from a persistence record.

        Raises:
            ConfigurationError: If required fields are missing or the auth type is unknown
        """
        if data.get("id") is None:
            raise ConfigurationError("External system record is missing 'id'")

        base_url = _pick(data, "baseUrl", "base_url")
        if not base_url:
            raise ConfigurationError(f"External system {data['id']} is missing 'baseUrl'")

        methods = _pick(data, "queryMethods", "query_methods", {}) or {}
        transforms = _pick(data, "dataTransforms", "data_transforms", {}) or {}

        return cls(
            id=data["id"],
            system_name=_pick(data, "systemName", "system_name", str(data["id"])),
            display_name=_pick(data, "displayName", "display_name"),
            base_url=str(base_url).rstrip("/"),
            auth_type=AuthType.parse(_pick(data, "authType", "auth_type")),
            auth_config=AuthConfig.from_dict(_pick(data, "authConfig", "auth_config")),
            connection_config=ConnectionConfig.from_dict(_pick(data, "connectionConfig", "connection_config")),
            query_methods={name: QueryMethod.from_dict(name, spec) for name, spec in methods.items()},
            data_transforms={name: TransformConfig.from_dict(name, spec) for name, spec in transforms.items()},
            health_check_config=HealthCheckConfig.from_dict(_pick(data, "healthCheckConfig", "health_check_config")),
            is_active=bool(_pick(data, "isActive", "is_active", True)),
        )

    def to_summary(self) -> dict[str, Any]:
        """Public view of the system: no credentials."""
        return {
            "id": self.id,
            "system_name": self.system_name,
            "display_name": self.name,
            "base_url": self.base_url,
            "auth_type": self.auth_type.value,
            "methods": list(self.query_methods),
            "transforms": list(self.data_transforms),
            "is_active": self.is_active,
        }


def _seconds(value: Any) -> float | None:
    """Timeouts are declared in seconds; values above 1000 are taken as milliseconds."""
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid timeout value: {value!r}") from None
    if seconds <= 0:
        raise ConfigurationError(f"Timeout must be positive: {value!r}")
    return seconds / 1000 if seconds > 1000 else seconds
