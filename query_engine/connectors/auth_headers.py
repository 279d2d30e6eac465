"""
Auth Header Builder

Pure mapping from an external system's auth descriptor and credentials to
transport headers.

Usage:
    from query_engine.connectors.auth_headers import build_auth_headers

    headers = build_auth_headers(system)
    # {"Content-Type": "application/json", ..., "Authorization": "Basic dXNlcjpwYXNz"}
"""

import base64
from collections.abc import Callable

from query_engine.core.exceptions import AuthenticationError
from query_engine.domain.systems import AuthConfig, AuthType, ExternalSystem

USER_AGENT = "query-engine/1.0"
DEFAULT_API_KEY_HEADER = "X-API-Key"


def _base_headers() -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }


def _no_auth(system: ExternalSystem, auth: AuthConfig) -> dict[str, str]:
    return {}


def _basic_auth(system: ExternalSystem, auth: AuthConfig) -> dict[str, str]:
    if not auth.username or auth.password is None or auth.password == "":
        raise AuthenticationError(f"Basic auth for '{system.system_name}' requires username and password")
    credentials = f"{auth.username}:{auth.password}"
    b64_credentials = base64.b64encode(credentials.encode()).decode()  # nosec B108
    return {"Authorization": f"Basic {b64_credentials}"}


def _bearer_auth(system: ExternalSystem, auth: AuthConfig) -> dict[str, str]:
    token = auth.token or auth.api_key
    if not token:
        raise AuthenticationError(f"Bearer auth for '{system.system_name}' requires a token")
    return {"Authorization": f"Bearer {token}"}


def _api_key_auth(system: ExternalSystem, auth: AuthConfig) -> dict[str, str]:
    key = auth.key or auth.api_key
    if not key:
        raise AuthenticationError(f"API key auth for '{system.system_name}' requires a key")
    return {auth.header or DEFAULT_API_KEY_HEADER: key}


def _oauth_auth(system: ExternalSystem, auth: AuthConfig) -> dict[str, str]:
    # Token refresh is not supported; a present access token is used as bearer
    if not auth.access_token:
        raise AuthenticationError(f"OAuth for '{system.system_name}' requires an access token")
    return {"Authorization": f"Bearer {auth.access_token}"}


def _custom_auth(system: ExternalSystem, auth: AuthConfig) -> dict[str, str]:
    return dict(auth.custom_headers)


AUTH_BUILDERS: dict[AuthType, Callable[[ExternalSystem, AuthConfig], dict[str, str]]] = {
    AuthType.NONE: _no_auth,
    AuthType.BASIC: _basic_auth,
    AuthType.BEARER: _bearer_auth,
    AuthType.API_KEY: _api_key_auth,
    AuthType.OAUTH: _oauth_auth,
    AuthType.CUSTOM: _custom_auth,
}


def build_auth_headers(system: ExternalSystem) -> dict[str, str]:
    """
    Build transport headers for an external system.

    Precedence (later wins): base headers, auth headers, the system's
    connection_config.additional_headers.

    Args:
        system: External system definition

    Returns:
        Header map; contains no Authorization header for auth type 'none'

    Raises:
        AuthenticationError: If the declared auth type lacks required credentials
    """
    headers = _base_headers()
    headers.update(AUTH_BUILDERS[system.auth_type](system, system.auth_config))
    headers.update(system.connection_config.additional_headers)
    return headers


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Header map safe for logs: credential-bearing values masked."""
    sensitive = ("authorization", "key", "token", "secret", "cookie")
    return {
        name: ("***" if any(marker in name.lower() for marker in sensitive) else value)
        for name, value in headers.items()
    }
