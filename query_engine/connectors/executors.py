"""
Protocol Executors

One executor per wire protocol. Each builds the upstream request from a
declared QueryMethod, bounds it with a timeout, and extracts the payload via
the method's dot-path.

    http_get         HttpGetExecutor      parameters -> query string
    http_post, rest  HttpPostExecutor     default payload < parameters < query text
    graphql          GraphQLExecutor      {query, variables}; "errors" -> GraphQLError
    sql              SqlExecutor          unsupported; replace with a driver-backed executor
    custom           CustomExecutor       POST against the method's customEndpoint

Executors are pluggable: pass a different ProtocolExecutor for any
ProtocolType to QueryDispatcher(executors={...}).
"""

import asyncio
import dataclasses
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar
from urllib.parse import urljoin

import httpx

from query_engine.async_http_client import AsyncSecureHTTPClient
from query_engine.connectors.auth_headers import redact_headers
from query_engine.connectors.parameters import find_placeholders, substitute_parameters
from query_engine.connectors.registry import SystemConfig
from query_engine.core.exceptions import ConfigurationError, GraphQLError, QueryTimeoutError, UpstreamError
from query_engine.core.logging_config import get_logger
from query_engine.domain.systems import ProtocolType, QueryMethod
from query_engine.utils.field_paths import get_nested_value

logger = get_logger(__name__)

DEFAULT_QUERY_FIELD = "query"
DEFAULT_GRAPHQL_ENDPOINT = "/graphql"


def join_url(base_url: str, endpoint: str | None) -> str:
    """Join a system base URL with an endpoint; absolute endpoints are used as-is."""
    if not endpoint:
        return base_url.rstrip("/")
    if endpoint.startswith(("http://", "https://")):
        return endpoint
    return urljoin(base_url.rstrip("/") + "/", endpoint.lstrip("/"))


@dataclass
class ExecutionRequest:
    """Everything an executor needs for one upstream call."""

    system_config: SystemConfig
    method: QueryMethod
    query: str
    timeout: float
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def system_name(self) -> str:
        return self.system_config.system.name

    @property
    def query_text(self) -> str:
        return substitute_parameters(self.query, self.parameters)

    @property
    def endpoint(self) -> str:
        return substitute_parameters(self.method.endpoint or "", self.parameters)


class ProtocolExecutor(ABC):
    """
    Base class for protocol executors.

    Subclasses implement execute(); the shared _send() applies headers,
    timeout, status and JSON checks, and _extract() applies the data path.
    """

    protocol: ClassVar[ProtocolType]

    def __init__(self, client_factory: Any = None):
        """
        Args:
            client_factory: Callable returning an async client context manager
                (defaults to AsyncSecureHTTPClient)
        """
        self.client_factory = client_factory

    @abstractmethod
    async def execute(self, request: ExecutionRequest) -> Any:
        """
        Run the request and return the extracted payload.

        Raises:
            QueryTimeoutError: If the call exceeds request.timeout
            UpstreamError: For non-2xx responses, transport errors and non-JSON bodies
            ConfigurationError: If the method cannot be executed by this protocol
        """

    def build_url(self, request: ExecutionRequest, endpoint: str | None = None) -> str:
        endpoint = request.endpoint if endpoint is None else substitute_parameters(endpoint, request.parameters)
        return join_url(request.system_config.system.base_url, endpoint)

    async def _send(self, request: ExecutionRequest, http_method: str, url: str, **kwargs: Any) -> Any:
        """
        Send one request and return the decoded JSON body.

        Raises:
            QueryTimeoutError: If the call exceeds request.timeout
            UpstreamError: For non-2xx, transport errors and malformed payloads
        """
        headers = dict(request.system_config.headers)
        unresolved = find_placeholders(url) + find_placeholders(request.query_text)
        if unresolved:
            logger.debug("Unresolved placeholders left verbatim", extra={"placeholders": unresolved})

        logger.debug(
            "Executing upstream request",
            extra={
                "system": request.system_name,
                "method": request.method.name,
                "http_method": http_method,
                "url": url,
                "headers": redact_headers(headers),
                "timeout": request.timeout,
            },
        )

        factory = self.client_factory or AsyncSecureHTTPClient
        try:
            async with factory(timeout=request.timeout) as client:
                response = await asyncio.wait_for(
                    client.request(http_method, url, headers=headers, timeout=request.timeout, **kwargs),
                    timeout=request.timeout,
                )
        except (TimeoutError, httpx.TimeoutException) as e:
            raise QueryTimeoutError(
                f"Request to {request.system_name} timed out after {request.timeout:g}s", timeout=request.timeout
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Request to {request.system_name} failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(
                f"{request.system_name} API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"{request.system_name} returned a malformed (non-JSON) payload") from e

    def _extract(self, request: ExecutionRequest, payload: Any) -> Any:
        """Apply the method's data path; no path returns the payload unchanged."""
        path = request.method.data_path
        if not path:
            return payload

        extracted = get_nested_value(payload, path)
        if extracted is None:
            logger.warning(
                "Data path did not match the response",
                extra={"system": request.system_name, "method": request.method.name, "data_path": path},
            )
        return extracted


class HttpGetExecutor(ProtocolExecutor):
    """GET with caller parameters (and optionally the query text) in the query string."""

    protocol = ProtocolType.HTTP_GET

    async def execute(self, request: ExecutionRequest) -> Any:
        params = {name: _query_value(value) for name, value in request.parameters.items() if value is not None}
        if request.method.query_param:
            params[request.method.query_param] = request.query_text

        payload = await self._send(request, "GET", self.build_url(request), params=params)
        return self._extract(request, payload)


class HttpPostExecutor(ProtocolExecutor):
    """
    JSON body built in increasing precedence: the method's default payload,
    caller parameters (nested under parametersField, or flattened), then the
    query text under queryField (default "query").
    """

    protocol = ProtocolType.HTTP_POST
    ALLOWED_VERBS = ("POST", "PUT", "PATCH")

    def build_body(self, request: ExecutionRequest) -> dict[str, Any]:
        body: dict[str, Any] = dict(request.method.default_payload)
        if request.method.parameters_field:
            body[request.method.parameters_field] = dict(request.parameters)
        else:
            body.update(request.parameters)
        body[request.method.query_field or DEFAULT_QUERY_FIELD] = request.query_text
        return body

    async def execute(self, request: ExecutionRequest) -> Any:
        verb = (request.method.http_method or "POST").upper()
        if verb not in self.ALLOWED_VERBS:
            raise ConfigurationError(
                f"Method '{request.method.name}' declares httpMethod {verb}; use type 'http_get' for GET requests"
            )

        payload = await self._send(request, verb, self.build_url(request), json=self.build_body(request))
        return self._extract(request, payload)


class GraphQLExecutor(ProtocolExecutor):
    """POST {query, variables}; a non-empty errors array fails the call."""

    protocol = ProtocolType.GRAPHQL

    async def execute(self, request: ExecutionRequest) -> Any:
        variables = request.parameters.get("variables")
        if not isinstance(variables, dict):
            variables = dict(request.parameters)

        url = self.build_url(request, request.method.endpoint or DEFAULT_GRAPHQL_ENDPOINT)
        payload = await self._send(request, "POST", url, json={"query": request.query_text, "variables": variables})

        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            raise GraphQLError([_graphql_message(error) for error in errors])

        return self._extract(request, payload)


class SqlExecutor(ProtocolExecutor):
    """Placeholder for database-backed methods; always fails with ConfigurationError."""

    protocol = ProtocolType.SQL

    async def execute(self, request: ExecutionRequest) -> Any:
        raise ConfigurationError(
            "SQL query execution requires a database driver; register a ProtocolExecutor for "
            "ProtocolType.SQL with QueryDispatcher(executors=...)"
        )


class CustomExecutor(ProtocolExecutor):
    """POST executor against the method's declared customEndpoint."""

    protocol = ProtocolType.CUSTOM

    def __init__(self, client_factory: Any = None):
        super().__init__(client_factory)
        self._post = HttpPostExecutor(client_factory)

    async def execute(self, request: ExecutionRequest) -> Any:
        if not request.method.custom_endpoint:
            raise ConfigurationError(f"Custom method '{request.method.name}' requires a customEndpoint")

        self._post.client_factory = self.client_factory
        method = dataclasses.replace(request.method, endpoint=request.method.custom_endpoint, http_method="POST")
        return await self._post.execute(dataclasses.replace(request, method=method))


def default_executors(client_factory: Any = None) -> dict[ProtocolType, ProtocolExecutor]:
    """One executor per ProtocolType; REST shares the POST executor."""
    post = HttpPostExecutor(client_factory)
    return {
        ProtocolType.HTTP_GET: HttpGetExecutor(client_factory),
        ProtocolType.HTTP_POST: post,
        ProtocolType.REST: post,
        ProtocolType.GRAPHQL: GraphQLExecutor(client_factory),
        ProtocolType.SQL: SqlExecutor(client_factory),
        ProtocolType.CUSTOM: CustomExecutor(client_factory),
    }


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _graphql_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)
