"""
Query Dispatcher

Resolves the method to run on a system and hands the request to the
executor registered for the method's protocol.

Timeout precedence: explicit request timeout, then the method's declared
timeout, then the system's connectionConfig.timeout, then the engine default.
"""

from typing import Any

from query_engine.connectors.executors import ExecutionRequest, ProtocolExecutor, default_executors
from query_engine.connectors.registry import SystemConfig
from query_engine.core.exceptions import ConfigurationError, ValidationError
from query_engine.core.logging_config import get_logger
from query_engine.domain.systems import ExternalSystem, ProtocolType, QueryMethod
from query_engine.secure_config import DEFAULT_TIMEOUT_SECONDS

logger = get_logger(__name__)


def resolve_method(system: ExternalSystem, method_name: str | None) -> QueryMethod:
    """
    Pick the declared method to execute.

    A missing name falls back to the first declared method.

    Raises:
        ValidationError: If the system declares no methods, or the named one is unknown
    """
    if not system.query_methods:
        raise ValidationError(f"External system '{system.name}' declares no query methods")

    if not method_name:
        fallback = next(iter(system.query_methods.values()))
        logger.info(
            "No query method given, falling back to first declared method",
            extra={"system_name": system.system_name, "method": fallback.name},
        )
        return fallback

    method = system.query_methods.get(method_name)
    if method is None:
        available = ", ".join(system.query_methods)
        raise ValidationError(
            f"Query method '{method_name}' not found for system '{system.name}' (available: {available})"
        )
    return method


class QueryDispatcher:
    """Routes a method to its protocol executor."""

    def __init__(
        self,
        executors: dict[ProtocolType, ProtocolExecutor] | None = None,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client_factory: Any = None,
    ):
        """
        Args:
            executors: Overrides merged over the default executor table
            default_timeout: Engine-wide timeout in seconds
            client_factory: Async HTTP client factory passed to the default executors

        Raises:
            ConfigurationError: If some ProtocolType has no executor
        """
        table = default_executors(client_factory)
        table.update(executors or {})
        missing = [p.value for p in ProtocolType if p not in table]
        if missing:
            raise ConfigurationError(f"No executor registered for protocol(s): {', '.join(missing)}")

        self.executors = table
        self.default_timeout = default_timeout

    def resolve_timeout(self, system: ExternalSystem, method: QueryMethod, timeout: float | None = None) -> float:
        for candidate in (timeout, method.timeout, system.connection_config.timeout):
            if candidate:
                return float(candidate)
        return float(self.default_timeout)

    async def dispatch(
        self,
        system_config: SystemConfig,
        method_name: str | None,
        query: str,
        parameters: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> tuple[QueryMethod, Any]:
        """
        Execute a query against a resolved system.

        Returns:
            (the method that ran, its extracted payload)

        Raises:
            ValidationError: If the method cannot be resolved
            ConfigurationError: If the method's protocol is unsupported
            QueryTimeoutError, UpstreamError, GraphQLError: From the executor
        """
        system = system_config.system
        method = resolve_method(system, method_name)
        protocol = ProtocolType.parse(method.type)

        request = ExecutionRequest(
            system_config=system_config,
            method=method,
            query=query,
            parameters=dict(parameters or {}),
            timeout=self.resolve_timeout(system, method, timeout),
        )

        logger.info(
            "Dispatching query",
            extra={
                "system_name": system.system_name,
                "method": method.name,
                "protocol": protocol.value,
                "timeout": request.timeout,
            },
        )
        return method, await self.executors[protocol].execute(request)
