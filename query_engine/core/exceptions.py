"""
Query Engine Exceptions

Error taxonomy shared by every layer of the engine. Public entry points in
query_engine.services convert these into failed QueryExecutionResult objects,
so callers never need to catch them.

    QueryEngineError
    ├── ValidationError        unknown/missing method, malformed transform spec
    ├── AuthenticationError    unusable credentials for the declared auth type
    ├── ConfigurationError     unsupported protocol, missing endpoint, bad env
    ├── QueryTimeoutError      outbound call exceeded its timeout
    ├── GraphQLError           non-empty "errors" array in a GraphQL response
    ├── UpstreamError          non-2xx response, malformed payload, transport
    ├── SystemNotFoundError / SystemInactiveError
    ├── QueryNotFoundError
    └── AccessDeniedError      private query executed by a non-owner
"""


class QueryEngineError(Exception):
    """Base class for all engine errors."""

    pass


class ValidationError(QueryEngineError):
    """
    Raised when a request or declarative config fails validation.

    The message is surfaced to users, so it must not contain credentials.
    """

    pass


class AuthenticationError(QueryEngineError):
    """Raised when the declared auth type is missing required credential fields."""

    pass


class ConfigurationError(QueryEngineError):
    """Raised when configuration is missing or invalid."""

    pass


class QueryTimeoutError(QueryEngineError, TimeoutError):
    """Raised when an outbound call exceeds its timeout."""

    def __init__(self, message: str, timeout: float | None = None):
        super().__init__(message)
        self.timeout = timeout


class GraphQLError(QueryEngineError):
    """Raised when a GraphQL response carries a non-empty errors array."""

    def __init__(self, messages: list[str]):
        super().__init__(f"GraphQL errors: {', '.join(messages)}")
        self.messages = messages


class UpstreamError(QueryEngineError):
    """Generic wrapper for upstream failures (HTTP status, transport, payload)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SystemNotFoundError(QueryEngineError):
    """Raised when no external system exists for the requested id."""

    pass


class SystemInactiveError(QueryEngineError):
    """Raised when the requested external system is disabled."""

    pass


class QueryNotFoundError(QueryEngineError):
    """Raised when a saved query does not exist or has been deactivated."""

    pass


class AccessDeniedError(QueryEngineError):
    """Raised when a user touches a query they do not own."""

    pass
