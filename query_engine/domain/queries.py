"""
Query domain models

    - CustomQuery: user-owned declarative query against one external system
    - QueryExecutionResult: envelope returned by every public entry point
    - ExecutionLogEntry: audit row written for every execution attempt
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from query_engine.core.exceptions import ValidationError

DEFAULT_REFRESH_INTERVAL = 300  # seconds


class Visibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class ExecutionStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CACHED = "cached"


@dataclass
class CustomQuery:
    """
    A saved, user-owned query.

    Attributes:
        id: Record identifier (None until stored)
        system_id: Target external system
        query: Query text, may contain {{placeholders}}
        method: Declared method name; None falls back to the system's first method
        parameters: Values for placeholders and protocol parameters
        transformations: Names of system-declared transforms, applied in order
        refresh_interval: Cache TTL in seconds
        cache_enabled: Whether results are served from the result cache
        visibility: private (owner only) or public
        created_by: Owning user
        is_active: False once soft-deleted
    """

    system_id: int | str
    query: str
    name: str = ""
    description: str | None = None
    method: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)
    transformations: list[str] = field(default_factory=list)
    refresh_interval: int = DEFAULT_REFRESH_INTERVAL
    cache_enabled: bool = True
    visibility: Visibility = Visibility.PRIVATE
    tags: list[str] = field(default_factory=list)
    created_by: str | None = None
    is_active: bool = True
    id: int | None = None

    def __post_init__(self) -> None:
        """
        Validate the query definition.

        Raises:
            ValidationError: If the definition is unusable
        """
        if not str(self.query).strip():
            raise ValidationError("Query text is required")

        if self.refresh_interval < 0:
            raise ValidationError(f"refresh_interval must not be negative, got {self.refresh_interval}")

        if not isinstance(self.visibility, Visibility):
            try:
                self.visibility = Visibility(str(self.visibility).lower())
            except ValueError:
                raise ValidationError(f"visibility must be 'private' or 'public', got {self.visibility!r}") from None

    @property
    def is_public(self) -> bool:
        return self.visibility is Visibility.PUBLIC

    def is_visible_to(self, user_id: str | None) -> bool:
        """Active queries are visible to their owner, and to everyone when public."""
        return self.is_active and (self.is_public or (user_id is not None and self.created_by == user_id))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["visibility"] = self.visibility.value
        return data


@dataclass
class ErrorDescriptor:
    type: str
    message: str


@dataclass
class ExecutionMetadata:
    execution_time_ms: float
    record_count: int = 0
    system_name: str | None = None
    method: str | None = None
    cache_hit: bool = False
    transformations_applied: list[str] = field(default_factory=list)
    executed_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class QueryExecutionResult:
    """
    Result envelope. Failures carry an error and no data, never partial data.
    """

    success: bool
    metadata: ExecutionMetadata
    data: Any = None
    error: ErrorDescriptor | None = None

    @classmethod
    def failure(cls, error: Exception, metadata: ExecutionMetadata) -> "QueryExecutionResult":
        return cls(
            success=False,
            data=None,
            error=ErrorDescriptor(type=type(error).__name__, message=str(error) or type(error).__name__),
            metadata=metadata,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": asdict(self.error) if self.error else None,
            "metadata": {
                **asdict(self.metadata),
                "executed_at": self.metadata.executed_at.isoformat(),
            },
        }


@dataclass
class ExecutionLogEntry:
    """Audit row for one execution attempt (completed, failed or cached)."""

    status: ExecutionStatus
    execution_time_ms: float
    query_id: int | None = None
    system_id: int | str | None = None
    method: str | None = None
    executed_by: str | None = None
    result_data: Any = None
    record_count: int = 0
    error: str | None = None
    completed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["completed_at"] = self.completed_at.isoformat()
        return data
