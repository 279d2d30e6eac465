"""
Persistence interfaces consumed by the engine.

The engine treats persistence as an opaque record store. Anything that
implements these async protocols (a SQL repository, an ORM session wrapper,
the in-memory store used for tests and local runs) can be plugged in.
"""

from typing import Any, Protocol

from query_engine.domain.queries import CustomQuery, ExecutionLogEntry


class SystemStore(Protocol):
    async def get_external_system(self, system_id: int | str) -> dict[str, Any] | None:
        """Raw external system record (camelCase keys), or None."""
        ...

    async def list_external_systems(self) -> list[dict[str, Any]]: ...


class QueryStore(Protocol):
    async def get_custom_query(self, query_id: int) -> CustomQuery | None: ...

    async def list_custom_queries(self) -> list[CustomQuery]: ...

    async def save_custom_query(self, query: CustomQuery) -> CustomQuery:
        """Insert or update; assigns an id on insert."""
        ...


class ExecutionLogStore(Protocol):
    async def log_query_execution(self, entry: ExecutionLogEntry) -> None: ...

    async def list_query_executions(self, query_id: int, limit: int = 50) -> list[ExecutionLogEntry]: ...


class RecordStore(SystemStore, QueryStore, ExecutionLogStore, Protocol):
    """A store implementing all three record types, as InMemoryStore does."""
