"""
System Registry & Config Cache

Loads external system definitions from the store, builds their auth headers
once, and memoizes both until explicitly invalidated.

Contract: callers MUST call clear_cache(system_id) after editing a system's
configuration, otherwise stale auth headers and method definitions keep being
served.
"""

from dataclasses import dataclass, field

from query_engine.connectors.auth_headers import build_auth_headers
from query_engine.core.exceptions import SystemInactiveError, SystemNotFoundError
from query_engine.core.logging_config import get_logger
from query_engine.domain.systems import ExternalSystem
from query_engine.storage.base import SystemStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class SystemConfig:
    """A resolved system together with its prebuilt transport headers."""

    system: ExternalSystem
    headers: dict[str, str] = field(default_factory=dict)


class SystemRegistry:
    """
    Per-process cache of resolved external systems.

    Owned by the QueryExecutionService that constructs it (or injected), so
    tests get a fresh cache per instance.
    """

    def __init__(self, store: SystemStore):
        self.store = store
        self._cache: dict[str, SystemConfig] = {}

    async def resolve(self, system_id: int | str) -> SystemConfig:
        """
        Resolve a system id to its config, loading it on cache miss.

        Raises:
            SystemNotFoundError: If no such system exists
            SystemInactiveError: If the system is disabled
            ConfigurationError: If the record is malformed
            AuthenticationError: If the declared auth type lacks credentials
        """
        key = str(system_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        record = await self.store.get_external_system(system_id)
        if record is None:
            raise SystemNotFoundError(f"External system not found: {system_id}")

        system = ExternalSystem.from_dict(record)
        if not system.is_active:
            raise SystemInactiveError(f"External system '{system.name}' is inactive")

        config = SystemConfig(system=system, headers=build_auth_headers(system))
        self._cache[key] = config

        logger.debug(
            "Resolved external system",
            extra={
                "system_id": system.id,
                "system_name": system.system_name,
                "auth_type": system.auth_type.value,
                "method_count": len(system.query_methods),
            },
        )
        return config

    def clear_cache(self, system_id: int | str | None = None) -> None:
        """Evict one system, or every system when system_id is None."""
        if system_id is None:
            count = len(self._cache)
            self._cache.clear()
            logger.info("Cleared system registry cache", extra={"evicted": count})
        elif self._cache.pop(str(system_id), None) is not None:
            logger.info("Cleared system registry cache entry", extra={"system_id": system_id})

    def is_cached(self, system_id: int | str) -> bool:
        return str(system_id) in self._cache
