"""
Query Execution Service

Public entry point of the engine. Resolves the target system, serves fresh
results from the result cache, otherwise dispatches to the protocol executor,
applies the requested transforms, caches and logs the outcome.

Every public coroutine converts failures into a QueryExecutionResult with
success=False; callers never see exceptions, tracebacks or partial data.

Usage:
    from query_engine.services.query_service import QueryExecutionService
    from query_engine.storage import InMemoryStore

    service = QueryExecutionService(InMemoryStore.from_systems_file(path))
    result = await service.execute_query(
        system_id=1,
        query="project = {{project}} AND status = open",
        method="search",
        parameters={"project": "CORE"},
        transformations=["by_status"],
    )
    if result.success:
        print(result.metadata.record_count)
"""

import asyncio
import time
from typing import Any

import httpx

from query_engine.async_http_client import AsyncSecureHTTPClient
from query_engine.cache.result_cache import ResultCache
from query_engine.connectors.dispatcher import QueryDispatcher
from query_engine.connectors.executors import join_url
from query_engine.connectors.registry import SystemRegistry
from query_engine.core.exceptions import AccessDeniedError, QueryEngineError, QueryNotFoundError
from query_engine.core.logging_config import get_logger, log_with_context
from query_engine.core.observability import track_performance
from query_engine.domain.queries import (
    CustomQuery,
    ExecutionMetadata,
    ExecutionStatus,
    QueryExecutionResult,
)
from query_engine.secure_config import EngineConfig, get_config
from query_engine.services.execution_logger import ExecutionLogger
from query_engine.storage.base import RecordStore
from query_engine.transforms.aggregation import is_aggregated
from query_engine.transforms.pipeline import apply_transformations

logger = get_logger(__name__)

SLOW_QUERY_THRESHOLD_MS = 10000.0


def count_records(data: Any) -> int:
    """Rows in a list, rows of an aggregated envelope, 0 for None, otherwise 1."""
    if data is None:
        return 0
    if isinstance(data, list):
        return len(data)
    if is_aggregated(data):
        return len(data["aggregated_data"])
    return 1


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class QueryExecutionService:
    """
    Orchestrates query execution against external systems.

    Collaborators are constructor-injected; anything omitted is built from
    the store and the engine configuration.
    """

    def __init__(
        self,
        store: RecordStore,
        registry: SystemRegistry | None = None,
        cache: ResultCache | None = None,
        dispatcher: QueryDispatcher | None = None,
        execution_logger: ExecutionLogger | None = None,
        config: EngineConfig | None = None,
    ):
        self.store = store
        self.config = config or get_config().get_engine_config()
        self.registry = registry if registry is not None else SystemRegistry(store)
        self.cache = cache if cache is not None else ResultCache()
        if dispatcher is None:
            dispatcher = QueryDispatcher(default_timeout=self.config.default_timeout)
        self.dispatcher = dispatcher
        self.execution_logger = execution_logger if execution_logger is not None else ExecutionLogger(store)

    async def execute_query(
        self,
        system_id: int | str,
        query: str,
        method: str | None = None,
        parameters: dict[str, Any] | None = None,
        transformations: list[str] | None = None,
        timeout: float | None = None,
        force_refresh: bool = False,
        user_id: str | None = None,
        cache_enabled: bool = True,
        cache_ttl: float | None = None,
        query_id: int | None = None,
    ) -> QueryExecutionResult:
        """
        Execute a query against an external system.

        Args:
            system_id: Target external system
            query: Query text; {{name}} placeholders are filled from parameters
            method: Declared method name (None falls back to the first declared method)
            parameters: Placeholder values and protocol parameters
            transformations: Declared transform names, applied in order
            timeout: Per-call timeout in seconds (overrides method/system/engine defaults)
            force_refresh: Skip the cache lookup and overwrite the cached entry
            user_id: Identity recorded in the execution log
            cache_enabled: Whether to read and write the result cache
            cache_ttl: Freshness window in seconds (defaults to QUERY_ENGINE_CACHE_TTL)
            query_id: Saved query this execution belongs to, if any

        Returns:
            QueryExecutionResult; failures have success=False and an error
        """
        start = time.perf_counter()
        parameters = dict(parameters or {})
        transformations = list(transformations or [])
        system_name: str | None = None
        method_name = method

        with track_performance("query_execution", alert_threshold_ms=SLOW_QUERY_THRESHOLD_MS) as perf:
            perf.update({"system_id": system_id, "query_id": query_id})
            try:
                system_config = await self.registry.resolve(system_id)
                system_name = system_config.system.name
                cache_key = ResultCache.make_key(system_id, query, parameters, method, transformations)
                ttl = self.config.default_cache_ttl if cache_ttl is None else cache_ttl

                if cache_enabled and not force_refresh:
                    entry = self.cache.get(cache_key, max_age=ttl)
                    if entry is not None:
                        return await self._cached_result(entry.value, start, system_id, system_name, query_id, user_id)

                resolved_method, payload = await self.dispatcher.dispatch(
                    system_config, method, query, parameters, timeout
                )
                method_name = resolved_method.name

                data, applied = apply_transformations(payload, transformations, system_config.system.data_transforms)
                record_count = count_records(data)

                if cache_enabled:
                    self.cache.set(
                        cache_key,
                        {"data": data, "method": method_name, "transformations_applied": applied},
                        ttl=ttl,
                        system_id=system_id,
                        query_id=query_id,
                    )

                metadata = ExecutionMetadata(
                    execution_time_ms=_elapsed_ms(start),
                    record_count=record_count,
                    system_name=system_name,
                    method=method_name,
                    cache_hit=False,
                    transformations_applied=applied,
                )
                perf["record_count"] = record_count

                logger.info(
                    "Query executed",
                    extra={
                        "system_id": system_id,
                        "system_name": system_name,
                        "method": method_name,
                        "query_id": query_id,
                        "record_count": record_count,
                        "execution_time_ms": metadata.execution_time_ms,
                    },
                )
                await self.execution_logger.record(
                    ExecutionStatus.COMPLETED,
                    metadata.execution_time_ms,
                    query_id=query_id,
                    system_id=system_id,
                    method=method_name,
                    executed_by=user_id,
                    result_data=data,
                    record_count=record_count,
                )
                return QueryExecutionResult(success=True, data=data, metadata=metadata)

            except Exception as e:
                execution_time_ms = _elapsed_ms(start)
                context = {"system_id": system_id, "method": method_name, "query_id": query_id}
                if isinstance(e, QueryEngineError):
                    logger.warning(f"Query execution failed: {e}", extra={**context, "error_type": type(e).__name__})
                else:
                    logger.error("Unexpected error during query execution", exc_info=True, extra=context)

                await self.execution_logger.record(
                    ExecutionStatus.FAILED,
                    execution_time_ms,
                    query_id=query_id,
                    system_id=system_id,
                    method=method_name,
                    executed_by=user_id,
                    error=str(e) or type(e).__name__,
                )
                metadata = ExecutionMetadata(
                    execution_time_ms=execution_time_ms, system_name=system_name, method=method_name
                )
                return QueryExecutionResult.failure(e, metadata)

    async def _cached_result(
        self,
        cached: dict[str, Any],
        start: float,
        system_id: int | str,
        system_name: str,
        query_id: int | None,
        user_id: str | None,
    ) -> QueryExecutionResult:
        data = cached["data"]
        metadata = ExecutionMetadata(
            execution_time_ms=_elapsed_ms(start),
            record_count=count_records(data),
            system_name=system_name,
            method=cached["method"],
            cache_hit=True,
            transformations_applied=list(cached["transformations_applied"]),
        )
        log_with_context(
            logger, "info", "Serving query result from cache", system_id=system_id, query_id=query_id, method=metadata.method
        )
        await self.execution_logger.record(
            ExecutionStatus.CACHED,
            metadata.execution_time_ms,
            query_id=query_id,
            system_id=system_id,
            method=metadata.method,
            executed_by=user_id,
            result_data=data,
            record_count=metadata.record_count,
        )
        return QueryExecutionResult(success=True, data=data, metadata=metadata)

    async def execute_saved_query(
        self, query_id: int, user_id: str | None = None, force_refresh: bool = False
    ) -> QueryExecutionResult:
        """
        Execute a stored custom query on behalf of a user.

        Private queries may only be run by their owner.
        """
        start = time.perf_counter()
        try:
            custom_query = await self.store.get_custom_query(query_id)
            if custom_query is None or not custom_query.is_active:
                raise QueryNotFoundError(f"Custom query not found: {query_id}")
            if not custom_query.is_visible_to(user_id):
                raise AccessDeniedError(f"Custom query {query_id} is private")
        except Exception as e:
            logger.warning(f"Saved query execution rejected: {e}", extra={"query_id": query_id, "user_id": user_id})
            return QueryExecutionResult.failure(e, ExecutionMetadata(execution_time_ms=_elapsed_ms(start)))

        return await self.execute_custom_query(custom_query, user_id=user_id, force_refresh=force_refresh)

    async def execute_custom_query(
        self, custom_query: CustomQuery, user_id: str | None = None, force_refresh: bool = False
    ) -> QueryExecutionResult:
        """Execute an already-loaded custom query with its own cache settings."""
        return await self.execute_query(
            system_id=custom_query.system_id,
            query=custom_query.query,
            method=custom_query.method,
            parameters=custom_query.parameters,
            transformations=custom_query.transformations,
            force_refresh=force_refresh,
            user_id=user_id,
            cache_enabled=custom_query.cache_enabled,
            cache_ttl=custom_query.refresh_interval,
            query_id=custom_query.id,
        )

    async def test_connection(self, system_id: int | str) -> dict[str, Any]:
        """
        Probe a system's health-check endpoint (or its base URL).

        Returns:
            {"success": bool, "message": str, "details": {...}}; never raises
        """
        start = time.perf_counter()
        try:
            system_config = await self.registry.resolve(system_id)
            system = system_config.system
            health_check = system.health_check_config

            url = join_url(system.base_url, health_check.endpoint if health_check else None)
            http_method = health_check.method if health_check else "GET"
            timeout = (
                (health_check.timeout if health_check else None)
                or system.connection_config.timeout
                or self.config.default_timeout
            )

            async with AsyncSecureHTTPClient(timeout=timeout) as client:
                response = await asyncio.wait_for(
                    client.request(http_method, url, headers=dict(system_config.headers), timeout=timeout),
                    timeout=timeout,
                )

            details = {
                "status_code": response.status_code,
                "response_time_ms": _elapsed_ms(start),
                "endpoint": url,
                "system_name": system.name,
            }
            if response.is_success:
                logger.info("Connection test succeeded", extra={"system_id": system_id, **details})
                return {"success": True, "message": "Connection successful", "details": details}

            logger.warning("Connection test failed", extra={"system_id": system_id, **details})
            return {
                "success": False,
                "message": f"HTTP {response.status_code}: {response.reason_phrase}",
                "details": details,
            }

        except (TimeoutError, httpx.TimeoutException):
            message = "Connection timed out"
        except httpx.HTTPError as e:
            message = f"Connection failed: {e}"
        except QueryEngineError as e:
            message = str(e)
        except Exception as e:
            logger.error("Unexpected error during connection test", exc_info=True, extra={"system_id": system_id})
            message = f"Connection test failed: {e}"

        logger.warning(f"Connection test failed: {message}", extra={"system_id": system_id})
        return {
            "success": False,
            "message": message,
            "details": {"system_id": system_id, "response_time_ms": _elapsed_ms(start)},
        }

    def clear_cache(self, system_id: int | str | None = None) -> None:
        """
        Evict cached system configs and results, for one system or all.

        Must be called after an external system's definition changes.
        """
        self.registry.clear_cache(system_id)
        if system_id is None:
            self.cache.clear()
        else:
            self.cache.invalidate_system(system_id)
