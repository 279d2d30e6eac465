"""
Custom Query Service

Lifecycle of saved, user-owned queries: create, update and delete by the
owner only, listing of what a user may see. Deletion is a soft deactivation.
Updates and deletes drop the query's cached results.
"""

import dataclasses
from typing import Any

from query_engine.cache.result_cache import ResultCache
from query_engine.core.exceptions import AccessDeniedError, QueryNotFoundError, SystemNotFoundError, ValidationError
from query_engine.core.logging_config import get_logger
from query_engine.domain.queries import CustomQuery
from query_engine.storage.base import RecordStore

logger = get_logger(__name__)

EDITABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "system_id",
        "query",
        "method",
        "parameters",
        "transformations",
        "refresh_interval",
        "cache_enabled",
        "visibility",
        "tags",
    }
)


class CustomQueryService:
    def __init__(self, store: RecordStore, cache: ResultCache):
        self.store = store
        self.cache = cache

    async def _require_system(self, system_id: int | str) -> None:
        if await self.store.get_external_system(system_id) is None:
            raise SystemNotFoundError(f"External system not found: {system_id}")

    async def _load_owned(self, query_id: int, user_id: str) -> CustomQuery:
        query = await self.store.get_custom_query(query_id)
        if query is None or not query.is_active:
            raise QueryNotFoundError(f"Custom query not found: {query_id}")
        if query.created_by != user_id:
            raise AccessDeniedError(f"Custom query {query_id} belongs to another user")
        return query

    async def create(self, user_id: str, fields: dict[str, Any]) -> CustomQuery:
        """
        Save a new query owned by user_id.

        Raises:
            ValidationError: If the definition is invalid
            SystemNotFoundError: If the target system does not exist
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown custom query field(s): {', '.join(sorted(unknown))}")
        if "system_id" not in fields or "query" not in fields:
            raise ValidationError("system_id and query are required")

        await self._require_system(fields["system_id"])
        try:
            query = CustomQuery(**fields, created_by=user_id)
        except TypeError as e:
            raise ValidationError(f"Invalid custom query definition: {e}") from e

        saved = await self.store.save_custom_query(query)
        logger.info(
            "Custom query created",
            extra={"query_id": saved.id, "system_id": saved.system_id, "created_by": user_id},
        )
        return saved

    async def update(self, query_id: int, user_id: str, changes: dict[str, Any]) -> CustomQuery:
        """
        Apply changes to a query owned by user_id and drop its cached results.

        Raises:
            QueryNotFoundError: If the query does not exist or was deleted
            AccessDeniedError: If user_id is not the owner
            ValidationError: If the changes are invalid
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown custom query field(s): {', '.join(sorted(unknown))}")

        existing = await self._load_owned(query_id, user_id)
        if "system_id" in changes and str(changes["system_id"]) != str(existing.system_id):
            await self._require_system(changes["system_id"])

        updated = await self.store.save_custom_query(dataclasses.replace(existing, **changes))
        self.cache.invalidate_query(query_id)

        logger.info("Custom query updated", extra={"query_id": query_id, "fields": sorted(changes)})
        return updated

    async def delete(self, query_id: int, user_id: str) -> None:
        """
        Deactivate a query owned by user_id and drop its cached results.

        Raises:
            QueryNotFoundError: If the query does not exist or was already deleted
            AccessDeniedError: If user_id is not the owner
        """
        existing = await self._load_owned(query_id, user_id)
        await self.store.save_custom_query(dataclasses.replace(existing, is_active=False))
        self.cache.invalidate_query(query_id)
        logger.info("Custom query deactivated", extra={"query_id": query_id})

    async def list_visible(self, user_id: str | None) -> list[CustomQuery]:
        """Active queries owned by user_id, plus every public one."""
        queries = await self.store.list_custom_queries()
        return [query for query in queries if query.is_visible_to(user_id)]

    async def get_visible(self, query_id: int, user_id: str | None) -> CustomQuery:
        """
        Raises:
            QueryNotFoundError: If the query does not exist or was deleted
            AccessDeniedError: If the query is private to another user
        """
        query = await self.store.get_custom_query(query_id)
        if query is None or not query.is_active:
            raise QueryNotFoundError(f"Custom query not found: {query_id}")
        if not query.is_visible_to(user_id):
            raise AccessDeniedError(f"Custom query {query_id} is private")
        return query
