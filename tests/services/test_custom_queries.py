"""
Tests for the custom query lifecycle

Tests cover:
- Creation with validation and system existence checks
- Owner-only update and soft delete
- Visibility of private and public queries
- Cache invalidation on update and delete
"""

import pytest

from query_engine.core.exceptions import AccessDeniedError, QueryNotFoundError, SystemNotFoundError, ValidationError
from query_engine.domain.queries import Visibility
from query_engine.services.custom_queries import CustomQueryService


@pytest.fixture
def queries(store, result_cache):
    """CustomQueryService over the seeded store"""
    return CustomQueryService(store, result_cache)


class TestCreate:
    """Test query creation"""

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_owner(self, queries):
        created = await queries.create("ana", {"system_id": 1, "query": "status = open", "name": "Open issues"})

        assert created.id == 1
        assert created.created_by == "ana"
        assert created.visibility is Visibility.PRIVATE
        assert created.refresh_interval == 300

    @pytest.mark.asyncio
    async def test_required_fields(self, queries):
        with pytest.raises(ValidationError, match="system_id and query are required"):
            await queries.create("ana", {"query": "x"})

    @pytest.mark.asyncio
    async def test_unknown_fields_rejected(self, queries):
        """Test fields outside the editable set are rejected"""
        with pytest.raises(ValidationError, match="created_by"):
            await queries.create("ana", {"system_id": 1, "query": "x", "created_by": "ben"})

    @pytest.mark.asyncio
    async def test_unknown_system_rejected(self, queries):
        with pytest.raises(SystemNotFoundError):
            await queries.create("ana", {"system_id": 99, "query": "x"})

    @pytest.mark.asyncio
    async def test_invalid_values_rejected(self, queries):
        """Test blank queries and bad visibility fail validation"""
        with pytest.raises(ValidationError):
            await queries.create("ana", {"system_id": 1, "query": "   "})
        with pytest.raises(ValidationError, match="visibility"):
            await queries.create("ana", {"system_id": 1, "query": "x", "visibility": "team"})


class TestOwnership:
    """Test owner-only mutation"""

    @pytest.mark.asyncio
    async def test_owner_updates(self, queries, result_cache):
        """Test the owner can update and cached results are dropped"""
        created = await queries.create("ana", {"system_id": 1, "query": "x"})
        result_cache.set("k", 1, ttl=60, system_id=1, query_id=created.id)

        updated = await queries.update(created.id, "ana", {"query": "y", "visibility": "public"})

        assert updated.query == "y"
        assert updated.visibility is Visibility.PUBLIC
        assert "k" not in result_cache

    @pytest.mark.asyncio
    async def test_non_owner_cannot_update_or_delete(self, queries):
        created = await queries.create("ana", {"system_id": 1, "query": "x", "visibility": "public"})

        with pytest.raises(AccessDeniedError):
            await queries.update(created.id, "ben", {"query": "y"})
        with pytest.raises(AccessDeniedError):
            await queries.delete(created.id, "ben")

    @pytest.mark.asyncio
    async def test_update_to_unknown_system(self, queries):
        created = await queries.create("ana", {"system_id": 1, "query": "x"})

        with pytest.raises(SystemNotFoundError):
            await queries.update(created.id, "ana", {"system_id": 42})

    @pytest.mark.asyncio
    async def test_delete_is_soft(self, queries, store, result_cache):
        """Test deletion deactivates the record and invalidates its cache"""
        created = await queries.create("ana", {"system_id": 1, "query": "x"})
        result_cache.set("k", 1, ttl=60, query_id=created.id)

        await queries.delete(created.id, "ana")

        stored = await store.get_custom_query(created.id)
        assert stored.is_active is False
        assert "k" not in result_cache
        with pytest.raises(QueryNotFoundError):
            await queries.delete(created.id, "ana")


class TestVisibility:
    """Test listing and lookup"""

    @pytest.mark.asyncio
    async def test_list_visible(self, queries):
        """Test users see their own queries plus public ones"""
        await queries.create("ana", {"system_id": 1, "query": "mine"})
        await queries.create("ben", {"system_id": 1, "query": "shared", "visibility": "public"})
        await queries.create("ben", {"system_id": 1, "query": "secret"})

        assert sorted(q.query for q in await queries.list_visible("ana")) == ["mine", "shared"]
        assert [q.query for q in await queries.list_visible(None)] == ["shared"]

    @pytest.mark.asyncio
    async def test_get_visible(self, queries):
        created = await queries.create("ben", {"system_id": 1, "query": "secret"})

        assert (await queries.get_visible(created.id, "ben")).query == "secret"
        with pytest.raises(AccessDeniedError):
            await queries.get_visible(created.id, "ana")
        with pytest.raises(QueryNotFoundError):
            await queries.get_visible(404, "ben")
