"""
API Endpoints Integration Tests

Tests all REST API endpoints for correct responses, data structure, and behavior.
The executor transport is patched so no request leaves the process.
"""

from unittest.mock import patch

import pytest

EXECUTOR_CLIENT = "query_engine.connectors.executors.AsyncSecureHTTPClient"
SERVICE_CLIENT = "query_engine.services.query_service.AsyncSecureHTTPClient"


@pytest.fixture
def upstream(mock_http_client, client_class_factory):
    """Patch the executor transport; yields the mock client"""
    with patch(EXECUTOR_CLIENT, client_class_factory(mock_http_client)):
        yield mock_http_client


def create_query(client, auth, **fields):
    body = {"system_id": 1, "query": "status = open", "method": "search", **fields}
    response = client.post("/api/v1/queries", json=body, auth=auth)
    assert response.status_code == 201
    return response.json()


# ============================================================
# Health & Systems
# ============================================================


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_check_response_structure(self, client):
        """Health check should report status, version and registered systems."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["registered_systems"] == 2
        assert "timestamp" in data


class TestSystemsEndpoint:
    """Tests for /api/v1/systems."""

    def test_lists_systems_without_credentials(self, client, auth):
        """System summaries must not leak auth config."""
        response = client.get("/api/v1/systems", auth=auth)
        data = response.json()

        assert data["count"] == 2
        jira = next(system for system in data["systems"] if system["system_name"] == "jira")
        assert jira["methods"] == ["search", "search_post"]
        assert jira["auth_type"] == "basic"
        assert "s3cret" not in response.text

    def test_malformed_record_skipped(self, client, auth, store):
        """A record that cannot be parsed is left out of the listing."""
        store.add_external_system({"id": 7, "systemName": "broken"})

        data = client.get("/api/v1/systems", auth=auth).json()

        assert data["count"] == 2


# ============================================================
# Execution
# ============================================================


class TestExecuteQueryEndpoint:
    """Tests for POST /api/v1/systems/{id}/query."""

    def test_success_envelope(self, client, auth, upstream):
        """Successful execution returns data and metadata."""
        response = client.post(
            "/api/v1/systems/1/query",
            json={"query": "status = open", "method": "search", "transformations": ["open_only"]},
            auth=auth,
        )
        data = response.json()

        assert response.status_code == 200
        assert data["success"] is True
        assert data["error"] is None
        assert [row["id"] for row in data["data"]] == [1, 3, 5]
        assert data["metadata"]["record_count"] == 3
        assert data["metadata"]["transformations_applied"] == ["open_only"]
        assert data["metadata"]["cache_hit"] is False

    def test_second_call_is_cache_hit(self, client, auth, upstream):
        body = {"query": "status = open", "method": "search"}
        client.post("/api/v1/systems/1/query", json=body, auth=auth)
        data = client.post("/api/v1/systems/1/query", json=body, auth=auth).json()

        assert data["metadata"]["cache_hit"] is True
        assert upstream.request.await_count == 1

    def test_failure_is_200_with_error(self, client, auth, upstream):
        """Execution failures are reported in the envelope, not as HTTP errors."""
        response = client.post("/api/v1/systems/1/query", json={"query": "x", "method": "nope"}, auth=auth)
        data = response.json()

        assert response.status_code == 200
        assert data["success"] is False
        assert data["data"] is None
        assert data["error"]["type"] == "ValidationError"

    def test_unknown_system_is_200_with_error(self, client, auth):
        data = client.post("/api/v1/systems/99/query", json={"query": "x"}, auth=auth).json()

        assert data["success"] is False
        assert data["error"]["type"] == "SystemNotFoundError"

    @pytest.mark.parametrize("body", [{}, {"query": ""}, {"query": "x", "timeout": 0}])
    def test_invalid_body_returns_422(self, client, auth, body):
        """Request validation errors return 422."""
        response = client.post("/api/v1/systems/1/query", json=body, auth=auth)
        assert response.status_code == 422

    def test_executed_by_is_caller(self, client, auth, upstream, store):
        """The authenticated username is recorded in the execution log."""
        import asyncio

        client.post("/api/v1/systems/1/query", json={"query": "x", "method": "search"}, auth=auth)

        entries = asyncio.run(store.list_query_executions(None))
        assert entries[0].executed_by == "admin"


class TestConnectionTestEndpoint:
    """Tests for POST /api/v1/systems/{id}/test."""

    def test_reports_probe_outcome(self, client, auth, mock_http_client, client_class_factory, response_factory):
        mock_http_client.request.return_value = response_factory(200)

        with patch(SERVICE_CLIENT, client_class_factory(mock_http_client)):
            data = client.post("/api/v1/systems/1/test", auth=auth).json()

        assert data["success"] is True
        assert data["details"]["system_name"] == "Jira Cloud"


class TestCacheEndpoint:
    """Tests for DELETE /api/v1/cache."""

    def test_clear_for_system(self, client, auth, upstream, service):
        client.post("/api/v1/systems/1/query", json={"query": "x", "method": "search"}, auth=auth)

        response = client.delete("/api/v1/cache", params={"system_id": "1"}, auth=auth)

        assert response.json() == {"message": "Cache cleared", "system_id": "1"}
        assert len(service.cache) == 0

    def test_clear_all(self, client, auth, upstream, service):
        client.post("/api/v1/systems/1/query", json={"query": "x", "method": "search"}, auth=auth)

        client.delete("/api/v1/cache", auth=auth)

        assert len(service.cache) == 0
        assert not service.registry.is_cached(1)


# ============================================================
# Custom Queries
# ============================================================


class TestCustomQueryEndpoints:
    """Tests for the /api/v1/queries lifecycle."""

    def test_create_and_list(self, client, auth):
        """Created queries are owned by the caller and listed."""
        created = create_query(client, auth, name="Open issues")

        assert created["created_by"] == "admin"
        assert created["visibility"] == "private"

        data = client.get("/api/v1/queries", auth=auth).json()
        assert data["count"] == 1
        assert data["queries"][0]["id"] == created["id"]

    def test_create_unknown_system_404(self, client, auth):
        response = client.post("/api/v1/queries", json={"system_id": 99, "query": "x"}, auth=auth)

        assert response.status_code == 404
        assert "99" in response.json()["detail"]

    def test_create_invalid_visibility_400(self, client, auth):
        response = client.post(
            "/api/v1/queries", json={"system_id": 1, "query": "x", "visibility": "team"}, auth=auth
        )
        assert response.status_code == 400

    def test_update_partial(self, client, auth):
        """Only the supplied fields change."""
        created = create_query(client, auth, name="before")

        response = client.put(f"/api/v1/queries/{created['id']}", json={"name": "after"}, auth=auth)
        updated = response.json()

        assert response.status_code == 200
        assert updated["name"] == "after"
        assert updated["query"] == "status = open"

    def test_delete_then_404(self, client, auth):
        created = create_query(client, auth)

        assert client.delete(f"/api/v1/queries/{created['id']}", auth=auth).status_code == 200
        assert client.delete(f"/api/v1/queries/{created['id']}", auth=auth).status_code == 404
        assert client.get("/api/v1/queries", auth=auth).json()["count"] == 0

    def test_execute_saved_query(self, client, auth, upstream):
        """Executing a saved query runs it with its stored definition."""
        created = create_query(client, auth, transformations=["top_two"])

        data = client.post(f"/api/v1/queries/{created['id']}/execute", auth=auth).json()

        assert data["success"] is True
        assert len(data["data"]) == 2
        assert data["metadata"]["transformations_applied"] == ["top_two"]

    def test_force_refresh_query_param(self, client, auth, upstream):
        created = create_query(client, auth)
        path = f"/api/v1/queries/{created['id']}/execute"

        client.post(path, auth=auth)
        data = client.post(path, params={"force_refresh": "true"}, auth=auth).json()

        assert data["metadata"]["cache_hit"] is False
        assert upstream.request.await_count == 2

    def test_execution_history(self, client, auth, upstream):
        """Execution history lists the newest entry first."""
        created = create_query(client, auth)
        path = f"/api/v1/queries/{created['id']}"
        client.post(f"{path}/execute", auth=auth)
        client.post(f"{path}/execute", auth=auth)

        data = client.get(f"{path}/executions", params={"limit": 5}, auth=auth).json()

        assert data["count"] == 2
        assert [entry["status"] for entry in data["executions"]] == ["cached", "completed"]

    def test_private_query_of_other_user_403(self, client, auth, store):
        """Another user's private query cannot be executed or inspected."""
        import asyncio

        from query_engine.domain.queries import CustomQuery

        other = asyncio.run(store.save_custom_query(CustomQuery(system_id=1, query="x", created_by="ben")))

        assert client.post(f"/api/v1/queries/{other.id}/execute", auth=auth).status_code == 403
        assert client.get(f"/api/v1/queries/{other.id}/executions", auth=auth).status_code == 403
        assert client.put(f"/api/v1/queries/{other.id}", json={"name": "x"}, auth=auth).status_code == 403
