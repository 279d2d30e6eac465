"""
Pytest configuration and shared fixtures

Provides external system records, an in-memory store, a controllable clock
and mocked async HTTP clients for engine tests.
"""

import copy
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from query_engine.cache.result_cache import ResultCache
from query_engine.connectors.registry import SystemConfig, SystemRegistry
from query_engine.domain.systems import ExternalSystem
from query_engine.secure_config import EngineConfig
from query_engine.services.query_service import QueryExecutionService
from query_engine.storage.memory import InMemoryStore

JIRA_SYSTEM = {
    "id": 1,
    "systemName": "jira",
    "displayName": "Jira Cloud",
    "baseUrl": "https://jira.example.com/",
    "authType": "basic",
    "authConfig": {"username": "svc-reporting", "password": "s3cret"},
    "connectionConfig": {"timeout": 20, "additionalHeaders": {"X-Atlassian-Token": "no-check"}},
    "queryMethods": {
        "search": {
            "type": "http_get",
            "endpoint": "/rest/api/2/search",
            "queryParam": "jql",
            "dataPath": "issues",
        },
        "search_post": {
            "type": "http_post",
            "endpoint": "/rest/api/2/search",
            "queryField": "jql",
            "defaultPayload": {"maxResults": 100},
            "dataPath": "issues",
            "timeout": 12,
        },
    },
    "dataTransforms": {
        "open_only": {"type": "filter", "config": {"field": "status", "operator": "equals", "value": "open"}},
        "by_status": {
            "type": "aggregate",
            "config": {
                "groupBy": ["status"],
                "metrics": [{"function": "count", "field": "id", "alias": "total"}],
                "sort": [{"field": "total", "direction": "desc"}],
            },
        },
        "top_two": {"type": "limit", "config": {"count": 2}},
        "broken": {"type": "limit", "config": {"count": "two"}},
    },
    "healthCheckConfig": {"endpoint": "/rest/api/2/serverInfo"},
    "isActive": True,
}

GRAPHQL_SYSTEM = {
    "id": 2,
    "systemName": "inventory",
    "baseUrl": "https://inventory.example.com",
    "authType": "bearer",
    "authConfig": {"token": "tok-123"},
    "queryMethods": {"graph": {"type": "graphql", "dataPath": "data.items"}},
}

ISSUES = [
    {"id": 1, "key": "CORE-1", "status": "open", "priority": 3, "assignee": "ana"},
    {"id": 2, "key": "CORE-2", "status": "closed", "priority": 1, "assignee": "ben"},
    {"id": 3, "key": "CORE-3", "status": "Open", "priority": 5, "assignee": None},
    {"id": 4, "key": "CORE-4", "status": "pending", "priority": 2, "assignee": "ana"},
    {"id": 5, "key": "CORE-5", "status": "open", "priority": 4, "assignee": "cy"},
]


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_response(status_code=200, json_data=None, reason="OK", json_error=None):
    """Build a mock httpx.Response"""
    response = Mock()
    response.status_code = status_code
    response.reason_phrase = reason
    response.is_success = 200 <= status_code < 300
    if json_error is not None:
        response.json = Mock(side_effect=json_error)
    else:
        response.json = Mock(return_value=json_data)
    return response


def make_client_class(client):
    """Mock AsyncSecureHTTPClient class whose context manager yields client"""
    client_class = MagicMock()
    client_class.return_value.__aenter__ = AsyncMock(return_value=client)
    client_class.return_value.__aexit__ = AsyncMock(return_value=None)
    return client_class


# ===== Record Fixtures =====


@pytest.fixture
def jira_record():
    """Raw Jira-like external system record (camelCase, as stored)"""
    return copy.deepcopy(JIRA_SYSTEM)


@pytest.fixture
def graphql_record():
    """Raw GraphQL external system record"""
    return copy.deepcopy(GRAPHQL_SYSTEM)


@pytest.fixture
def issues():
    """Sample issue rows"""
    return copy.deepcopy(ISSUES)


@pytest.fixture
def jira_system(jira_record):
    """Parsed Jira ExternalSystem"""
    return ExternalSystem.from_dict(jira_record)


@pytest.fixture
def jira_config(jira_system):
    """Resolved SystemConfig with fixed headers"""
    return SystemConfig(system=jira_system, headers={"Authorization": "Basic abc", "Accept": "application/json"})


# ===== Engine Fixtures =====


@pytest.fixture
def store(jira_record, graphql_record):
    """In-memory store seeded with two systems"""
    store = InMemoryStore()
    store.add_external_system(jira_record)
    store.add_external_system(graphql_record)
    return store


@pytest.fixture
def clock():
    """Controllable clock for cache TTL tests"""
    return FakeClock()


@pytest.fixture
def engine_config():
    """Engine configuration with short defaults"""
    return EngineConfig(default_timeout=5.0, default_cache_ttl=300)


@pytest.fixture
def result_cache(clock):
    """Result cache on the fake clock"""
    return ResultCache(clock=clock)


@pytest.fixture
def registry(store):
    """System registry over the seeded store"""
    return SystemRegistry(store)


@pytest.fixture
def service(store, registry, result_cache, engine_config):
    """QueryExecutionService wired to the seeded store and fake clock"""
    return QueryExecutionService(store, registry=registry, cache=result_cache, config=engine_config)


# ===== HTTP Fixtures =====


@pytest.fixture
def mock_http_client():
    """Mock async HTTP client returning the sample issues by default"""
    client = MagicMock()
    client.request = AsyncMock(return_value=make_response(json_data={"total": 5, "issues": copy.deepcopy(ISSUES)}))
    return client


@pytest.fixture
def response_factory():
    """Factory for mock httpx responses: response_factory(status_code, json_data, reason, json_error)"""
    return make_response


@pytest.fixture
def client_class_factory():
    """Factory for mock AsyncSecureHTTPClient classes wrapping a client"""
    return make_client_class
