"""
API Test Configuration

Provides fixtures for API testing including authentication mocking and a
test client wired to the seeded in-memory store.
"""

import os
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from query_engine.api.app import create_app


@pytest.fixture(autouse=True)
def mock_api_auth_config():
    """
    Auto-use fixture to mock API authentication configuration for all API tests.

    Provides test credentials:
    - username: admin
    - password: changeme
    """
    mock_auth = MagicMock()
    mock_auth.username = "admin"
    mock_auth.password = "changeme"

    mock_config = MagicMock()
    mock_config.get_api_auth_config.return_value = mock_auth

    # verify_credentials imports get_config lazily from this module
    with patch("query_engine.secure_config.get_config", return_value=mock_config):
        yield


@pytest.fixture(autouse=True)
def mock_env_vars():
    """
    Auto-use fixture to set required environment variables for API tests.
    """
    env_vars = {
        "API_USERNAME": "admin",
        "API_PASSWORD": "changeme",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        yield


@pytest.fixture
def client(store, service):
    """FastAPI test client over the seeded store and fake-clock service"""
    return TestClient(create_app(store=store, service=service))


@pytest.fixture
def auth():
    """HTTP Basic auth credentials for testing."""
    return ("admin", "changeme")
