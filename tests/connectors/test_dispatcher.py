"""
Tests for method resolution and protocol dispatch
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from query_engine.connectors.dispatcher import QueryDispatcher, resolve_method
from query_engine.connectors.executors import ProtocolExecutor
from query_engine.core.exceptions import ConfigurationError, ValidationError
from query_engine.domain.systems import ExternalSystem, ProtocolType, QueryMethod


def stub_executor(result=None):
    executor = MagicMock(spec=ProtocolExecutor)
    executor.execute = AsyncMock(return_value=result)
    return executor


class TestResolveMethod:
    """Test method selection"""

    def test_named_method(self, jira_system):
        """Test a declared name resolves to its method"""
        assert resolve_method(jira_system, "search_post").name == "search_post"

    def test_missing_name_falls_back_to_first(self, jira_system):
        """Test no method name selects the first declared method"""
        assert resolve_method(jira_system, None).name == "search"

    def test_unknown_name_lists_available(self, jira_system):
        """Test an undeclared name raises ValidationError naming the declared methods"""
        with pytest.raises(ValidationError, match="available: search, search_post"):
            resolve_method(jira_system, "delete_everything")

    def test_no_methods_declared(self):
        """Test a system without methods cannot execute anything"""
        system = ExternalSystem.from_dict({"id": 3, "systemName": "empty", "baseUrl": "https://e.example.com"})

        with pytest.raises(ValidationError, match="declares no query methods"):
            resolve_method(system, None)


class TestQueryDispatcher:
    """Test dispatch and timeout precedence"""

    def test_missing_executor_rejected(self):
        """Test a table lacking a protocol raises at construction"""
        partial = {ProtocolType.HTTP_GET: stub_executor()}

        with patch("query_engine.connectors.dispatcher.default_executors", return_value=partial):
            with pytest.raises(ConfigurationError, match="No executor registered") as exc_info:
                QueryDispatcher()

        assert "sql" in str(exc_info.value)
        assert "http_get" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_dispatches_to_protocol_executor(self, jira_config):
        """Test the method's protocol selects the executor"""
        get_executor = stub_executor(result=[{"id": 1}])
        dispatcher = QueryDispatcher(executors={ProtocolType.HTTP_GET: get_executor})

        method, data = await dispatcher.dispatch(jira_config, "search", "status = open", {"p": 1})

        assert method.name == "search"
        assert data == [{"id": 1}]
        request = get_executor.execute.await_args.args[0]
        assert request.query == "status = open"
        assert request.parameters == {"p": 1}
        assert request.system_config is jira_config

    @pytest.mark.asyncio
    async def test_unsupported_protocol(self, jira_config):
        """Test an unknown method type raises ConfigurationError"""
        jira_config.system.query_methods["ftp"] = QueryMethod(name="ftp", type="ftp")

        with pytest.raises(ConfigurationError, match="Unsupported query method type: ftp"):
            await QueryDispatcher().dispatch(jira_config, "ftp", "x")

    @pytest.mark.asyncio
    async def test_timeout_precedence(self, jira_config):
        """Test request > method > system > engine default"""
        executor = stub_executor()
        dispatcher = QueryDispatcher(
            executors={ProtocolType.HTTP_GET: executor, ProtocolType.HTTP_POST: executor}, default_timeout=30.0
        )

        await dispatcher.dispatch(jira_config, "search_post", "q", timeout=2.5)
        assert executor.execute.await_args.args[0].timeout == 2.5

        await dispatcher.dispatch(jira_config, "search_post", "q")
        assert executor.execute.await_args.args[0].timeout == 12.0

        await dispatcher.dispatch(jira_config, "search", "q")
        assert executor.execute.await_args.args[0].timeout == 20.0

        jira_config.system.connection_config.timeout = None
        await dispatcher.dispatch(jira_config, "search", "q")
        assert executor.execute.await_args.args[0].timeout == 30.0

