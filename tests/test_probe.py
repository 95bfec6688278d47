"""
Tests for the process probe: endpoint negotiation and deadlock query.
"""

import pytest

from check_jvm_deadlocks.config import AgentConfig
from check_jvm_deadlocks.errors import (
    AgentBootstrapError,
    AttachDeniedError,
    ManagementConnectionError,
    ProcessNotFoundError,
)
from check_jvm_deadlocks.models import Deadlocked, NoDeadlock
from check_jvm_deadlocks.probe import ProcessProbe

from conftest import AGENT_URL, FakeAttachedProcess, FakeAttachProvider, FakeConnection, FakeConnector


class TestAcquireEndpoint:
    def test_running_agent(self, running_jvm, agent_config):
        """An already running agent is used as-is."""
        probe = ProcessProbe(FakeAttachProvider({1234: running_jvm}), FakeConnector(), agent_config)

        assert probe.acquire_endpoint(1234) == AGENT_URL
        assert running_jvm.loaded_agents == []
        assert running_jvm.detached

    def test_starts_agent(self, bare_jvm, agent_config):
        """The agent bundled under the target's java.home is loaded, then the address re-read."""
        probe = ProcessProbe(FakeAttachProvider({1234: bare_jvm}), FakeConnector(), agent_config)

        assert probe.acquire_endpoint(1234) == AGENT_URL
        assert bare_jvm.loaded_agents == [("/usr/lib/jvm/java-17/lib/jolokia-agent.jar", "host=127.0.0.1,port=0")]
        assert bare_jvm.detached

    def test_custom_agent_jar(self, bare_jvm):
        agent = AgentConfig(jar_path="/opt/jolokia/agent.jar", options="")
        probe = ProcessProbe(FakeAttachProvider({1234: bare_jvm}), FakeConnector(), agent)

        probe.acquire_endpoint(1234)

        assert bare_jvm.loaded_agents == [("/opt/jolokia/agent.jar", None)]

    def test_process_not_found(self, running_jvm, agent_config):
        provider = FakeAttachProvider({1234: running_jvm})
        probe = ProcessProbe(provider, FakeConnector(), agent_config)

        with pytest.raises(ProcessNotFoundError, match="Unable to check process with PID 4321"):
            probe.acquire_endpoint(4321)
        assert provider.attached == []

    def test_attach_denied(self, running_jvm, agent_config):
        provider = FakeAttachProvider({1234: running_jvm}, attach_error=AttachDeniedError("Permission denied"))
        probe = ProcessProbe(provider, FakeConnector(), agent_config)

        with pytest.raises(AttachDeniedError):
            probe.acquire_endpoint(1234)

    def test_agent_load_failure_detaches(self, agent_config):
        jvm = FakeAttachedProcess(
            properties={"java.home": "/usr/lib/jvm/java-17"},
            load_error=AgentBootstrapError("Agent JAR not found"),
        )
        probe = ProcessProbe(FakeAttachProvider({1234: jvm}), FakeConnector(), agent_config)

        with pytest.raises(AgentBootstrapError, match="Agent JAR not found"):
            probe.acquire_endpoint(1234)
        assert jvm.detached

    def test_agent_publishes_no_address(self, agent_config):
        """The address is re-read exactly once after starting the agent."""
        jvm = FakeAttachedProcess(properties={"java.home": "/usr/lib/jvm/java-17"})
        probe = ProcessProbe(FakeAttachProvider({1234: jvm}), FakeConnector(), agent_config)

        with pytest.raises(AgentBootstrapError, match="published no 'jolokia.agent' address"):
            probe.acquire_endpoint(1234)
        assert len(jvm.loaded_agents) == 1
        assert jvm.detached

    def test_missing_java_home(self, agent_config):
        jvm = FakeAttachedProcess()
        probe = ProcessProbe(FakeAttachProvider({1234: jvm}), FakeConnector(), agent_config)

        with pytest.raises(AgentBootstrapError, match="java.home"):
            probe.acquire_endpoint(1234)
        assert jvm.loaded_agents == []
        assert jvm.detached


class TestProbe:
    def test_no_deadlock(self, running_jvm, agent_config):
        connector = FakeConnector(FakeConnection(thread_ids=None))
        probe = ProcessProbe(FakeAttachProvider({1234: running_jvm}), connector, agent_config)

        assert probe.probe(1234) == NoDeadlock()
        assert connector.addresses == [AGENT_URL]
        assert connector.connection.closed

    def test_empty_thread_list(self, running_jvm, agent_config):
        connector = FakeConnector(FakeConnection(thread_ids=[]))
        probe = ProcessProbe(FakeAttachProvider({1234: running_jvm}), connector, agent_config)

        assert probe.probe(1234) == NoDeadlock()

    def test_deadlock(self, bare_jvm, agent_config):
        connector = FakeConnector(FakeConnection(thread_ids=[21, 22, 23]))
        probe = ProcessProbe(FakeAttachProvider({1234: bare_jvm}), connector, agent_config)

        result = probe.probe(1234)

        assert isinstance(result, Deadlocked)
        assert len(result.thread_ids) == 3
        assert bare_jvm.detached
        assert connector.connection.closed

    def test_query_failure_closes_connection(self, running_jvm, agent_config):
        connection = FakeConnection(error=ManagementConnectionError("Connection reset by peer"))
        probe = ProcessProbe(FakeAttachProvider({1234: running_jvm}), FakeConnector(connection), agent_config)

        with pytest.raises(ManagementConnectionError):
            probe.probe(1234)
        assert connection.closed

    def test_connect_failure(self, running_jvm, agent_config):
        connector = FakeConnector(refuse=True)
        probe = ProcessProbe(FakeAttachProvider({1234: running_jvm}), connector, agent_config)

        with pytest.raises(ManagementConnectionError, match="Connection refused"):
            probe.probe(1234)
        assert running_jvm.detached
