"""
Shared pytest fixtures for check_jvm_deadlocks tests.
"""

from dataclasses import dataclass, field
import logging
import os

import pytest

from check_jvm_deadlocks.config import AgentConfig, ConfigModel
from check_jvm_deadlocks.errors import ManagementConnectionError


@dataclass(frozen=True)
class FakeDescriptor:
    id: str


class FakeAttachedProcess:
    """Attached process whose properties change once an agent is loaded."""

    def __init__(self, properties=None, agent_properties=None, load_error=None):
        self.properties = dict(properties or {})
        self.agent_properties = dict(agent_properties or {})
        self.load_error = load_error
        self.loaded_agents = []
        self.detached = False

    def read_property(self, key):
        return self.properties.get(key)

    def load_agent(self, path, options=None):
        self.loaded_agents.append((path, options))
        if self.load_error is not None:
            raise self.load_error
        self.properties.update(self.agent_properties)

    def detach(self):
        self.detached = True


class FakeAttachProvider:
    def __init__(self, processes=None, attach_error=None):
        self.processes = processes or {}
        self.attach_error = attach_error
        self.attached = []

    def list_candidates(self):
        return [FakeDescriptor(id=str(pid)) for pid in self.processes]

    def attach(self, descriptor):
        if self.attach_error is not None:
            raise self.attach_error
        process = self.processes[int(descriptor.id)]
        self.attached.append(process)
        return process


@dataclass
class FakeConnection:
    thread_ids: list | None = None
    error: Exception | None = None
    closed: bool = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def list_deadlocked_thread_ids(self):
        if self.error is not None:
            raise self.error
        return self.thread_ids

    def close(self):
        self.closed = True


@dataclass
class FakeConnector:
    connection: FakeConnection = field(default_factory=FakeConnection)
    addresses: list = field(default_factory=list)
    refuse: bool = False

    def connect(self, address):
        self.addresses.append(address)
        if self.refuse:
            raise ManagementConnectionError(f"Unable to connect to {address}: Connection refused")
        return self.connection


AGENT_URL = "http://127.0.0.1:8778/jolokia/"


@pytest.fixture
def agent_config():
    return AgentConfig()


@pytest.fixture
def config():
    return ConfigModel()


@pytest.fixture
def running_jvm():
    """A JVM with a Jolokia agent already running."""
    return FakeAttachedProcess(properties={"java.home": "/usr/lib/jvm/java-17", "jolokia.agent": AGENT_URL})


@pytest.fixture
def bare_jvm():
    """A JVM without a management agent."""
    return FakeAttachedProcess(
        properties={"java.home": "/usr/lib/jvm/java-17"},
        agent_properties={"jolokia.agent": AGENT_URL},
    )


@pytest.fixture
def write_pid_file(tmp_path):
    """Write a PID file with the given content and return its path."""

    def _write(content, name="app.pid"):
        path = tmp_path / name
        path.write_text(content)
        return path

    return _write


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging() replaces root handlers; put them back after each test."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep CHECK_JVM_DEADLOCKS_* settings of the host out of the tests."""
    for name in list(os.environ):
        if name.startswith("CHECK_JVM_DEADLOCKS_"):
            monkeypatch.delenv(name)
