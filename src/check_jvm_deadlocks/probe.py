"""
Process Probe

Attaches to a JVM, makes sure its management agent is running and asks it
for deadlocked threads. Deadlock detection itself is done by the JVM.
"""

import logging
from typing import Protocol, Self

from check_jvm_deadlocks.config import AgentConfig
from check_jvm_deadlocks.constants import JvmProperty
from check_jvm_deadlocks.errors import AgentBootstrapError, ProcessNotFoundError
from check_jvm_deadlocks.models import DeadlockResult, deadlock_result

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------------------------
# Capabilities
# ------------------------------------------------------------------------------------

class ProcessDescriptor(Protocol):
    id: str


class AttachedProcess(Protocol):
    def read_property(self, key: str) -> str | None: ...

    def load_agent(self, path: str, options: str | None = None) -> None: ...

    def detach(self) -> None: ...


class AttachProvider(Protocol):
    def list_candidates(self) -> list[ProcessDescriptor]: ...

    def attach(self, descriptor: ProcessDescriptor) -> AttachedProcess: ...


class ManagementConnection(Protocol):
    def __enter__(self) -> Self: ...

    def __exit__(self, *exc_info) -> None: ...

    def list_deadlocked_thread_ids(self) -> list[int]: ...

    def close(self) -> None: ...


class ManagementConnector(Protocol):
    def connect(self, address: str) -> ManagementConnection: ...


# ------------------------------------------------------------------------------------
# Probe
# ------------------------------------------------------------------------------------

class ProcessProbe:
    """
    Checks a single process for deadlocked threads.

    Args:
        attach_provider: Lists and attaches to local processes.
        connector: Opens management connections from connector addresses.
        agent: Management agent settings.
    """

    def __init__(self, attach_provider: AttachProvider, connector: ManagementConnector, agent: AgentConfig) -> None:
        self._attach_provider = attach_provider
        self._connector = connector
        self._agent = agent

    def probe(self, pid: int) -> DeadlockResult:
        """
        Ask the process with the given PID for deadlocked threads.

        Raises:
            ProbeError: If the process cannot be attached to or queried.
        """
        address = self.acquire_endpoint(pid)

        logger.debug(f"Connecting to management endpoint {address}")
        with self._connector.connect(address) as connection:
            thread_ids = connection.list_deadlocked_thread_ids()

        result = deadlock_result(thread_ids)
        logger.info(f"Process {pid}: {len(thread_ids or [])} deadlocked thread(s)")
        return result

    def acquire_endpoint(self, pid: int) -> str:
        """
        Get the connector address of the process, starting its agent if needed.

        The low-level attachment is released before returning, whatever happens.

        Raises:
            ProcessNotFoundError: If no attachable process has this PID.
            AgentBootstrapError: If no connector address can be obtained.
        """
        descriptor = self._find_descriptor(pid)
        attached = self._attach_provider.attach(descriptor)
        try:
            address = self._try_get_endpoint(attached)
            if address is None:
                self._start_agent(attached)
                address = self._try_get_endpoint(attached)
            if address is None:
                raise AgentBootstrapError(
                    f"Management agent started on process {pid} but published no "
                    f"'{self._agent.connector_property}' address"
                )
            return address
        finally:
            attached.detach()

    def _find_descriptor(self, pid: int) -> ProcessDescriptor:
        for descriptor in self._attach_provider.list_candidates():
            if descriptor.id == str(pid):
                return descriptor
        raise ProcessNotFoundError(f"Unable to check process with PID {pid}: no such Java process")

    def _try_get_endpoint(self, attached: AttachedProcess) -> str | None:
        address = attached.read_property(self._agent.connector_property)
        logger.debug(f"{self._agent.connector_property} = {address}")
        return address or None

    def _start_agent(self, attached: AttachedProcess) -> None:
        jar_path = self._agent.jar_path
        if "${java.home}" in jar_path:
            java_home = attached.read_property(JvmProperty.JAVA_HOME)
            if not java_home:
                raise AgentBootstrapError("Cannot locate management agent: target has no java.home property")
            jar_path = jar_path.replace("${java.home}", java_home)

        logger.info(f"No management agent running, loading {jar_path}")
        attached.load_agent(jar_path, self._agent.options or None)
