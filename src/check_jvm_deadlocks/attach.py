"""
HotSpot Attach

Lists local JVMs and talks to their attach listener over its UNIX socket,
the same way the JDK attach API does on Linux.
"""

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import signal
import socket
import time

from check_jvm_deadlocks import protocol
from check_jvm_deadlocks.constants import AttachCommand
from check_jvm_deadlocks.errors import (
    AgentBootstrapError,
    AttachDeniedError,
    AttachUnsupportedError,
    ProcessNotFoundError,
)
from check_jvm_deadlocks.utils import PROC_ROOT, get_namespace_pid, get_process_tmpdir, is_process_running

logger = logging.getLogger(__name__)

PERFDATA_PREFIX = "hsperfdata_"
POLL_INTERVAL = 0.2
RECV_SIZE = 8192


@dataclass(frozen=True)
class VirtualMachineDescriptor:
    """A JVM visible through its performance data file."""

    id: str
    perf_file: Path

    @property
    def pid(self) -> int:
        return int(self.id)


class HotSpotAttachProvider:
    """
    Finds and attaches to HotSpot JVMs running on this host.

    Args:
        timeout: Seconds to wait for the attach listener to come up.
        tmpdir: Directory holding hsperfdata_* and attach socket files.
        proc_root: Root of the proc filesystem.
    """

    def __init__(self, timeout: float = 10.0, tmpdir: Path = Path("/tmp"), proc_root: Path = PROC_ROOT) -> None:
        self._timeout = timeout
        self._tmpdir = tmpdir
        self._proc_root = proc_root

    def list_candidates(self) -> list[VirtualMachineDescriptor]:
        """List running JVMs publishing performance data in the temporary directory."""
        descriptors = []
        try:
            user_dirs = sorted(self._tmpdir.glob(f"{PERFDATA_PREFIX}*"))
        except OSError as e:
            logger.debug(f"Cannot list {self._tmpdir}: {e}")
            return descriptors

        for user_dir in user_dirs:
            try:
                entries = sorted(user_dir.iterdir())
            except OSError as e:
                logger.debug(f"Skipping {user_dir}: {e}")
                continue

            for entry in entries:
                if not entry.name.isdigit():
                    continue
                if not is_process_running(int(entry.name), self._proc_root):
                    logger.debug(f"Skipping stale performance data {entry}")
                    continue
                descriptors.append(VirtualMachineDescriptor(id=entry.name, perf_file=entry))

        logger.debug(f"Found {len(descriptors)} candidate JVM(s): {[d.id for d in descriptors]}")
        return descriptors

    def attach(self, descriptor: VirtualMachineDescriptor) -> "HotSpotVirtualMachine":
        """
        Attach to a JVM, starting its attach listener if needed.

        Raises:
            ProcessNotFoundError: If the process exited.
            AttachDeniedError: If the current user may not signal the process.
            AttachUnsupportedError: If the attach listener never comes up.
        """
        pid = descriptor.pid
        ns_pid = get_namespace_pid(pid, self._proc_root)
        tmpdir = get_process_tmpdir(pid, self._tmpdir, self._proc_root)
        socket_file = tmpdir / f".java_pid{ns_pid}"

        if not socket_file.exists():
            self._start_attach_listener(pid, ns_pid, tmpdir, socket_file)

        logger.debug(f"Attached to JVM {pid} through {socket_file}")
        return HotSpotVirtualMachine(descriptor, socket_file)

    def _start_attach_listener(self, pid: int, ns_pid: int, tmpdir: Path, socket_file: Path) -> None:
        attach_file = self._create_attach_file(pid, ns_pid, tmpdir)
        try:
            logger.debug(f"Sending SIGQUIT to {pid} to start its attach listener")
            try:
                os.kill(pid, signal.SIGQUIT)
            except ProcessLookupError as e:
                raise ProcessNotFoundError(f"Process {pid} is no longer running") from e
            except PermissionError as e:
                raise AttachDeniedError(f"Permission denied to attach to process {pid}") from e

            deadline = time.monotonic() + self._timeout
            while not socket_file.exists():
                if time.monotonic() >= deadline:
                    raise AttachUnsupportedError(
                        f"Unable to open socket file {socket_file}: "
                        "target process not responding or HotSpot VM not loaded"
                    )
                time.sleep(POLL_INTERVAL)
        finally:
            attach_file.unlink(missing_ok=True)

    def _create_attach_file(self, pid: int, ns_pid: int, tmpdir: Path) -> Path:
        """Create the .attach_pid trigger file the JVM looks for on SIGQUIT."""
        candidates = [
            self._proc_root / str(pid) / "cwd" / f".attach_pid{ns_pid}",
            tmpdir / f".attach_pid{ns_pid}",
        ]
        last_error = None
        for attach_file in candidates:
            try:
                attach_file.touch()
                return attach_file
            except OSError as e:
                logger.debug(f"Cannot create {attach_file}: {e}")
                last_error = e

        if isinstance(last_error, PermissionError):
            raise AttachDeniedError(f"Permission denied to attach to process {pid}") from last_error
        raise AttachUnsupportedError(f"Unable to create attach file for process {pid}: {last_error}") from last_error


class HotSpotVirtualMachine:
    """An attached JVM. Each command opens a new connection to the attach socket."""

    def __init__(self, descriptor: VirtualMachineDescriptor, socket_file: Path) -> None:
        self.descriptor = descriptor
        self._socket_file = socket_file
        self._detached = False

    def get_system_properties(self) -> dict[str, str]:
        output = self._execute(AttachCommand.PROPERTIES)
        return self._parse_properties(output)

    def read_property(self, key: str) -> str | None:
        """Read a system property of the target JVM, or None if it isn't set."""
        return self.get_system_properties().get(key)

    def load_agent(self, path: str, options: str | None = None) -> None:
        """
        Load a Java agent jar into the target JVM.

        Raises:
            AgentBootstrapError: If the agent cannot be loaded or fails to start.
        """
        argument = f"{path}={options}" if options else path
        logger.debug(f"Loading agent {argument} into JVM {self.descriptor.id}")
        output = self._execute(AttachCommand.LOAD, "instrument", "false", argument)

        try:
            return_code = protocol.parse_agent_load_result(output)
        except ValueError as e:
            raise AgentBootstrapError(f"Failed to load agent {path}: {e}") from e
        if return_code != 0:
            raise AgentBootstrapError(f"Agent {path} failed to initialize (return code {return_code})")

    def detach(self) -> None:
        self._detached = True

    def _parse_properties(self, output: str) -> dict[str, str]:
        try:
            return protocol.parse_properties(output)
        except ValueError as e:
            raise AgentBootstrapError(f"Invalid properties from JVM {self.descriptor.id}: {e}") from e

    def _execute(self, command: str, *args: str) -> str:
        if self._detached:
            raise AgentBootstrapError(f"Detached from JVM {self.descriptor.id}")

        request = protocol.encode_request(command, *args)
        chunks = []
        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
                sock.connect(str(self._socket_file))
                sock.sendall(request)
                while chunk := sock.recv(RECV_SIZE):
                    chunks.append(chunk)
        except PermissionError as e:
            raise AttachDeniedError(f"Permission denied to attach to process {self.descriptor.id}") from e
        except OSError as e:
            raise AgentBootstrapError(f"Communication with JVM {self.descriptor.id} failed: {e}") from e

        try:
            status, output = protocol.parse_response(b"".join(chunks))
        except ValueError as e:
            raise AgentBootstrapError(f"Invalid response from JVM {self.descriptor.id}: {e}") from e

        if status != 0:
            message = output.strip() or f"status {status}"
            raise AgentBootstrapError(f"Command '{command}' failed on JVM {self.descriptor.id}: {message}")

        return output
