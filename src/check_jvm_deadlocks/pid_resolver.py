"""
PID Resolver

Turns the PID source selected on the command line into a numeric PID:
an explicit PID, a PID file or the main process of a systemd unit.
"""

import logging
from pathlib import Path
import re
import subprocess

from check_jvm_deadlocks.errors import (
    InvalidFormatError,
    PidFileError,
    ServiceNotRunningError,
    ServiceQueryError,
)
from check_jvm_deadlocks.models import ExplicitPid, PidFile, PidSource, ServiceName

logger = logging.getLogger(__name__)

PID_LINE_REGEX = re.compile(r"\s*([0-9]+)\s*")
MAIN_PID_REGEX = re.compile(r"MainPID=([0-9]+)\s*")


def get_pid_from_file(path: Path) -> int:
    """
    Read a PID from a PID file.

    A PID file is supposed to only contain an integer, corresponding to a
    (running) process ID. Blank lines are ignored.

    Args:
        path: The PID file to parse.

    Returns:
        int: The PID stored in the file.

    Raises:
        PidFileError: If the file doesn't exist or is not readable.
        InvalidFormatError: If the file doesn't contain a unique PID.
    """
    try:
        content = path.read_text()
    except UnicodeDecodeError as e:
        raise InvalidFormatError(f"Invalid content for PID file {path}") from e
    except OSError as e:
        raise PidFileError(f"Unable to read PID file {path}: {e.strerror or e}") from e

    pid = None
    for line in content.splitlines():
        if not line.strip():
            continue

        # Only one integer number is expected
        match = PID_LINE_REGEX.fullmatch(line)
        if pid is None and match:
            pid = int(match.group(1))
        else:
            raise InvalidFormatError(f"Invalid content for PID file {path}")

    if pid is None or pid == 0:
        raise InvalidFormatError(f"Invalid content for PID file {path}")

    logger.debug(f"Read PID {pid} from {path}")
    return pid


def get_pid_from_systemd_unit(unit: str, systemctl: str = "systemctl") -> int:
    """
    Get the main PID of a systemd unit service.

    Args:
        unit: The name of the service.
        systemctl: The systemctl executable.

    Returns:
        int: The main PID of the service.

    Raises:
        ServiceQueryError: If retrieving the service status fails.
        ServiceNotRunningError: If the service doesn't exist or is not running.
    """
    command = [systemctl, "show", "-p", "MainPID", "--", unit]
    logger.debug(f"Running {' '.join(command)}")
    try:
        completed = subprocess.run(command, capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise ServiceQueryError(
            f"Unable to retrieve status for systemd unit {unit}: {stderr or f'exit status {e.returncode}'}"
        ) from e
    except OSError as e:
        raise ServiceQueryError(f"Unable to run {systemctl}: {e.strerror or e}") from e

    match = MAIN_PID_REGEX.fullmatch(completed.stdout)
    if not match:
        raise ServiceQueryError(f"Unable to retrieve status for systemd unit {unit}")

    pid = int(match.group(1))
    if pid == 0:
        raise ServiceNotRunningError(f"Systemd unit {unit} service doesn't exist or is not running")

    logger.debug(f"Systemd unit {unit} has main PID {pid}")
    return pid


def resolve(source: PidSource, systemctl: str = "systemctl") -> int:
    """
    Resolve a PID source to a PID.

    Explicit PIDs are returned unchanged; whether the process exists is only
    known once the probe tries to attach to it.

    Raises:
        ResolutionError: If the PID cannot be determined.
    """
    if isinstance(source, ExplicitPid):
        return source.pid
    if isinstance(source, PidFile):
        return get_pid_from_file(source.path)
    if isinstance(source, ServiceName):
        return get_pid_from_systemd_unit(source.name, systemctl)
    raise TypeError(f"Unsupported PID source: {source!r}")
