"""
Check JVM Deadlocks Utilities

Helper functions for version detection and /proc lookups.
"""

from importlib import metadata
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

DISTRIBUTION_NAME = "check-jvm-deadlocks"
PROC_ROOT = Path("/proc")


def get_version() -> str:
    """
    Get the plugin version.

    Priority:
    1. CHECK_JVM_DEADLOCKS_VERSION environment variable (set by packagers)
    2. Installed distribution metadata
    3. 'dev' as fallback

    Returns:
        str: The version string.
    """
    version = os.getenv("CHECK_JVM_DEADLOCKS_VERSION")
    if version:
        return version

    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "dev"


def is_process_running(pid: int, proc_root: Path = PROC_ROOT) -> bool:
    """Check if a process with the given PID exists by looking at /proc."""
    try:
        return (proc_root / str(pid)).is_dir()
    except OSError:
        return False


def get_namespace_pid(pid: int, proc_root: Path = PROC_ROOT) -> int:
    """
    Get the PID of a process as seen inside its own PID namespace.

    A JVM running in a container names its attach files after the PID it sees
    itself, which is the last field of the 'NSpid:' line in /proc/<pid>/status.

    Args:
        pid: The host PID.
        proc_root: Root of the proc filesystem.

    Returns:
        int: The innermost namespace PID, or ``pid`` if unavailable.
    """
    try:
        status = (proc_root / str(pid) / "status").read_text()
    except OSError:
        return pid

    for line in status.splitlines():
        if line.startswith("NSpid:"):
            fields = line.split()[1:]
            if fields and fields[-1].isdigit():
                return int(fields[-1])
    return pid


def get_process_tmpdir(pid: int, default: Path, proc_root: Path = PROC_ROOT) -> Path:
    """
    Get the temporary directory of a process, seen through its root filesystem.

    Falls back to ``default`` when /proc/<pid>/root is not reachable, which is
    the case for processes owned by other users.
    """
    candidate = proc_root / str(pid) / "root" / default.relative_to(default.anchor)
    try:
        if candidate.is_dir():
            return candidate
    except OSError as e:
        logger.debug(f"Cannot access {candidate}: {e}")
    return default
