"""
Check JVM Deadlocks Models

Transient values passed between the resolver, the probe and the CLI:
where the PID comes from, what the probe found and what the plugin reports.
"""

from collections.abc import Iterable
from pathlib import Path
import sys

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError

from check_jvm_deadlocks.constants import CheckStatus
from check_jvm_deadlocks.errors import ConfigError

# ------------------------------------------------------------------------------------
# PID sources
# ------------------------------------------------------------------------------------

class ExplicitPid(BaseModel):
    """PID given directly on the command line."""
    model_config = ConfigDict(frozen=True)

    pid: PositiveInt


class PidFile(BaseModel):
    """Path to a file holding the PID."""
    model_config = ConfigDict(frozen=True)

    path: Path


class ServiceName(BaseModel):
    """systemd unit whose main process is checked."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)


PidSource = ExplicitPid | PidFile | ServiceName


def pid_source_from_options(
    pid: int | None = None,
    pid_file: str | Path | None = None,
    systemd_unit: str | None = None,
) -> PidSource:
    """
    Build the single PID source selected on the command line.

    Args:
        pid: Explicit PID (``-p``).
        pid_file: PID file path (``-f``).
        systemd_unit: systemd unit name (``-s``).

    Returns:
        PidSource: The one populated variant.

    Raises:
        ConfigError: If none or several sources are given, or a value is invalid.
    """
    supplied = [value for value in (pid, pid_file, systemd_unit) if value is not None]
    if len(supplied) != 1:
        raise ConfigError("Exactly one of --pid, --pid-file or --systemd-unit is required")

    try:
        if pid is not None:
            return ExplicitPid(pid=pid)
        if pid_file is not None:
            return PidFile(path=Path(pid_file))
        return ServiceName(name=systemd_unit)
    except ValidationError as e:
        raise ConfigError(f"Invalid PID source: {e.errors()[0]['msg']}") from e


# ------------------------------------------------------------------------------------
# Probe results
# ------------------------------------------------------------------------------------

class NoDeadlock(BaseModel):
    """The target runtime reported no deadlocked threads."""
    model_config = ConfigDict(frozen=True)


class Deadlocked(BaseModel):
    """The target runtime reported threads in a deadlock cycle."""
    model_config = ConfigDict(frozen=True)

    thread_ids: frozenset[int] = Field(min_length=1)


DeadlockResult = NoDeadlock | Deadlocked


def deadlock_result(thread_ids: Iterable[int] | None) -> DeadlockResult:
    """Map the runtime's answer to a result; ``None`` and empty both mean no deadlock."""
    ids = frozenset(thread_ids or ())
    if not ids:
        return NoDeadlock()
    return Deadlocked(thread_ids=ids)


# ------------------------------------------------------------------------------------
# Plugin outcome
# ------------------------------------------------------------------------------------

class CheckOutcome(BaseModel):
    """Status and one-line message reported to the monitoring system."""
    model_config = ConfigDict(frozen=True)

    status: CheckStatus
    message: str

    @classmethod
    def ok(cls, pid: int) -> "CheckOutcome":
        return cls(status=CheckStatus.OK, message=f"no deadlock detected for process {pid}")

    @classmethod
    def warning(cls, message: str) -> "CheckOutcome":
        return cls(status=CheckStatus.WARNING, message=message)

    @classmethod
    def critical(cls, pid: int, thread_count: int) -> "CheckOutcome":
        return cls(
            status=CheckStatus.CRITICAL,
            message=f"Deadlock detected on process {pid} ({thread_count} deadlocked threads)",
        )

    @classmethod
    def unknown(cls, reason: str) -> "CheckOutcome":
        return cls(status=CheckStatus.UNKNOWN, message=reason)

    @classmethod
    def from_result(cls, pid: int, result: DeadlockResult) -> "CheckOutcome":
        if isinstance(result, Deadlocked):
            return cls.critical(pid, len(result.thread_ids))
        return cls.ok(pid)

    @property
    def exit_code(self) -> int:
        return int(self.status)

    def render(self) -> str:
        return f"{self.status.name}: {self.message}"

    def emit(self) -> None:
        """Write the status line; UNKNOWN goes to stderr, everything else to stdout."""
        stream = sys.stderr if self.status is CheckStatus.UNKNOWN else sys.stdout
        print(self.render(), file=stream, flush=True)
