"""
Check JVM Deadlocks Configuration

Handles command-line argument parsing and configuration loading from
command-line options and CHECK_JVM_DEADLOCKS_* environment variables.
"""

import argparse
from collections.abc import Mapping
import logging
import os
from pathlib import Path
import sys
from typing import Any, Literal

from pydantic import BaseModel, Field, PositiveFloat, ValidationError, field_validator

from check_jvm_deadlocks.constants import ENV_PREFIX, PROGRAM_NAME, JvmProperty
from check_jvm_deadlocks.errors import ConfigError
from check_jvm_deadlocks.utils import get_version

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"

# ------------------------------------------------------------------------------------
# Configuration Models
# ------------------------------------------------------------------------------------

class LogConfig(BaseModel):
    """Logging configuration."""
    level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = "WARNING"

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> str:
        return str(value).upper()


class AttachConfig(BaseModel):
    """HotSpot attach configuration."""
    timeout: PositiveFloat = 10.0
    tmpdir: Path = Path("/tmp")


class AgentConfig(BaseModel):
    """Management agent bootstrap and connection configuration."""
    jar_path: str = "${java.home}/lib/jolokia-agent.jar"
    options: str = "host=127.0.0.1,port=0"
    connector_property: str = JvmProperty.JOLOKIA_AGENT.value
    http_timeout: PositiveFloat | None = None


class SystemdConfig(BaseModel):
    """Service manager configuration."""
    systemctl: str = "systemctl"


class ConfigModel(BaseModel):
    """Root configuration model."""
    log: LogConfig = Field(default_factory=LogConfig)
    attach: AttachConfig = Field(default_factory=AttachConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    systemd: SystemdConfig = Field(default_factory=SystemdConfig)


# ------------------------------------------------------------------------------------
# Command Line
# ------------------------------------------------------------------------------------

class ArgumentParser(argparse.ArgumentParser):
    """Argument parser raising ConfigError instead of exiting with status 2."""

    def error(self, message: str):
        raise ConfigError(message)


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid PID: '{value}'")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"PID must be a positive integer, got {number}")
    return number


def build_parser(linux: bool | None = None) -> ArgumentParser:
    """
    Build the command-line parser.

    Args:
        linux: Whether to offer the systemd option; defaults to the running platform.

    Returns:
        ArgumentParser: The configured parser.
    """
    if linux is None:
        linux = sys.platform.startswith("linux")

    # No -h or --version: anything but a check run is a usage error (exit 3).
    parser = ArgumentParser(
        prog=PROGRAM_NAME,
        description=f"Check a running JVM for deadlocked threads (version {get_version()})",
        add_help=False,
    )

    pid_options = parser.add_mutually_exclusive_group(required=True)
    pid_options.add_argument(
        "-p", "--pid",
        help="PID number of the Java process to monitor",
        metavar="INTEGER",
        type=positive_int,
    )
    pid_options.add_argument(
        "-f", "--pid-file",
        help="Path to a PID file",
        metavar="FILE",
    )
    # Linux-specific options
    if linux:
        pid_options.add_argument(
            "-s", "--systemd-unit",
            help="systemd unit service",
            metavar="SERVICE",
        )

    parser.add_argument("--log-level", help="Diagnostic log level on stderr (default: WARNING)")
    parser.add_argument("--agent-jar", help="Management agent jar loaded when none is running")
    parser.add_argument("--agent-options", help="Options passed to the management agent")
    parser.add_argument("--attach-timeout", help="Seconds to wait for the JVM attach listener", type=float)

    return parser


# ------------------------------------------------------------------------------------
# Configuration Loading
# ------------------------------------------------------------------------------------

def _pick(cli_value: Any, env: Mapping[str, str], name: str) -> Any:
    if cli_value is not None:
        return cli_value
    return env.get(ENV_PREFIX + name) or None


def _section(**values: Any) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def read_config(args: argparse.Namespace | None = None, environ: Mapping[str, str] | None = None) -> ConfigModel:
    """
    Read and validate the configuration.

    Args:
        args: Parsed command-line arguments, if any.
        environ: Environment to read overrides from (defaults to os.environ).

    Returns:
        ConfigModel: The populated configuration object.

    Raises:
        ConfigError: If a setting fails validation.
    """
    env = os.environ if environ is None else environ
    cli = vars(args) if args is not None else {}

    try:
        model = ConfigModel(
            log=_section(
                level=_pick(cli.get("log_level"), env, "LOG_LEVEL"),
            ),
            attach=_section(
                timeout=_pick(cli.get("attach_timeout"), env, "ATTACH_TIMEOUT"),
                tmpdir=env.get(ENV_PREFIX + "TMPDIR") or None,
            ),
            agent=_section(
                jar_path=_pick(cli.get("agent_jar"), env, "AGENT_JAR"),
                options=_pick(cli.get("agent_options"), env, "AGENT_OPTIONS"),
                http_timeout=env.get(ENV_PREFIX + "HTTP_TIMEOUT") or None,
            ),
            systemd=_section(
                systemctl=env.get(ENV_PREFIX + "SYSTEMCTL") or None,
            ),
        )
    except ValidationError as e:
        error = e.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        raise ConfigError(f"Invalid setting '{location}': {error['msg']}") from e

    return model


def setup_logging(log: LogConfig) -> None:
    """Send diagnostics to stderr so stdout only carries the status line."""
    root_logger = logging.getLogger()
    root_logger.setLevel(log.level)
    formatter = logging.Formatter(LOG_FORMAT)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream = logging.StreamHandler(sys.stderr)
    stream.setLevel(log.level)
    stream.setFormatter(formatter)
    root_logger.addHandler(stream)
