"""
Check JVM Deadlocks Errors

Exception hierarchy. Every error raised by the resolver or the probe ends the
check with an UNKNOWN status and its message as the plugin output.
"""


class CheckError(Exception):
    """Base class for all errors raised by the plugin."""


class ConfigError(CheckError):
    """Bad, missing or conflicting command-line options or settings."""


# ------------------------------------------------------------------------------------
# PID resolution
# ------------------------------------------------------------------------------------

class ResolutionError(CheckError):
    """The PID to check could not be determined."""


class PidFileError(ResolutionError):
    """The PID file is missing or unreadable."""


class InvalidFormatError(ResolutionError):
    """The PID file does not hold exactly one PID."""


class ServiceQueryError(ResolutionError):
    """The service manager could not be queried or gave an unexpected answer."""


class ServiceNotRunningError(ResolutionError):
    """The service does not exist or has no main process."""


# ------------------------------------------------------------------------------------
# Process probing
# ------------------------------------------------------------------------------------

class ProbeError(CheckError):
    """The target process could not be inspected."""


class ProcessNotFoundError(ProbeError):
    """No attachable JVM runs with the requested PID."""


class AttachDeniedError(ProbeError):
    """The current user is not allowed to attach to the target process."""


class AttachUnsupportedError(ProbeError):
    """The target process does not answer attach requests."""


class AgentBootstrapError(ProbeError):
    """The management agent endpoint could not be retrieved or started."""


class ManagementConnectionError(ProbeError):
    """The management endpoint could not be reached or queried."""
