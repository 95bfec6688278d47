"""
Check JVM Deadlocks Constants

Shared constants and enums for type safety across the application.
"""

from enum import IntEnum, StrEnum

PROGRAM_NAME = "check_jvm_deadlocks"
ENV_PREFIX = "CHECK_JVM_DEADLOCKS_"


class CheckStatus(IntEnum):
    """Monitoring plugin status values, valued by their exit code."""

    OK = 0
    WARNING = 1
    CRITICAL = 2
    UNKNOWN = 3


class AttachCommand(StrEnum):
    """Commands understood by the HotSpot attach listener."""

    PROPERTIES = "properties"
    LOAD = "load"


class JvmProperty(StrEnum):
    """Target JVM system properties read during agent bootstrap."""

    JAVA_HOME = "java.home"
    JOLOKIA_AGENT = "jolokia.agent"
