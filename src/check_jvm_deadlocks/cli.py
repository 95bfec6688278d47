"""
Check JVM Deadlocks

Monitoring plugin (Nagios plugin exit code conventions) checking whether a
Java process has deadlocked threads.

The process is selected by PID (-p), PID file (-f) or systemd unit (-s). The
plugin attaches to the JVM, starts a Jolokia agent in it when none is running,
and asks the java.lang:type=Threading MBean for deadlocked threads.

Exit codes:
0 - OK: no deadlock detected for process <pid>
2 - CRITICAL: Deadlock detected on process <pid> (<n> deadlocked threads)
3 - UNKNOWN: <message>, or usage on invalid arguments
1 - WARNING is never reported
"""

import logging
import sys

from check_jvm_deadlocks import pid_resolver
from check_jvm_deadlocks.attach import HotSpotAttachProvider
from check_jvm_deadlocks.config import ConfigModel, build_parser, read_config, setup_logging
from check_jvm_deadlocks.constants import CheckStatus
from check_jvm_deadlocks.errors import CheckError, ConfigError
from check_jvm_deadlocks.jolokia import JolokiaConnector
from check_jvm_deadlocks.models import CheckOutcome, PidSource, pid_source_from_options
from check_jvm_deadlocks.probe import ProcessProbe

logger = logging.getLogger(__name__)


def create_probe(config: ConfigModel) -> ProcessProbe:
    """Wire the probe to the HotSpot attach and Jolokia backends."""
    return ProcessProbe(
        HotSpotAttachProvider(timeout=config.attach.timeout, tmpdir=config.attach.tmpdir),
        JolokiaConnector(timeout=config.agent.http_timeout),
        config.agent,
    )


def run_check(source: PidSource, config: ConfigModel, probe: ProcessProbe | None = None) -> CheckOutcome:
    """
    Resolve the PID and probe the process.

    Returns:
        CheckOutcome: OK or CRITICAL on success, UNKNOWN on any failure.
    """
    try:
        pid = pid_resolver.resolve(source, config.systemd.systemctl)
        logger.debug(f"Checking process {pid}")

        if probe is None:
            probe = create_probe(config)
        result = probe.probe(pid)
    except CheckError as e:
        logger.debug(f"Check failed: {type(e).__name__}: {e}")
        return CheckOutcome.unknown(str(e))
    except Exception as e:
        logger.error("Unexpected error during check", exc_info=True)
        return CheckOutcome.unknown(f"{type(e).__name__}: {e}")

    return CheckOutcome.from_result(pid, result)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()

    try:
        args = parser.parse_args(argv)
        source = pid_source_from_options(
            pid=args.pid,
            pid_file=args.pid_file,
            systemd_unit=getattr(args, "systemd_unit", None),
        )
        config = read_config(args)
    except ConfigError as e:
        parser.print_help(sys.stderr)
        print(f"\n{e}", file=sys.stderr)
        return CheckStatus.UNKNOWN.value

    setup_logging(config.log)
    logger.debug(f"Config: {config.model_dump()}")

    outcome = run_check(source, config)
    outcome.emit()
    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())
