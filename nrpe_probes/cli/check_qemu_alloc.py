import argparse
import textwrap
from typing import List, Optional

from nrpe_probes.cli.common import ProbeArgumentParser, describe_error, run_probe
from nrpe_probes.config import QemuConfig
from nrpe_probes.errors import ProbeUnknownError
from nrpe_probes.log import configure_logging
from nrpe_probes.models.check import CheckResult
from nrpe_probes.models.qemu import QemuThresholds
from nrpe_probes.services import qemu_monitor

DESCRIPTION = textwrap.dedent(
    """\
    Check the memory and vCPUs allocated to running QEMU guests.

    The values following -m (memory, MiB) and -smp (vCPUs) on the command
    line of every QEMU process are summed and compared with the thresholds.
    A total strictly greater than a threshold raises WARNING or CRITICAL.
    Threshold values are rounded to the nearest integer.
    """
)

EPILOG = textwrap.dedent(
    """\
    example:
      %(prog)s -m 4000 -M 8000 -p 4 -P 8

    exit codes: 0 OK, 1 WARNING, 2 CRITICAL, 3 UNKNOWN
    """
)


def build_parser() -> argparse.ArgumentParser:
    parser = ProbeArgumentParser(
        prog="check_qemu_alloc",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-m",
        dest="memory_warning",
        type=float,
        required=True,
        metavar="MB",
        help="Warning threshold for total guest memory in MiB",
    )
    parser.add_argument(
        "-M",
        dest="memory_critical",
        type=float,
        required=True,
        metavar="MB",
        help="Critical threshold for total guest memory in MiB",
    )
    parser.add_argument(
        "-p",
        dest="vcpu_warning",
        type=float,
        required=True,
        metavar="COUNT",
        help="Warning threshold for total guest vCPUs",
    )
    parser.add_argument(
        "-P",
        dest="vcpu_critical",
        type=float,
        required=True,
        metavar="COUNT",
        help="Critical threshold for total guest vCPUs",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Write debug messages to stderr",
    )
    return parser


def build_config(args: argparse.Namespace) -> QemuConfig:
    try:
        thresholds = QemuThresholds.from_values(
            args.memory_warning,
            args.memory_critical,
            args.vcpu_warning,
            args.vcpu_critical,
        )
    except (ValueError, OverflowError) as exc:
        raise ProbeUnknownError(f"invalid arguments: {describe_error(exc)}") from exc
    return QemuConfig(thresholds=thresholds)


def check(args: argparse.Namespace) -> CheckResult:
    configure_logging(args.verbose)
    return qemu_monitor.run_qemu_check(build_config(args))


def main(argv: Optional[List[str]] = None) -> int:
    return run_probe(build_parser(), argv, check)


if __name__ == "__main__":
    raise SystemExit(main())
