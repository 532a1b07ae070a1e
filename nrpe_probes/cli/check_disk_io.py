import argparse
import textwrap
from typing import List, Optional

from nrpe_probes.cli.common import ProbeArgumentParser, describe_error, run_probe
from nrpe_probes.config import DiskIoConfig
from nrpe_probes.errors import ProbeUnknownError
from nrpe_probes.log import configure_logging
from nrpe_probes.models.check import CheckResult
from nrpe_probes.models.disk import DiskIoThresholds
from nrpe_probes.services import disk_io_monitor

DESCRIPTION = textwrap.dedent(
    """\
    Check IOPS and read/write bandwidth of a block device.

    Rates are computed from the difference between the current kernel block
    statistics and the sample stored by the previous run, divided by the
    seconds in between. The very first run for a device stores a sample,
    waits a few seconds and samples again.

    Each threshold is a comma separated triple iops,read,write; read and
    write are bandwidth per second in the unit selected with -u. A value
    strictly greater than a threshold raises WARNING or CRITICAL.
    """
)

EPILOG = textwrap.dedent(
    """\
    example:
      %(prog)s -d sda -w 200,10,10 -c 250,20,20
      %(prog)s -d nvme0n1 -u k -w 500,20000,20000 -c 800,40000,40000

    exit codes: 0 OK, 1 WARNING, 2 CRITICAL, 3 UNKNOWN
    """
)


def build_parser() -> argparse.ArgumentParser:
    parser = ProbeArgumentParser(
        prog="check_disk_io",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-d",
        "--device",
        default="sda",
        help="Block device to check, e.g. sda or /dev/nvme0n1 (default: sda)",
    )
    parser.add_argument(
        "-w",
        "--warning",
        required=True,
        metavar="IOPS,READ,WRITE",
        help="Warning thresholds",
    )
    parser.add_argument(
        "-c",
        "--critical",
        required=True,
        metavar="IOPS,READ,WRITE",
        help="Critical thresholds",
    )
    parser.add_argument(
        "-u",
        "--unit",
        default="m",
        choices=["m", "k"],
        help="Bandwidth unit: m for MiB/s, k for KiB/s (default: m)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Write debug messages to stderr",
    )
    return parser


def build_config(args: argparse.Namespace) -> DiskIoConfig:
    try:
        return DiskIoConfig(
            device=args.device,
            unit=args.unit,
            warning=DiskIoThresholds.parse(args.warning),
            critical=DiskIoThresholds.parse(args.critical),
        )
    except ValueError as exc:
        raise ProbeUnknownError(f"invalid arguments: {describe_error(exc)}") from exc


def check(args: argparse.Namespace) -> CheckResult:
    configure_logging(args.verbose)
    return disk_io_monitor.run_disk_io_check(build_config(args))


def main(argv: Optional[List[str]] = None) -> int:
    return run_probe(build_parser(), argv, check)


if __name__ == "__main__":
    raise SystemExit(main())
