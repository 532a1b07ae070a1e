import argparse
import logging
import sys
from typing import Callable, List, Optional

from pydantic import ValidationError

from nrpe_probes.errors import ProbeUnknownError
from nrpe_probes.models.check import CheckResult
from nrpe_probes.services.reporter import render, unknown

log = logging.getLogger(__name__)


class ProbeArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors as UNKNOWN instead of exiting 2."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise ProbeUnknownError(f"{message} (see --help)")


def run_probe(
    parser: argparse.ArgumentParser,
    argv: Optional[List[str]],
    check: Callable[[argparse.Namespace], CheckResult],
) -> int:
    """
    Parse arguments, run one check and print its status line.

    Without any arguments the long help is printed and 0 returned. Every
    failure ends as a single UNKNOWN line with exit code 3.
    """
    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        parser.print_help()
        return 0

    try:
        args = parser.parse_args(argv)
        result = check(args)
    except ProbeUnknownError as exc:
        log.debug("check failed", exc_info=True)
        result = unknown(str(exc))
    except Exception as exc:
        log.debug("unexpected error", exc_info=True)
        result = unknown(f"unexpected error: {exc}")

    print(render(result))
    return result.severity.exit_code


def describe_error(exc: Exception) -> str:
    """Short message for a configuration error; only the first pydantic error is shown."""
    if isinstance(exc, ValidationError):
        error = exc.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        return f"{location}: {error['msg']}" if location else error["msg"]
    return str(exc)
