import logging
import sys

logger = logging.getLogger("nrpe_probes")


def configure_logging(verbose: bool = False) -> None:
    # stdout carries the single status line, diagnostics go to stderr
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] [%(name)s %(process)d] %(message)s")
    handler.setFormatter(formatter)
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
