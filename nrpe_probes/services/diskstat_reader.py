import logging
import os

from nrpe_probes.config import get_settings
from nrpe_probes.errors import ProbeUnknownError
from nrpe_probes.models.disk import DiskSnapshot

log = logging.getLogger(__name__)


def _stat_path(device: str) -> str:
    settings = get_settings()
    return os.path.join(settings.sysfs_block_root, device, "stat")


def read_current_snapshot(device: str) -> DiskSnapshot:
    """
    Read the current block statistics counters for a device.

    The counters come from <sysfs_block_root>/<device>/stat. A missing,
    unreadable, empty or unparseable source raises ProbeUnknownError.
    """
    path = _stat_path(device)
    try:
        with open(path, "r", encoding="ascii") as handle:
            content = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise ProbeUnknownError(
            f"cannot read statistics for device {device} ({path}): {exc}"
        ) from exc

    if not content.strip():
        raise ProbeUnknownError(f"statistics for device {device} are empty ({path})")

    try:
        snapshot = DiskSnapshot.from_stat_line(content)
    except ValueError as exc:
        raise ProbeUnknownError(
            f"cannot parse statistics for device {device} ({path}): {exc}"
        ) from exc

    log.debug("current snapshot for %s: %s", device, snapshot)
    return snapshot
