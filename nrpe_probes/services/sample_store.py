import logging
import os
import tempfile
from typing import Callable, Optional, Tuple

from nrpe_probes.config import get_settings
from nrpe_probes.errors import ProbeUnknownError
from nrpe_probes.models.disk import DiskSnapshot, PersistedSample

log = logging.getLogger(__name__)

PROBE_NAME = "check_disk_io"


def sample_path(device: str, state_dir: Optional[str] = None) -> str:
    """Location of the persisted sample for a device, e.g. /tmp/check_disk_io_sda.sample"""
    if state_dir is None:
        state_dir = get_settings().state_dir
    safe_device = device.replace(os.sep, "_")
    return os.path.join(state_dir, f"{PROBE_NAME}_{safe_device}.sample")


class SampleStore:
    """
    Single-record file holding the previous snapshot of one device.

    The file's own modification time is the capture time of the snapshot.
    Writes go to a temporary file in the same directory which is then renamed
    over the sample, so readers never see a half-written record.
    """

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[PersistedSample]:
        """
        Return the persisted sample, or None if there is none yet.

        A sample that cannot be read or parsed is deleted and reported as
        ProbeUnknownError, so that the next run starts a fresh bootstrap.
        """
        try:
            with open(self.path, "r", encoding="ascii") as handle:
                content = handle.read()
                mtime = os.fstat(handle.fileno()).st_mtime
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            self._discard()
            raise ProbeUnknownError(
                f"cannot read previous sample {self.path}: {exc}; removed it"
            ) from exc

        try:
            snapshot = DiskSnapshot.from_record(content)
        except ValueError as exc:
            self._discard()
            raise ProbeUnknownError(
                f"previous sample {self.path} is corrupt and was removed"
            ) from exc

        log.debug("loaded previous sample from %s (mtime %.0f)", self.path, mtime)
        return PersistedSample(snapshot=snapshot, mtime=mtime)

    def save(self, snapshot: DiskSnapshot) -> float:
        """Atomically replace the sample with snapshot and return its new mtime."""
        directory = os.path.dirname(self.path) or "."
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=os.path.basename(self.path) + ".", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="ascii") as handle:
                handle.write(snapshot.to_record())
            os.replace(tmp_path, self.path)
            tmp_path = None
            mtime = os.stat(self.path).st_mtime
        except OSError as exc:
            raise ProbeUnknownError(
                f"cannot write sample {self.path}: {exc}"
            ) from exc
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    log.debug("could not remove temporary file %s", tmp_path)

        log.debug("saved sample to %s", self.path)
        return mtime

    def _discard(self) -> None:
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            log.warning("could not remove corrupt sample %s: %s", self.path, exc)


def get_previous_snapshot(
    store: SampleStore,
    sampler: Callable[[], DiskSnapshot],
    current: DiskSnapshot,
    sleep: Callable[[float], None],
    delay_seconds: float,
) -> Tuple[PersistedSample, DiskSnapshot]:
    """
    Return the previous sample and the snapshot to compare it with.

    On the first run for a device there is no previous sample: the current
    snapshot is stored as the bootstrap sample, the probe waits delay_seconds
    and samples again, giving a usable window right away. In that case the
    returned current snapshot is the fresh one.
    """
    previous = store.load()
    if previous is not None:
        return previous, current

    log.info(
        "no previous sample at %s, bootstrapping with a %ss delay",
        store.path,
        delay_seconds,
    )
    mtime = store.save(current)
    sleep(delay_seconds)
    return PersistedSample(snapshot=current, mtime=mtime), sampler()
