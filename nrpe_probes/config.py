from typing import Literal
from pydantic import BaseModel, Field, field_validator
import os
import tempfile
from functools import lru_cache

from nrpe_probes.models.disk import DiskIoThresholds
from nrpe_probes.models.qemu import QemuThresholds

# Sectors are 512 bytes in the kernel block statistics
SECTORS_PER_UNIT = {"m": 2048, "k": 2}
UNIT_LABELS = {"m": "MB", "k": "KB"}

DEFAULT_QEMU_PATTERN = r"^(qemu-system-.*|qemu-kvm|kvm)$"


class Settings(BaseModel):
    state_dir: str = Field(
        default_factory=tempfile.gettempdir,
        description="Directory holding the persisted disk samples",
    )
    sysfs_block_root: str = Field(
        default="/sys/class/block",
        description="Root of the per-device block statistics, e.g. /sys/class/block",
    )
    bootstrap_delay_seconds: int = Field(
        default=5,
        ge=1,
        description="Seconds to wait on the first run for a device before re-sampling",
    )
    qemu_process_pattern: str = Field(
        default=DEFAULT_QEMU_PATTERN,
        description="Regex matched against process names to find QEMU guests",
    )

    @classmethod
    def from_env(cls) -> "Settings":
        # Unset variables fall back to the field defaults
        raw = {
            "state_dir": os.getenv("NRPE_PROBES_STATE_DIR"),
            "sysfs_block_root": os.getenv("NRPE_PROBES_SYSFS_BLOCK"),
            "bootstrap_delay_seconds": os.getenv("NRPE_PROBES_BOOTSTRAP_DELAY"),
            "qemu_process_pattern": os.getenv("NRPE_PROBES_QEMU_PATTERN"),
        }
        return cls(**{key: value for key, value in raw.items() if value})


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


class DiskIoConfig(BaseModel):
    """Options of a single check_disk_io run, built once from the command line."""

    device: str = Field(
        default="sda",
        min_length=1,
        description="Block device name, e.g. sda or /dev/nvme0n1",
    )
    unit: Literal["m", "k"] = Field(
        default="m",
        description="Bandwidth unit: m for MiB/s, k for KiB/s",
    )
    warning: DiskIoThresholds
    critical: DiskIoThresholds

    @field_validator("device")
    @classmethod
    def _strip_dev_prefix(cls, value: str) -> str:
        device = value.strip()
        if device.startswith("/dev/"):
            device = device[len("/dev/"):]
        if not device or ".." in device.split("/"):
            raise ValueError(f"invalid device name {value!r}")
        return device

    @property
    def sectors_per_unit(self) -> int:
        return SECTORS_PER_UNIT[self.unit]

    @property
    def unit_label(self) -> str:
        return UNIT_LABELS[self.unit]


class QemuConfig(BaseModel):
    """Options of a single check_qemu_alloc run."""

    thresholds: QemuThresholds
