from typing import Optional

from pydantic import BaseModel, Field, field_validator

from nrpe_probes.models.check import ThresholdPair


class GuestAllocation(BaseModel):
    """Resources a single QEMU guest declares on its command line."""

    pid: Optional[int] = Field(None, description="Process id of the guest, if known")
    memory_mb: int = Field(..., ge=0, description="Memory size in MiB (-m)")
    vcpus: int = Field(..., ge=0, description="Virtual CPU count (-smp)")


class QemuTotals(BaseModel):
    """Sum of all running guests' allocations."""

    guests: int = Field(..., ge=0, description="Number of guest processes found")
    memory_mb: int = Field(..., ge=0)
    vcpus: int = Field(..., ge=0)


class QemuThresholds(BaseModel):
    memory: ThresholdPair
    vcpu: ThresholdPair

    @classmethod
    def from_values(
        cls,
        memory_warning: float,
        memory_critical: float,
        vcpu_warning: float,
        vcpu_critical: float,
    ) -> "QemuThresholds":
        return cls(
            memory=ThresholdPair(
                warning=_round(memory_warning), critical=_round(memory_critical)
            ),
            vcpu=ThresholdPair(
                warning=_round(vcpu_warning), critical=_round(vcpu_critical)
            ),
        )

    @field_validator("memory", "vcpu")
    @classmethod
    def _non_negative(cls, pair: ThresholdPair) -> ThresholdPair:
        if pair.warning < 0 or pair.critical < 0:
            raise ValueError("thresholds must not be negative")
        return pair


def _round(value: float) -> int:
    # Halves round away from zero
    if value < 0:
        return -int(-value + 0.5)
    return int(value + 0.5)
