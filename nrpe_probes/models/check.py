from enum import IntEnum
from typing import List

from pydantic import BaseModel, Field


class Severity(IntEnum):
    """Plugin states, ordered so that max() yields the worst one."""

    OK = 0
    WARNING = 1
    CRITICAL = 2
    # Input or precondition failure, never compared against the others
    UNKNOWN = 3

    @property
    def exit_code(self) -> int:
        return int(self)


class ThresholdPair(BaseModel):
    """Warning and critical limit for one metric. Ordering is not enforced."""

    warning: int = Field(..., description="Values above this raise a WARNING")
    critical: int = Field(..., description="Values above this raise a CRITICAL")


class MetricResult(BaseModel):
    """A derived metric together with its limits and classification."""

    name: str = Field(..., description="Perfdata label, e.g. iops or memory")
    value: int = Field(..., ge=0, description="Rate or aggregate value")
    unit: str = Field(
        default="",
        description="Unit of measurement appended in perfdata, e.g. MB",
    )
    thresholds: ThresholdPair
    severity: Severity
    annotation: str = Field(
        default="",
        description="Text appended to the summary for this metric",
    )


class CheckResult(BaseModel):
    """Outcome of one probe run, rendered to a single output line."""

    severity: Severity
    summary: str
    metrics: List[MetricResult] = Field(default_factory=list)
