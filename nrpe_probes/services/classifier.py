from typing import Iterable

from nrpe_probes.models.check import Severity, ThresholdPair


def classify(value: int, thresholds: ThresholdPair) -> Severity:
    """
    Classify a metric against its limits.

    Only values strictly above a limit count as a violation. The critical
    limit is checked first and warning <= critical is not enforced, so a
    swapped pair behaves exactly as given.
    """
    if value > thresholds.critical:
        return Severity.CRITICAL
    if value > thresholds.warning:
        return Severity.WARNING
    return Severity.OK


def worst(severities: Iterable[Severity]) -> Severity:
    return max(severities, default=Severity.OK)


def exceeded_limit(severity: Severity, thresholds: ThresholdPair) -> int:
    """The limit a violated metric crossed (warning limit for OK metrics)."""
    if severity == Severity.CRITICAL:
        return thresholds.critical
    return thresholds.warning
