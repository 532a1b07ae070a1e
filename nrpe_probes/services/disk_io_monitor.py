import logging
import time
from typing import Callable, List

from nrpe_probes.config import DiskIoConfig, get_settings
from nrpe_probes.errors import ProbeUnknownError
from nrpe_probes.models.check import CheckResult, MetricResult, Severity, ThresholdPair
from nrpe_probes.models.disk import DiskRates, DiskSnapshot
from nrpe_probes.services import diskstat_reader
from nrpe_probes.services.classifier import classify, exceeded_limit, worst
from nrpe_probes.services.sample_store import SampleStore, get_previous_snapshot, sample_path

log = logging.getLogger(__name__)


def elapsed_seconds(now: float, mtime: float) -> int:
    """Whole seconds between the previous sample and now; at least 1."""
    elapsed = int(now) - int(mtime)
    if elapsed < 1:
        raise ProbeUnknownError(
            f"elapsed time since previous sample is {elapsed}s; "
            "clock skew or checks running too close together"
        )
    return elapsed


def compute_rates(
    previous: DiskSnapshot,
    current: DiskSnapshot,
    elapsed: int,
    sectors_per_unit: int,
) -> DiskRates:
    """
    Derive per-second rates from two snapshots.

    IOPS combine reads and writes. Bandwidth is converted from sectors to the
    selected unit before dividing by the elapsed time; all divisions truncate.
    A negative delta means the counters were reset or the device was replaced,
    and is never clamped.
    """
    if elapsed < 1:
        raise ProbeUnknownError(f"invalid elapsed time {elapsed}s")

    io_delta = (current.io_read_count + current.io_write_count) - (
        previous.io_read_count + previous.io_write_count
    )
    sector_read_delta = current.sector_read_count - previous.sector_read_count
    sector_write_delta = current.sector_write_count - previous.sector_write_count

    if io_delta < 0 or sector_read_delta < 0 or sector_write_delta < 0:
        raise ProbeUnknownError(
            "counters went backwards since the previous sample "
            f"(io {io_delta}, read sectors {sector_read_delta}, "
            f"write sectors {sector_write_delta}); device reset or replaced?"
        )

    iops = io_delta // elapsed
    read = (sector_read_delta // sectors_per_unit) // elapsed
    write = (sector_write_delta // sectors_per_unit) // elapsed

    if iops < 0 or read < 0 or write < 0:
        raise ProbeUnknownError(
            f"negative rate computed (iops {iops}, read {read}, write {write})"
        )

    return DiskRates(iops=iops, read=read, write=write, elapsed_seconds=elapsed)


def _metric(name: str, value: int, unit: str, thresholds: ThresholdPair) -> MetricResult:
    severity = classify(value, thresholds)
    annotation = ""
    if severity != Severity.OK:
        annotation = f"({severity.name} > {exceeded_limit(severity, thresholds)})"
    return MetricResult(
        name=name,
        value=value,
        unit=unit,
        thresholds=thresholds,
        severity=severity,
        annotation=annotation,
    )


def evaluate_rates(rates: DiskRates, config: DiskIoConfig) -> CheckResult:
    """Classify the three disk metrics and build the check result."""
    unit = config.unit_label
    metrics: List[MetricResult] = [
        _metric(
            "iops",
            rates.iops,
            "",
            ThresholdPair(warning=config.warning.iops, critical=config.critical.iops),
        ),
        _metric(
            "read",
            rates.read,
            unit,
            ThresholdPair(warning=config.warning.read, critical=config.critical.read),
        ),
        _metric(
            "write",
            rates.write,
            unit,
            ThresholdPair(warning=config.warning.write, critical=config.critical.write),
        ),
    ]

    parts = []
    for metric in metrics:
        suffix = "" if metric.name == "iops" else f" {unit}/s"
        text = f"{metric.name} {metric.value}{suffix}"
        if metric.annotation:
            text += f" {metric.annotation}"
        parts.append(text)

    summary = f"{config.device} " + ", ".join(parts)
    return CheckResult(
        severity=worst(metric.severity for metric in metrics),
        summary=summary,
        metrics=metrics,
    )


def run_disk_io_check(
    config: DiskIoConfig,
    clock: Callable[[], float] = time.time,
    sleep: Callable[[float], None] = time.sleep,
) -> CheckResult:
    """
    Run one sample of the disk I/O probe.

    Reads the current counters, loads (or bootstraps) the previous sample,
    replaces it with the current snapshot and classifies the derived rates.
    """
    settings = get_settings()
    store = SampleStore(sample_path(config.device, settings.state_dir))

    current = diskstat_reader.read_current_snapshot(config.device)
    previous, current = get_previous_snapshot(
        store,
        lambda: diskstat_reader.read_current_snapshot(config.device),
        current,
        sleep,
        settings.bootstrap_delay_seconds,
    )

    now = clock()
    # Saved before the elapsed and delta checks so that a counter reset is
    # reported once, then the next run compares against the new counters
    store.save(current)

    elapsed = elapsed_seconds(now, previous.mtime)
    rates = compute_rates(previous.snapshot, current, elapsed, config.sectors_per_unit)
    log.debug("rates for %s over %ss: %s", config.device, elapsed, rates)
    return evaluate_rates(rates, config)
