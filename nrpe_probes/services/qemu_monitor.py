import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import psutil

from nrpe_probes.config import QemuConfig, get_settings
from nrpe_probes.errors import ProbeUnknownError
from nrpe_probes.models.check import CheckResult, MetricResult, Severity, ThresholdPair
from nrpe_probes.models.qemu import GuestAllocation, QemuTotals
from nrpe_probes.services.classifier import classify, exceeded_limit, worst

log = logging.getLogger(__name__)

MEMORY_FLAG = "-m"
SMP_FLAG = "-smp"

# "2048", "2048M", "1.5G", "2097152k"; no suffix means MiB
_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)([bkmgt]?)b?$", re.IGNORECASE)
_SIZE_DIVISORS_MB = {"b": 1024 * 1024, "k": 1024, "m": 1}
_SIZE_MULTIPLIERS_MB = {"g": 1024, "t": 1024 * 1024}
_SMP_TOPOLOGY_KEYS = ("sockets", "dies", "clusters", "cores", "threads")


def _flag_value(cmdline: Sequence[str], flag: str) -> Optional[str]:
    """Value following the last occurrence of flag (QEMU lets later ones win)."""
    value = None
    for index, arg in enumerate(cmdline):
        if arg in (flag, "-" + flag) and index + 1 < len(cmdline):
            value = cmdline[index + 1]
        elif arg.startswith(flag + "="):
            value = arg.split("=", 1)[1]
    return value


def _split_options(value: str) -> Tuple[Optional[str], Dict[str, str]]:
    """Split "4,sockets=1,cores=4" into ("4", {"sockets": "1", "cores": "4"})."""
    positional = None
    options: Dict[str, str] = {}
    for item in value.split(","):
        if "=" in item:
            key, _, option_value = item.partition("=")
            options[key.strip()] = option_value.strip()
        elif item.strip() and positional is None:
            positional = item.strip()
    return positional, options


def parse_memory_mb(value: str) -> int:
    """Parse the argument of -m into MiB."""
    positional, options = _split_options(value)
    size = options.get("size", positional)
    if not size:
        raise ValueError(f"no memory size in {value!r}")
    match = _SIZE_PATTERN.match(size)
    if not match:
        raise ValueError(f"invalid memory size {size!r}")
    amount = float(match.group(1))
    suffix = match.group(2).lower() or "m"
    # Truncated to whole MiB
    if suffix in _SIZE_MULTIPLIERS_MB:
        return int(amount * _SIZE_MULTIPLIERS_MB[suffix])
    return int(amount / _SIZE_DIVISORS_MB[suffix])


def parse_vcpus(value: str) -> int:
    """Parse the argument of -smp into a vCPU count."""
    positional, options = _split_options(value)
    cpus = options.get("cpus", positional)
    if cpus is not None:
        if not cpus.isdigit():
            raise ValueError(f"invalid cpu count {cpus!r}")
        return int(cpus)

    # Only a topology was given: the guest gets one CPU per thread slot
    count = 1
    for key in _SMP_TOPOLOGY_KEYS:
        raw = options.get(key, "1")
        if not raw.isdigit():
            raise ValueError(f"invalid {key} count {raw!r}")
        count *= int(raw)
    return count


def parse_guest_allocation(cmdline: Sequence[str], pid: Optional[int] = None) -> GuestAllocation:
    """
    Extract the memory (-m) and vCPU (-smp) allocation of one guest.

    A flag that is absent contributes 0. Malformed values raise
    ProbeUnknownError.
    """
    memory_value = _flag_value(cmdline, MEMORY_FLAG)
    smp_value = _flag_value(cmdline, SMP_FLAG)
    try:
        memory_mb = parse_memory_mb(memory_value) if memory_value is not None else 0
        vcpus = parse_vcpus(smp_value) if smp_value is not None else 0
    except ValueError as exc:
        raise ProbeUnknownError(f"cannot parse allocation of guest pid {pid}: {exc}") from exc
    return GuestAllocation(pid=pid, memory_mb=memory_mb, vcpus=vcpus)


def _list_guest_cmdlines(pattern: str) -> List[Tuple[int, List[str]]]:
    """
    Return (pid, cmdline) of every running process whose name matches pattern.

    Guests that exit while being inspected, or have no arguments left
    (zombies), are skipped. A guest whose command line cannot be read
    raises ProbeUnknownError.
    """
    name_re = re.compile(pattern)
    guests: List[Tuple[int, List[str]]] = []
    for proc in psutil.process_iter(["pid", "name"]):
        name = proc.info.get("name") or ""
        if not name_re.match(name):
            continue
        pid = proc.info.get("pid")
        try:
            cmdline = proc.cmdline()
        except psutil.NoSuchProcess:
            log.debug("guest pid %s exited while being inspected", pid)
            continue
        except psutil.AccessDenied as exc:
            raise ProbeUnknownError(f"cannot read command line of guest pid {pid}") from exc
        if not cmdline:
            log.debug("guest pid %s has an empty command line", pid)
            continue
        guests.append((pid, cmdline))
    return guests


def collect_guest_allocations() -> List[GuestAllocation]:
    settings = get_settings()
    try:
        guests = _list_guest_cmdlines(settings.qemu_process_pattern)
    except re.error as exc:
        raise ProbeUnknownError(
            f"invalid QEMU process pattern {settings.qemu_process_pattern!r}: {exc}"
        ) from exc
    except (OSError, psutil.Error) as exc:
        raise ProbeUnknownError(f"cannot list processes: {exc}") from exc

    allocations = [parse_guest_allocation(cmdline, pid) for pid, cmdline in guests]
    log.debug("found %d QEMU guests: %s", len(allocations), allocations)
    return allocations


def sum_allocations(allocations: Iterable[GuestAllocation]) -> QemuTotals:
    guests = memory_mb = vcpus = 0
    for allocation in allocations:
        guests += 1
        memory_mb += allocation.memory_mb
        vcpus += allocation.vcpus
    return QemuTotals(guests=guests, memory_mb=memory_mb, vcpus=vcpus)


def _metric(
    name: str, label: str, value: int, unit: str, thresholds: ThresholdPair
) -> MetricResult:
    severity = classify(value, thresholds)
    suffix = f" {unit}" if unit else ""
    if severity == Severity.OK:
        headroom = thresholds.warning - value
        annotation = f"{label} {value}{suffix} ({headroom}{suffix} available)"
    else:
        limit = exceeded_limit(severity, thresholds)
        level = "critical" if severity == Severity.CRITICAL else "warning"
        annotation = f"{label} {value}{suffix} ({value - limit}{suffix} over {level})"
    return MetricResult(
        name=name,
        value=value,
        unit=unit,
        thresholds=thresholds,
        severity=severity,
        annotation=annotation,
    )


def evaluate_totals(totals: QemuTotals, config: QemuConfig) -> CheckResult:
    """Classify the summed memory and vCPU allocation."""
    metrics = [
        _metric("memory", "memory", totals.memory_mb, "MB", config.thresholds.memory),
        _metric("vcpu", "vCPU", totals.vcpus, "", config.thresholds.vcpu),
    ]
    summary = f"{totals.guests} guests, " + ", ".join(m.annotation for m in metrics)
    return CheckResult(
        severity=worst(m.severity for m in metrics),
        summary=summary,
        metrics=metrics,
    )


def run_qemu_check(config: QemuConfig) -> CheckResult:
    totals = sum_allocations(collect_guest_allocations())
    return evaluate_totals(totals, config)
