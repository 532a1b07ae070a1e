import psutil
import pytest

from nrpe_probes.config import DEFAULT_QEMU_PATTERN, QemuConfig
from nrpe_probes.errors import ProbeUnknownError
from nrpe_probes.models.check import Severity
from nrpe_probes.models.qemu import GuestAllocation, QemuThresholds, QemuTotals
from nrpe_probes.services import qemu_monitor
from nrpe_probes.services.reporter import render


class FakeProcess:
    """Stand-in for psutil.Process; cmdline may be an exception to raise."""

    def __init__(self, pid, name, cmdline):
        self.info = {"pid": pid, "name": name}
        self._cmdline = cmdline

    def cmdline(self):
        if isinstance(self._cmdline, Exception):
            raise self._cmdline
        return self._cmdline


def _config(mem_warn=4000, mem_crit=8000, vcpu_warn=4, vcpu_crit=8) -> QemuConfig:
    return QemuConfig(
        thresholds=QemuThresholds.from_values(mem_warn, mem_crit, vcpu_warn, vcpu_crit)
    )


@pytest.fixture
def processes(monkeypatch):
    """Replace the process table with a list the test fills in."""
    table = []

    class DummySettings:
        qemu_process_pattern = DEFAULT_QEMU_PATTERN

    def fake_process_iter(attrs=None):
        return iter(table)

    monkeypatch.setattr(qemu_monitor, "get_settings", lambda: DummySettings())
    monkeypatch.setattr(qemu_monitor.psutil, "process_iter", fake_process_iter)
    return table


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2048", 2048),
        ("2048M", 2048),
        ("2G", 2048),
        ("2g", 2048),
        ("2097152k", 2048),
        ("1.5G", 1536),
        ("0.5T", 524288),
        ("0.5", 0),
        ("size=4096", 4096),
        ("size=2097152k,slots=16,maxmem=8G", 2048),
        ("1024,slots=2,maxmem=4G", 1024),
    ],
)
def test_parse_memory_mb(value, expected):
    assert qemu_monitor.parse_memory_mb(value) == expected


@pytest.mark.parametrize("value", ["", "lots", "2X", "slots=2"])
def test_parse_memory_mb_rejects_garbage(value):
    with pytest.raises(ValueError):
        qemu_monitor.parse_memory_mb(value)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("4", 4),
        ("4,sockets=1,cores=4,threads=1", 4),
        ("cpus=6,maxcpus=12", 6),
        ("sockets=2,cores=2,threads=2", 8),
    ],
)
def test_parse_vcpus(value, expected):
    assert qemu_monitor.parse_vcpus(value) == expected


def test_parse_guest_allocation_from_cmdline():
    cmdline = [
        "/usr/bin/qemu-system-x86_64",
        "-name", "guest=web01,debug-threads=on",
        "-machine", "pc-q35-6.2,accel=kvm",
        "-m", "2048",
        "-smp", "4,sockets=4,cores=1,threads=1",
    ]
    allocation = qemu_monitor.parse_guest_allocation(cmdline, pid=42)
    assert allocation == GuestAllocation(pid=42, memory_mb=2048, vcpus=4)


def test_parse_guest_allocation_missing_flags_count_as_zero():
    allocation = qemu_monitor.parse_guest_allocation(["qemu-system-x86_64", "-nographic"])
    assert (allocation.memory_mb, allocation.vcpus) == (0, 0)


def test_parse_guest_allocation_malformed_is_unknown():
    with pytest.raises(ProbeUnknownError, match="pid 7"):
        qemu_monitor.parse_guest_allocation(["qemu-kvm", "-m", "lots"], pid=7)


def test_sum_allocations_of_no_guests_is_zero():
    assert qemu_monitor.sum_allocations([]) == QemuTotals(guests=0, memory_mb=0, vcpus=0)


def test_collect_only_matches_qemu_processes(processes):
    processes.extend(
        [
            FakeProcess(1, "systemd", ["/sbin/init", "-m", "999"]),
            FakeProcess(10, "qemu-system-x86_64", ["qemu-system-x86_64", "-m", "2048", "-smp", "4"]),
            FakeProcess(11, "qemu-kvm", ["qemu-kvm", "-m", "512", "-smp", "1"]),
            # exited between listing and inspection
            FakeProcess(12, "qemu-system-aarch64", psutil.NoSuchProcess(12)),
            # zombie guest with its arguments already gone
            FakeProcess(13, "qemu-system-x86_64", []),
        ]
    )

    allocations = qemu_monitor.collect_guest_allocations()
    assert [a.pid for a in allocations] == [10, 11]


def test_unreadable_guest_cmdline_is_unknown(processes):
    processes.extend(
        [
            FakeProcess(10, "qemu-system-x86_64", ["qemu-system-x86_64", "-m", "2048", "-smp", "4"]),
            FakeProcess(20, "qemu-system-x86_64", psutil.AccessDenied(20)),
        ]
    )

    with pytest.raises(ProbeUnknownError, match="guest pid 20"):
        qemu_monitor.run_qemu_check(_config(4000, 8000, 4, 8))


def test_two_guests_example_is_warning(processes):
    processes.extend(
        [
            FakeProcess(100, "qemu-system-x86_64", ["qemu-system-x86_64", "-m", "2048", "-smp", "4"]),
            FakeProcess(101, "qemu-system-x86_64", ["qemu-system-x86_64", "-m", "4096", "-smp", "2"]),
        ]
    )

    result = qemu_monitor.run_qemu_check(_config(4000, 8000, 4, 8))

    assert result.severity == Severity.WARNING
    memory, vcpu = result.metrics
    assert (memory.value, vcpu.value) == (6144, 6)
    assert vcpu.severity == Severity.WARNING
    assert render(result) == (
        "WARNING: 2 guests, memory 6144 MB (2144 MB over warning), "
        "vCPU 6 (2 over warning)"
        "|memory=6144MB;4000;8000;0; vcpu=6;4;8;0;"
    )


def test_no_guests_is_ok_with_headroom(processes):
    result = qemu_monitor.run_qemu_check(_config(4000, 8000, 4, 8))

    assert result.severity == Severity.OK
    assert result.summary == "0 guests, memory 0 MB (4000 MB available), vCPU 0 (4 available)"


def test_critical_reports_excess_over_critical_limit():
    totals = QemuTotals(guests=3, memory_mb=9000, vcpus=4)
    result = qemu_monitor.evaluate_totals(totals, _config(4000, 8000, 4, 8))

    assert result.severity == Severity.CRITICAL
    assert [m.severity for m in result.metrics] == [Severity.CRITICAL, Severity.OK]
    assert result.summary == (
        "3 guests, memory 9000 MB (1000 MB over critical), vCPU 4 (0 available)"
    )


def test_thresholds_are_rounded_to_nearest_integer():
    thresholds = QemuThresholds.from_values(3999.5, 8000.4, 4.49, 7.5)
    assert (thresholds.memory.warning, thresholds.memory.critical) == (4000, 8000)
    assert (thresholds.vcpu.warning, thresholds.vcpu.critical) == (4, 8)


def test_negative_thresholds_are_rejected():
    with pytest.raises(ValueError):
        QemuThresholds.from_values(-1, 8000, 4, 8)
