from nrpe_probes.cli import check_disk_io, check_qemu_alloc
from nrpe_probes.errors import ProbeUnknownError
from nrpe_probes.models.check import CheckResult, Severity
from nrpe_probes.services import disk_io_monitor, qemu_monitor


def test_disk_io_without_arguments_prints_usage(capsys):
    assert check_disk_io.main([]) == 0

    out = capsys.readouterr().out
    assert "usage: check_disk_io" in out
    assert "IOPS,READ,WRITE" in out


def test_disk_io_passes_parsed_config_to_service(monkeypatch, capsys):
    seen = {}

    def fake_run(config):
        seen["config"] = config
        return CheckResult(severity=Severity.CRITICAL, summary="sdb iops 300 (CRITICAL > 250)")

    monkeypatch.setattr(disk_io_monitor, "run_disk_io_check", fake_run)

    code = check_disk_io.main(["-d", "/dev/sdb", "-w", "200,10,10", "-c", "250,20,20", "-u", "k"])

    assert code == 2
    assert capsys.readouterr().out == "CRITICAL: sdb iops 300 (CRITICAL > 250)\n"
    config = seen["config"]
    assert config.device == "sdb"
    assert config.unit == "k"
    assert (config.warning.iops, config.critical.write) == (200, 20)


def test_disk_io_missing_critical_is_unknown(capsys):
    code = check_disk_io.main(["-w", "200,10,10"])

    assert code == 3
    out = capsys.readouterr().out
    assert out.startswith("UNKNOWN: ")
    assert "--critical" in out


def test_disk_io_malformed_threshold_is_unknown(capsys):
    code = check_disk_io.main(["-w", "200,10", "-c", "250,20,20"])

    assert code == 3
    assert "iops,read,write" in capsys.readouterr().out


def test_disk_io_invalid_unit_is_unknown(capsys):
    assert check_disk_io.main(["-w", "1,1,1", "-c", "2,2,2", "-u", "g"]) == 3
    assert capsys.readouterr().out.startswith("UNKNOWN: ")


def test_disk_io_service_error_is_unknown(monkeypatch, capsys):
    def fake_run(config):
        raise ProbeUnknownError("statistics for device sda are empty")

    monkeypatch.setattr(disk_io_monitor, "run_disk_io_check", fake_run)

    assert check_disk_io.main(["-w", "1,1,1", "-c", "2,2,2"]) == 3
    assert capsys.readouterr().out == "UNKNOWN: statistics for device sda are empty\n"


def test_qemu_without_arguments_prints_usage(capsys):
    assert check_qemu_alloc.main([]) == 0
    assert "usage: check_qemu_alloc" in capsys.readouterr().out


def test_qemu_rounds_thresholds(monkeypatch, capsys):
    seen = {}

    def fake_run(config):
        seen["config"] = config
        return CheckResult(severity=Severity.OK, summary="0 guests")

    monkeypatch.setattr(qemu_monitor, "run_qemu_check", fake_run)

    code = check_qemu_alloc.main(["-m", "3999.6", "-M", "8000", "-p", "3.5", "-P", "8.2"])

    assert code == 0
    assert capsys.readouterr().out == "OK: 0 guests\n"
    thresholds = seen["config"].thresholds
    assert (thresholds.memory.warning, thresholds.memory.critical) == (4000, 8000)
    assert (thresholds.vcpu.warning, thresholds.vcpu.critical) == (4, 8)


def test_qemu_missing_threshold_is_unknown(capsys):
    assert check_qemu_alloc.main(["-m", "4000", "-M", "8000", "-p", "4"]) == 3
    assert capsys.readouterr().out.startswith("UNKNOWN: ")


def test_qemu_non_numeric_threshold_is_unknown(capsys):
    assert check_qemu_alloc.main(["-m", "lots", "-M", "8000", "-p", "4", "-P", "8"]) == 3
    assert capsys.readouterr().out.startswith("UNKNOWN: ")
