import re
from typing import List

from nrpe_probes.models.check import CheckResult, MetricResult, Severity

_LINE_BREAKS = re.compile(r"[\r\n]+")
# Characters that would break the "text|perfdata" split of the status line
_RESERVED = re.compile(r"[|]")


def _one_line(text: str) -> str:
    return _RESERVED.sub("/", _LINE_BREAKS.sub(" ", text)).strip()


def format_perfdata(metric: MetricResult) -> str:
    """Render name=value[unit];warn;crit;min;max with min 0 and no max."""
    return (
        f"{metric.name}={metric.value}{metric.unit};"
        f"{metric.thresholds.warning};{metric.thresholds.critical};0;"
    )


def render(result: CheckResult) -> str:
    """Render the single status line: "<LABEL>: <summary>|<perfdata>"."""
    line = f"{result.severity.name}: {_one_line(result.summary)}"
    tokens: List[str] = [format_perfdata(metric) for metric in result.metrics]
    if tokens:
        line += "|" + " ".join(tokens)
    return line


def unknown(message: str) -> CheckResult:
    return CheckResult(severity=Severity.UNKNOWN, summary=message)
