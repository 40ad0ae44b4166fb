"""
Prometheus text exposition format.

Serializes a batch of metrics into the text format accepted by the
Pushgateway. Output is deterministic: metric blocks follow the first-seen
order of names in the batch and labels are sorted by key.
"""

import math
from typing import Dict, Iterable, List, Sequence

from health_exporter.telemetry.catalog import describe
from health_exporter.telemetry.schemas import Metric, MetricKind


def escape_label_value(value: str) -> str:
    """Escape backslash, double quote and newline, in that order."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def unescape_label_value(value: str) -> str:
    """Inverse of escape_label_value()."""
    out: List[str] = []
    chars = iter(value)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, None)
        if nxt == "n":
            out.append("\n")
        elif nxt is None:
            out.append("\\")
        else:
            out.append(nxt)
    return "".join(out)


def format_value(value: float) -> str:
    """
    Render a sample value.

    Integral values have no decimal point, other values keep at most six
    decimals with trailing zeros removed.

    Args:
        value: Sample value

    Returns:
        Text representation for a sample line
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == int(value):
        return str(int(value))

    text = f"{value:.6f}".rstrip("0").rstrip(".")
    # Values below the sixth decimal collapse to zero
    if text in ("-0", ""):
        return "0"
    return text


def format_labels(labels: Dict[str, str]) -> str:
    """Render ``{k="v",...}`` sorted by key, or an empty string."""
    if not labels:
        return ""
    pairs = ",".join(f'{key}="{escape_label_value(labels[key])}"' for key in sorted(labels))
    return "{" + pairs + "}"


def _group_by_name(batch: Iterable[Metric]) -> Dict[str, List[Metric]]:
    groups: Dict[str, List[Metric]] = {}
    for metric in batch:
        group = groups.setdefault(metric.name, [])
        if group and group[0].kind != metric.kind:
            raise ValueError(
                f"Metric {metric.name} appears as both {group[0].kind.value} "
                f"and {metric.kind.value}"
            )
        group.append(metric)
    return groups


def format_exposition(batch: Sequence[Metric]) -> str:
    """
    Serialize a batch into Prometheus exposition text.

    Args:
        batch: Metrics to serialize, in collection order

    Returns:
        Exposition text, every block followed by one blank line

    Raises:
        ValueError: If one name is used with two different kinds
    """
    lines: List[str] = []
    for name, group in _group_by_name(batch).items():
        kind = "counter" if group[0].kind == MetricKind.COUNTER else "gauge"
        lines.append(f"# HELP {name} {describe(name)}")
        lines.append(f"# TYPE {name} {kind}")
        for metric in group:
            lines.append(f"{name}{format_labels(metric.labels)} {format_value(metric.value)}")
        lines.append("")

    if not lines:
        return ""
    return "\n".join(lines) + "\n"


class ExpositionFormatter:
    """Formatter object for callers that hold formatters by interface."""

    content_type = "text/plain; version=0.0.4"

    def format(self, batch: Sequence[Metric]) -> str:
        return format_exposition(batch)
