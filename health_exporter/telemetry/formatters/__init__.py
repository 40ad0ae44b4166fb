"""
Wire formatters for metric batches.
"""

from health_exporter.telemetry.formatters.exposition import (
    ExpositionFormatter,
    escape_label_value,
    format_exposition,
    format_labels,
    format_value,
    unescape_label_value,
)
from health_exporter.telemetry.formatters.line_protocol import (
    LineProtocolFormatter,
    format_line_protocol,
    metric_type_tag,
)

__all__ = [
    "ExpositionFormatter",
    "LineProtocolFormatter",
    "escape_label_value",
    "format_exposition",
    "format_labels",
    "format_line_protocol",
    "format_value",
    "metric_type_tag",
    "unescape_label_value",
]
