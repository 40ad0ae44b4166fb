"""
InfluxDB line protocol.

Every metric becomes one line of the form
``measurement,device=<d>,job=<j>,metric_type=<t> value=<float> <timestamp>``.
The whole batch shares one timestamp, the moment it was formatted.
"""

import time
from typing import Optional, Sequence, Tuple

from health_exporter.telemetry.schemas import Metric

# First matching keyword wins
METRIC_TYPE_KEYWORDS: Tuple[Tuple[str, str], ...] = (
    ("steps", "steps"),
    ("heart_rate", "heart_rate"),
    ("active_energy", "active_energy"),
    ("distance_walking", "distance_walking"),
    ("flights_climbed", "flights_climbed"),
    ("body_mass", "body_mass"),
    ("sleep", "sleep_analysis"),
)


def metric_type_tag(metric: Metric) -> str:
    """Value of the ``metric_type`` tag for ``metric``."""
    for keyword, tag in METRIC_TYPE_KEYWORDS:
        if keyword in metric.name:
            return tag
    return metric.kind.value


def escape_tag_value(value: str) -> str:
    """Replace spaces with underscores and escape commas and equals signs."""
    return value.replace(" ", "_").replace(",", "\\,").replace("=", "\\=")


def current_timestamp_ms() -> int:
    return int(time.time() * 1000)


def format_line_protocol(
    batch: Sequence[Metric],
    timestamp_ms: Optional[int] = None,
    device_name: str = "health-exporter",
    job: str = "my_health_data",
) -> str:
    """
    Serialize a batch into line protocol.

    Metric labels are not carried over, the tag set is fixed.

    Args:
        batch: Metrics to serialize
        timestamp_ms: Shared timestamp in milliseconds, now when omitted
        device_name: Value of the device tag
        job: Value of the job tag

    Returns:
        Newline-joined lines without a trailing newline
    """
    if timestamp_ms is None:
        timestamp_ms = current_timestamp_ms()

    device = escape_tag_value(device_name)
    job_tag = escape_tag_value(job)

    lines = []
    for metric in batch:
        measurement = metric.name.replace(".", "_")
        lines.append(
            f"{measurement},device={device},job={job_tag},metric_type={metric_type_tag(metric)} "
            f"value={float(metric.value)!r} {timestamp_ms}"
        )
    return "\n".join(lines)


class LineProtocolFormatter:
    """Formatter object bound to one device and job."""

    content_type = "text/plain; charset=utf-8"

    def __init__(self, device_name: str = "health-exporter", job: str = "my_health_data"):
        self.device_name = device_name
        self.job = job

    def format(self, batch: Sequence[Metric], timestamp_ms: Optional[int] = None) -> str:
        return format_line_protocol(batch, timestamp_ms, self.device_name, self.job)
