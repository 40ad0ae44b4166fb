"""
Unit tests for the Prometheus exposition formatter.
"""

import math

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from health_exporter.telemetry.catalog import GENERIC_DESCRIPTION
from health_exporter.telemetry.formatters.exposition import (
    ExpositionFormatter,
    escape_label_value,
    format_exposition,
    format_labels,
    format_value,
    unescape_label_value,
)
from health_exporter.telemetry.schemas import Metric, MetricKind


def counter(name, value, **labels):
    return Metric(name=name, value=value, kind=MetricKind.COUNTER, labels=labels)


def gauge(name, value, **labels):
    return Metric(name=name, value=value, kind=MetricKind.GAUGE, labels=labels)


class TestFormatExposition:
    """Test full batch serialization."""

    def test_grouped_counter_block(self):
        """Test two samples of one counter share HELP and TYPE lines."""
        batch = [counter("x_total", 5, instance="a"), counter("x_total", 7, instance="b")]

        output = format_exposition(batch)

        assert output == (
            f"# HELP x_total {GENERIC_DESCRIPTION}\n"
            "# TYPE x_total counter\n"
            'x_total{instance="a"} 5\n'
            'x_total{instance="b"} 7\n'
            "\n"
        )

    def test_blocks_follow_first_seen_order(self):
        """Test interleaved names are grouped in first-seen order."""
        batch = [
            gauge("b_metric", 1),
            gauge("a_metric", 2),
            gauge("b_metric", 3, source="watch"),
        ]

        lines = format_exposition(batch).splitlines()

        assert lines == [
            f"# HELP b_metric {GENERIC_DESCRIPTION}",
            "# TYPE b_metric gauge",
            "b_metric 1",
            'b_metric{source="watch"} 3',
            "",
            f"# HELP a_metric {GENERIC_DESCRIPTION}",
            "# TYPE a_metric gauge",
            "a_metric 2",
            "",
        ]

    def test_known_metric_description(self):
        output = format_exposition([counter("healthkit_steps_total", 1234, instance="phone")])
        assert output.startswith(
            "# HELP healthkit_steps_total Total number of steps taken today\n"
        )

    def test_empty_batch(self):
        assert format_exposition([]) == ""

    def test_conflicting_kind_rejected(self):
        with pytest.raises(ValueError, match="x_total"):
            format_exposition([counter("x_total", 1), gauge("x_total", 2)])

    def test_formatter_object(self):
        formatter = ExpositionFormatter()
        batch = [gauge("g", 1.5)]

        assert formatter.format(batch) == format_exposition(batch)
        assert formatter.content_type == "text/plain; version=0.0.4"


class TestFormatLabels:
    def test_sorted_by_key(self):
        assert format_labels({"source": "w", "instance": "p"}) == '{instance="p",source="w"}'

    def test_empty_labels_omit_braces(self):
        assert format_labels({}) == ""

    def test_values_escaped(self):
        assert format_labels({"k": 'a"b'}) == '{k="a\\"b"}'


class TestFormatValue:
    """Test numeric rendering."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (42.0, "42"),
            (0.0, "0"),
            (-3.0, "-3"),
            (1.5, "1.5"),
            (72.123456789, "72.123457"),
            (0.1, "0.1"),
            (-2.25, "-2.25"),
            (1e-9, "0"),
            (12345678901.0, "12345678901"),
        ],
    )
    def test_values(self, value, expected):
        assert format_value(value) == expected

    def test_special_values(self):
        assert format_value(math.nan) == "NaN"
        assert format_value(math.inf) == "+Inf"
        assert format_value(-math.inf) == "-Inf"


class TestEscaping:
    """Test label value escaping."""

    def test_escape_order(self):
        """Test backslash is escaped before quotes and newlines."""
        assert escape_label_value('a\\b"c\nd') == 'a\\\\b\\"c\\nd'

    def test_literal_backslash_n_is_not_a_newline(self):
        escaped = escape_label_value("\\n")
        assert escaped == "\\\\n"
        assert unescape_label_value(escaped) == "\\n"

    @given(st.text(max_size=200))
    @settings(max_examples=300)
    def test_escape_roundtrip(self, value: str) -> None:
        """Invariant: unescape inverts escape for every string."""
        assert unescape_label_value(escape_label_value(value)) == value

    @given(st.text(max_size=200))
    @settings(max_examples=200)
    def test_escaped_value_has_no_raw_newline(self, value: str) -> None:
        assert "\n" not in escape_label_value(value)


metric_names = st.sampled_from(["a_total", "b", "c_metric", "d_total"])


class TestGroupingProperties:
    """Property tests for block grouping."""

    @given(st.lists(st.tuples(metric_names, st.integers(-1000, 1000)), max_size=30))
    @settings(max_examples=150)
    def test_grouping_is_stable(self, samples) -> None:
        """Invariant: blocks follow first-seen order and keep relative sample order."""
        batch = [gauge(name, value) for name, value in samples]

        lines = format_exposition(batch).splitlines()

        first_seen = list(dict.fromkeys(name for name, _ in samples))
        type_lines = [line.split()[2] for line in lines if line.startswith("# TYPE")]
        assert type_lines == first_seen

        sample_lines = [line for line in lines if line and not line.startswith("#")]
        expected = [
            f"{name} {value}"
            for group in first_seen
            for name, value in samples
            if name == group
        ]
        assert sample_lines == expected
