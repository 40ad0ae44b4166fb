"""
Tests for log sanitization utilities.
"""

from health_exporter.utils.log_sanitizer import sanitize_for_log, sanitize_url


class TestSanitizeForLog:
    def test_strips_control_characters(self):
        assert sanitize_for_log("line1\nFAKE ERROR\r\tx\x00") == "line1FAKE ERRORx"

    def test_truncates(self):
        assert sanitize_for_log("a" * 300, max_length=10) == "a" * 10 + "..."

    def test_non_string(self):
        assert sanitize_for_log(None) == "None"


class TestSanitizeUrl:
    def test_removes_credentials_and_query(self):
        url = "https://user:pw@influx.example.com:8086/api/v2/write?org=o&bucket=b"
        assert sanitize_url(url) == "https://influx.example.com:8086/api/v2/write"

    def test_plain_url_unchanged(self):
        url = "https://push.example.com/metrics"
        assert sanitize_url(url) == url
