"""
Log sanitization utilities to prevent log injection and credential leaks.
"""

import re
from typing import Any
from urllib.parse import urlsplit, urlunsplit


def sanitize_for_log(value: Any, max_length: int = 200) -> str:
    """
    Sanitize a value for safe logging.

    Removes control characters and newlines that could be used to forge log
    lines, e.g. inside an HTTP error body returned by a push endpoint.

    Args:
        value: The value to sanitize
        max_length: Maximum length of the output (default 200)

    Returns:
        Sanitized string safe for logging
    """
    str_value = str(value)

    # Remove control characters, newlines, carriage returns
    sanitized = re.sub(r"[\x00-\x1f\x7f-\x9f\r\n\t]", "", str_value)

    # Limit length to prevent log flooding
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."

    return sanitized


def sanitize_url(url: str) -> str:
    """
    Strip credentials and query string from a URL for logging.

    The InfluxDB write URL carries org and bucket in the query, and users
    sometimes embed ``user:password@`` in a Pushgateway URL.

    Args:
        url: URL to sanitize

    Returns:
        URL with userinfo and query removed
    """
    parts = urlsplit(url)
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return sanitize_for_log(urlunsplit((parts.scheme, netloc, parts.path, "", "")))
