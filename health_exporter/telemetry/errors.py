"""
Error taxonomy for the export pipeline.

SourceUnavailable is recovered inside the collector, NoDataAvailable is a
soft condition, ConfigurationError aborts a cycle before any network call and
TransportError is retried by the dispatcher before it surfaces.
"""

from typing import Optional


class ExportError(Exception):
    """Base class for every error raised by the export pipeline."""


class SourceUnavailable(ExportError):
    """A biometric category could not be fetched."""

    def __init__(self, message: str, category: Optional[str] = None):
        super().__init__(message)
        self.category = category


class SourceUnreachable(SourceUnavailable):
    """The biometric source as a whole cannot be queried."""


class NoDataAvailable(ExportError):
    """Nothing fresh was collected and no valid cache entry exists."""


class ConfigurationError(ExportError):
    """Required destination settings are absent or incomplete."""


class TransportError(ExportError):
    """An HTTP push failed to complete or returned a non-2xx status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        attempt: Optional[int] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.attempt = attempt

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} (HTTP {self.status_code})"
        return base
