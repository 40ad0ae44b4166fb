"""
Push dispatcher.

Resolves the active destination from configuration and secrets, renders the
batch in the destination's wire format and POSTs it with exponential
backoff between attempts.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional, Sequence, Tuple
from urllib.parse import quote, urlencode

import httpx

from health_exporter.config.store import (
    INFLUXDB_BUCKET,
    INFLUXDB_ORG,
    INFLUXDB_URL,
    PUSHGATEWAY_URL,
    USE_INFLUXDB,
)
from health_exporter.logging_config import LogContext
from health_exporter.secret_store import parse_basic_auth
from health_exporter.telemetry.errors import ConfigurationError, TransportError
from health_exporter.telemetry.formatters.exposition import ExpositionFormatter, format_exposition
from health_exporter.telemetry.formatters.line_protocol import (
    LineProtocolFormatter,
    format_line_protocol,
)
from health_exporter.telemetry.protocols import (
    INFLUXDB_TOKEN_KEY,
    PUSHGATEWAY_BASIC_AUTH_KEY,
    ConfigurationSource,
    SecretStore,
)
from health_exporter.telemetry.schemas import (
    InfluxDBDestination,
    Metric,
    PrometheusDestination,
    PushDestination,
    PushResult,
)
from health_exporter.utils.log_sanitizer import sanitize_for_log, sanitize_url

logger = logging.getLogger(__name__)


def pushgateway_instance(device_name: str) -> str:
    """Instance path segment: spaces become underscores, quotes are dropped."""
    cleaned = device_name.replace(" ", "_").replace("'", "").replace('"', "")
    return quote(cleaned, safe="")


class PushDispatcher:
    """Ships metric batches to the configured time-series endpoint."""

    def __init__(
        self,
        config_source: ConfigurationSource,
        secret_store: SecretStore,
        device_name: str,
        job: str = "my_health_data",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        timeout_seconds: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ):
        """
        Initialize dispatcher.

        Args:
            config_source: Settings naming the active destination
            secret_store: Credentials for the destinations
            device_name: Identifies this device on the wire
            job: Pushgateway job and line protocol job tag
            transport: httpx transport, the default network transport when omitted
            max_attempts: Attempts per push
            backoff_base: Delay after failed attempt n is backoff_base ** n seconds
            timeout_seconds: Timeout of a single HTTP request
            sleep: Awaitable sleep used between attempts
            clock_ms: Returns the line protocol timestamp in milliseconds
        """
        self.config_source = config_source
        self.secret_store = secret_store
        self.device_name = device_name
        self.job = job
        self.transport = transport
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep
        self._clock_ms = clock_ms

    # ========================================================================
    # DESTINATION RESOLUTION
    # ========================================================================

    def resolve_destination(self) -> PushDestination:
        """
        Build the active destination from configuration and secrets.

        Returns:
            Prometheus or InfluxDB destination

        Raises:
            ConfigurationError: If a required setting or secret is missing
        """
        if self.config_source.get_bool(USE_INFLUXDB):
            settings = {
                "url": self.config_source.get_string(INFLUXDB_URL),
                "org": self.config_source.get_string(INFLUXDB_ORG),
                "bucket": self.config_source.get_string(INFLUXDB_BUCKET),
                "token": self.secret_store.get(INFLUXDB_TOKEN_KEY),
            }
            missing = [key for key, value in settings.items() if not value]
            if missing:
                raise ConfigurationError(
                    f"InfluxDB destination incomplete, missing: {', '.join(missing)}"
                )
            return InfluxDBDestination(**settings)

        url = self.config_source.get_string(PUSHGATEWAY_URL)
        if not url:
            raise ConfigurationError("Pushgateway URL is not configured")
        basic_auth = parse_basic_auth(self.secret_store.get(PUSHGATEWAY_BASIC_AUTH_KEY))
        return PrometheusDestination(url=url, basic_auth=basic_auth)

    # ========================================================================
    # REQUEST BUILDING
    # ========================================================================

    def build_request(
        self, batch: Sequence[Metric], destination: PushDestination
    ) -> Tuple[str, Dict[str, str], str, Optional[httpx.BasicAuth]]:
        """
        Render URL, headers, body and auth for one push.

        Args:
            batch: Metrics to send
            destination: Target endpoint

        Returns:
            Tuple of (url, headers, body, auth)
        """
        base_url = destination.url.rstrip("/")

        if isinstance(destination, InfluxDBDestination):
            query = urlencode(
                {"org": destination.org, "bucket": destination.bucket, "precision": "ms"}
            )
            url = f"{base_url}/api/v2/write?{query}"
            headers = {
                "Content-Type": LineProtocolFormatter.content_type,
                "Authorization": f"Token {destination.token}",
                "Accept-Encoding": "gzip",
            }
            body = format_line_protocol(batch, self._clock_ms(), self.device_name, self.job)
            return url, headers, body, None

        url = (
            f"{base_url}/metrics/job/{quote(self.job, safe='')}"
            f"/instance/{pushgateway_instance(self.device_name)}"
        )
        headers = {"Content-Type": ExpositionFormatter.content_type}
        auth = None
        if destination.basic_auth:
            auth = httpx.BasicAuth(destination.basic_auth.username, destination.basic_auth.password)
        return url, headers, format_exposition(batch), auth

    # ========================================================================
    # PUSH
    # ========================================================================

    async def push(self, batch: Sequence[Metric], destination: PushDestination) -> PushResult:
        """
        POST ``batch`` to ``destination`` with retry.

        After failed attempt n (except the last) the dispatcher sleeps
        backoff_base ** n seconds.

        Args:
            batch: Non-empty metric batch
            destination: Target endpoint

        Returns:
            Result of the successful attempt

        Raises:
            ValueError: If batch is empty
            TransportError: The error of the last attempt once all attempts failed
        """
        if not batch:
            raise ValueError("Refusing to push an empty batch")

        url, headers, body, auth = self.build_request(batch, destination)
        kind = destination.kind.value
        safe_url = sanitize_url(url)
        start = time.monotonic()
        last_error: Optional[TransportError] = None

        async with httpx.AsyncClient(
            timeout=self.timeout_seconds, transport=self.transport
        ) as client:
            for attempt in range(1, self.max_attempts + 1):
                with LogContext(logger, destination=kind, attempt=attempt):
                    try:
                        status_code = await self._post_once(
                            client, url, headers, body, auth, attempt
                        )
                        duration_ms = int((time.monotonic() - start) * 1000)
                        logger.info(
                            f"Pushed {len(batch)} metrics to {kind} at {safe_url} "
                            f"(attempt {attempt}, HTTP {status_code}, {duration_ms}ms)",
                            extra={
                                "status_code": status_code,
                                "duration_ms": duration_ms,
                                "metric_count": len(batch),
                            },
                        )
                        return PushResult(
                            destination=destination.kind,
                            attempts=attempt,
                            status_code=status_code,
                            metric_count=len(batch),
                            duration_ms=duration_ms,
                        )
                    except TransportError as e:
                        last_error = e
                        logger.warning(
                            f"Push to {kind} failed on attempt {attempt}/{self.max_attempts}: "
                            f"{e}{' - ' + sanitize_for_log(e.body) if e.body else ''}",
                            extra={"status_code": e.status_code},
                        )

                    if attempt < self.max_attempts:
                        delay = self.backoff_base**attempt
                        logger.info(f"Retrying push to {kind} in {delay}s")
                        await self._sleep(delay)

        if last_error is None:
            raise TransportError("No push attempts were made")
        logger.error(
            f"Push to {kind} at {safe_url} failed after {self.max_attempts} attempts",
            extra={"destination": kind, "status_code": last_error.status_code},
        )
        raise last_error

    async def _post_once(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: Dict[str, str],
        body: str,
        auth: Optional[httpx.BasicAuth],
        attempt: int,
    ) -> int:
        try:
            if auth is not None:
                response = await client.post(url, content=body, headers=headers, auth=auth)
            else:
                response = await client.post(url, content=body, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {type(e).__name__}: {e}", attempt=attempt) from e

        if not 200 <= response.status_code < 300:
            raise TransportError(
                "Push rejected",
                status_code=response.status_code,
                body=response.text,
                attempt=attempt,
            )
        return response.status_code

    async def push_configured(self, batch: Sequence[Metric]) -> PushResult:
        """Resolve the active destination and push ``batch`` to it."""
        return await self.push(batch, self.resolve_destination())
