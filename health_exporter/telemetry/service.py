"""
Export service that wires the pipeline together.

Host applications construct one HealthExportService with their biometric
source, settings store and secret store, then start it or drive single
cycles from their own background hooks.
"""

import asyncio
import logging
import signal
from datetime import timedelta
from pathlib import Path
from typing import Optional, Union

import httpx

from health_exporter.config.settings import ExporterSettings
from health_exporter.config.store import JsonFileSettingsStore, is_destination_configured
from health_exporter.logging_config import setup_logging
from health_exporter.secret_store import EncryptedFileSecretStore
from health_exporter.telemetry.collectors.biometric_collector import BiometricCollector
from health_exporter.telemetry.dispatcher import PushDispatcher
from health_exporter.telemetry.errors import ExportError
from health_exporter.telemetry.protocols import (
    BiometricSource,
    ConfigurationSource,
    Notifier,
    SecretStore,
)
from health_exporter.telemetry.scheduler import PushScheduler
from health_exporter.telemetry.schemas import PushResult, SchedulerStats
from health_exporter.telemetry.storage import BlobStore, FileBlobStore, MetricCache

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "Health Data Export"


class HealthExportService:
    """
    Main export service.

    This service:
    - Builds the cache, collector, dispatcher and scheduler
    - Runs the periodic push timer
    - Handles data-changed triggers and background refreshes
    """

    def __init__(
        self,
        source: BiometricSource,
        config_source: ConfigurationSource,
        secret_store: SecretStore,
        settings: Optional[ExporterSettings] = None,
        blob_store: Optional[BlobStore] = None,
        notifier: Optional[Notifier] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize export service.

        Args:
            source: Health store to collect from
            config_source: Runtime settings (destination, interval, last push)
            secret_store: Destination credentials
            settings: Static configuration, defaults when omitted
            blob_store: Cache persistence, a file store in the state dir when omitted
            notifier: Receives background refresh outcomes
            transport: httpx transport for the dispatcher
        """
        self.settings = settings or ExporterSettings()
        self.config_source = config_source
        self.secret_store = secret_store
        self.notifier = notifier

        storage = self.settings.storage
        self.cache = MetricCache(
            blob_store or FileBlobStore(storage.state_dir),
            max_age=timedelta(seconds=storage.cache_max_age_seconds),
        )
        self.collector = BiometricCollector(
            source=source,
            cache=self.cache,
            device_name=self.settings.device.name,
            config_source=config_source,
            window_days=self.settings.collection.window_days,
            category_timeout=self.settings.collection.category_timeout_seconds,
        )
        self.dispatcher = PushDispatcher(
            config_source=config_source,
            secret_store=secret_store,
            device_name=self.settings.device.name,
            job=self.settings.device.job,
            transport=transport,
            max_attempts=self.settings.push.max_attempts,
            backoff_base=self.settings.push.backoff_base,
            timeout_seconds=self.settings.push.timeout_seconds,
        )
        self.scheduler = PushScheduler(
            collector=self.collector,
            dispatcher=self.dispatcher,
            config_source=config_source,
            default_interval_minutes=self.settings.push.default_interval_minutes,
            max_attempts=self.settings.collection.max_attempts,
            retry_delay=self.settings.collection.retry_delay_seconds,
        )

        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start (or restart) periodic pushing."""
        if not self.is_configured():
            logger.warning("Push destination not configured, cycles will be skipped until it is")
        await self.scheduler.start()

    async def stop(self) -> None:
        """Stop periodic pushing and in-flight triggered cycles."""
        await self.scheduler.stop()
        self._shutdown_event.set()

    async def push_once(self) -> Optional[PushResult]:
        """
        Run a single cycle now.

        Returns:
            Push result or None when the cycle failed or was skipped
        """
        return await self.scheduler.run_cycle(reason="manual")

    def handle_source_change(self) -> Optional[asyncio.Task]:
        """
        React to new data in the biometric source.

        Returns:
            Task running the triggered cycle, None when no destination is set
        """
        if not self.is_configured():
            logger.debug("Ignoring data change, push destination not configured")
            return None
        return self.scheduler.trigger(reason="source_change")

    async def background_refresh(self) -> bool:
        """
        Run one cycle on behalf of an OS background task.

        The outcome is reported through the notifier when one is set.

        Returns:
            True if the push succeeded
        """
        try:
            result = await self.scheduler.run_cycle(reason="background", raise_errors=True)
        except ExportError as e:
            await self._notify(f"Push failed: {e}", success=False)
            return False
        except Exception as e:
            logger.error(f"Background refresh failed: {e}")
            await self._notify(f"Push failed: {e}", success=False)
            return False

        if result is None:
            # Another cycle was already in flight
            return False
        await self._notify(f"Successfully pushed {result.metric_count} metrics", success=True)
        return True

    async def _notify(self, body: str, success: bool) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(NOTIFICATION_TITLE, body, success)
        except Exception as e:
            logger.error(f"Failed to send notification: {e}")

    async def clear_cache(self) -> None:
        await self.cache.clear()

    def is_configured(self) -> bool:
        """Check if the active destination has every required setting."""
        return is_destination_configured(self.config_source, self.secret_store)

    def get_stats(self) -> SchedulerStats:
        return self.scheduler.get_stats()

    @property
    def is_running(self) -> bool:
        return self.scheduler.is_running

    async def serve(self) -> None:
        """Start pushing and block until stop() is called or a signal arrives."""
        await self.start()
        self._register_signal_handlers()
        logger.info("Health export service started")
        await self._shutdown_event.wait()

    def _register_signal_handlers(self) -> None:
        """Register signal handlers for graceful shutdown."""

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating shutdown")
            asyncio.create_task(self.stop())

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)


async def run_export_service(
    source: BiometricSource, config_path: Union[str, Path], **kwargs
) -> None:
    """
    Run the export service from a configuration file.

    This is the main entry point for running the exporter as a service.

    Args:
        source: Health store to collect from
        config_path: YAML configuration file
        **kwargs: Additional HealthExportService options
    """
    settings = ExporterSettings.from_file(config_path)
    setup_logging(
        log_dir=settings.logging.log_dir,
        console_level=settings.logging.console_level,
        file_level=settings.logging.file_level,
        use_json=settings.logging.use_json,
    )

    service = HealthExportService(
        source=source,
        config_source=JsonFileSettingsStore(settings.storage.resolved_settings_file),
        secret_store=EncryptedFileSecretStore(settings.storage.resolved_secrets_file),
        settings=settings,
        **kwargs,
    )

    try:
        await service.serve()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Health export service error: {e}")
    finally:
        await service.stop()
