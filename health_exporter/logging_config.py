"""
Centralized logging configuration for the health exporter.

Implements file-based logging with rotation, a dedicated push stream,
structured logging for machine parsing and an in-memory buffer of recent
records for in-app log viewers.
"""

import json
import logging
import logging.handlers
import sys
import threading
from collections import deque
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

# Logger that receives collector, dispatcher and scheduler output
TELEMETRY_LOGGER = "health_exporter.telemetry"

MAX_RECENT_LOGS = 1000

# Record attributes copied into structured output when present
CONTEXT_FIELDS = ("destination", "attempt", "status_code", "duration_ms", "metric_count", "cycle")


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON for better parsing."""
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add extra fields if present
        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_obj[field] = getattr(record, field)

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter for console and file logs."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = False):
        """Initialize formatter with optional color support."""
        self.use_colors = use_colors
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format with optional colors for console output."""
        if self.use_colors and record.levelname in self.COLORS:
            original = record.levelname
            record.levelname = f"{self.COLORS[original]}{original}{self.RESET}"
            try:
                return super().format(record)
            finally:
                record.levelname = original
        return super().format(record)


class RecentLogHandler(logging.Handler):
    """Keeps the most recent records in memory for a log viewer."""

    def __init__(self, capacity: int = MAX_RECENT_LOGS, level: int = logging.INFO):
        super().__init__(level=level)
        self._records: Deque[logging.LogRecord] = deque(maxlen=capacity)
        self._records_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        with self._records_lock:
            self._records.append(record)

    def get_logs(self, level: Optional[int] = None) -> List[logging.LogRecord]:
        """Return buffered records, oldest first, optionally of one level only."""
        with self._records_lock:
            records = list(self._records)
        if level is None:
            return records
        return [r for r in records if r.levelno == level]

    def clear(self) -> None:
        with self._records_lock:
            self._records.clear()


_recent_handler: Optional[RecentLogHandler] = None


def get_recent_logs(level: Optional[int] = None) -> List[logging.LogRecord]:
    """Records captured since setup_logging(), empty if logging is not set up."""
    if _recent_handler is None:
        return []
    return _recent_handler.get_logs(level)


def clear_recent_logs() -> None:
    if _recent_handler is not None:
        _recent_handler.clear()


def setup_logging(
    log_dir: str = "/var/log/health-exporter",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    use_json: bool = False,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure logging for the health exporter.

    Args:
        log_dir: Directory for log files
        console_level: Console logging level
        file_level: File logging level
        use_json: Use JSON formatting for files
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
    """
    global _recent_handler

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    # Console handler with color
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, console_level))
    console_handler.setFormatter(HumanReadableFormatter(use_colors=True))
    root_logger.addHandler(console_handler)

    file_formatter = StructuredFormatter() if use_json else HumanReadableFormatter()

    # Main application log
    main_handler = logging.handlers.RotatingFileHandler(
        log_path / "exporter.log", maxBytes=max_bytes, backupCount=backup_count
    )
    main_handler.setLevel(getattr(logging, file_level))
    main_handler.setFormatter(file_formatter)
    root_logger.addHandler(main_handler)

    # Error-only log for monitoring
    error_handler = logging.handlers.RotatingFileHandler(
        log_path / "error.log", maxBytes=max_bytes, backupCount=backup_count
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_formatter)
    root_logger.addHandler(error_handler)

    # In-memory buffer for the app's log viewer
    _recent_handler = RecentLogHandler()
    root_logger.addHandler(_recent_handler)

    # Push pipeline log, also propagated so errors reach error.log
    telemetry_logger = logging.getLogger(TELEMETRY_LOGGER)
    for handler in list(telemetry_logger.handlers):
        telemetry_logger.removeHandler(handler)
    push_handler = logging.handlers.RotatingFileHandler(
        log_path / "push.log", maxBytes=max_bytes, backupCount=backup_count
    )
    push_handler.setFormatter(file_formatter)
    telemetry_logger.addHandler(push_handler)
    telemetry_logger.setLevel(logging.DEBUG)

    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    root_logger.info(
        f"Logging initialized - Console: {console_level}, File: {file_level}, "
        f"Directory: {log_dir}, JSON: {use_json}"
    )


_context_fields: ContextVar[Tuple[Tuple[str, Dict[str, Any]], ...]] = ContextVar(
    "health_exporter_log_context", default=()
)
_base_record_factory: Optional[Callable[..., logging.LogRecord]] = None


def _context_record_factory(*args, **kwargs) -> logging.LogRecord:
    record = _base_record_factory(*args, **kwargs)
    for logger_name, fields in _context_fields.get():
        if record.name == logger_name or record.name.startswith(f"{logger_name}."):
            for key, value in fields.items():
                setattr(record, key, value)
    return record


def _install_record_factory() -> None:
    global _base_record_factory
    if _base_record_factory is None:
        _base_record_factory = logging.getLogRecordFactory()
        logging.setLogRecordFactory(_context_record_factory)


class LogContext:
    """
    Context manager adding fields to the records of one logger.

    Fields are held in a context variable, so they apply only to the task
    (or thread) that entered the context and to tasks it creates. Records
    of child loggers receive the fields too.
    """

    def __init__(self, logger: logging.Logger, **kwargs):
        """
        Initialize log context.

        Args:
            logger: Logger whose records receive the fields
            **kwargs: Context fields, e.g. destination or attempt
        """
        self.logger = logger
        self.context = kwargs
        self._token: Optional[Token] = None

    def __enter__(self):
        _install_record_factory()
        self._token = _context_fields.set(
            _context_fields.get() + ((self.logger.name, dict(self.context)),)
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            _context_fields.reset(self._token)
            self._token = None
