"""
Nuri Wallet - Structured Logging Configuration

Configures structured JSON logging:
- JSON format for easy parsing and aggregation
- Log rotation to prevent disk space issues
- In-memory debug log buffer for on-device inspection

Usage:
    from nuri.core.logging_config import setup_logging

    logger = setup_logging(name="nuri", level="DEBUG", enable_file=False)
    logger.info("Export started", extra={"event": "export.start"})
"""

import collections
import logging
import logging.handlers
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional

from pythonjsonlogger import jsonlogger

from nuri.core import config
from nuri.core.exceptions import WalletError

# Signature of the error callback pipelines report their typed failure to.
ErrorCallback = Callable[[WalletError], None]


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with timestamp, environment, service and source location.
    """

    def __init__(
        self,
        fmt: str = "%(timestamp)s %(level)s %(name)s %(message)s",
        timestamp: bool = True,
        environment: Optional[str] = None,
        service_name: str = "nuri",
    ):
        super().__init__(fmt=fmt)
        self.timestamp = timestamp
        self.environment = environment or "production"
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if self.timestamp and not isinstance(log_record.get("timestamp"), str):
            created = datetime.fromtimestamp(record.created, timezone.utc)
            log_record["timestamp"] = created.isoformat().replace("+00:00", "Z")

        log_record["environment"] = self.environment
        log_record["service"] = self.service_name

        if not log_record.get("level"):
            log_record["level"] = record.levelname.lower()

        log_record["source"] = {
            "function": record.funcName,
            "module": record.module,
            "line": record.lineno,
        }


class DebugLogHandler(logging.Handler):
    """
    Bounded in-memory log buffer.

    Backs the on-device debug log: the UI reads ``entries()`` instead of
    tailing a file. Oldest lines are dropped once ``capacity`` is reached.
    """

    def __init__(self, capacity: int = 200, level: int = logging.DEBUG):
        super().__init__(level=level)
        self.capacity = capacity
        self._entries: Deque[str] = collections.deque(maxlen=capacity)
        self._entries_lock = threading.Lock()
        self.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except (TypeError, ValueError):
            self.handleError(record)
            return
        with self._entries_lock:
            self._entries.append(line)

    def entries(self) -> List[str]:
        with self._entries_lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()


def setup_logging(
    name: str = "nuri",
    log_file: Optional[str] = None,
    level: Optional[str] = None,
    environment: Optional[str] = None,
    enable_console: bool = True,
    enable_file: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    debug_buffer: Optional[DebugLogHandler] = None,
) -> logging.Logger:
    """
    Setup structured JSON logging.

    Args:
        name: Logger name (typically the package name)
        log_file: Path to JSON log file (defaults to NURI_LOG_FILE)
        level: Logging level (defaults to NURI_LOG_LEVEL)
        environment: Environment identifier (defaults to NURI_ENVIRONMENT)
        enable_console: Whether to log to stdout
        enable_file: Whether to log to file
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup files to keep
        debug_buffer: Optional in-memory handler to attach as well

    Returns:
        Configured logger instance
    """
    log_file = log_file or config.LOG_FILE
    level = level or config.LOG_LEVEL
    environment = environment or config.ENVIRONMENT

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    formatter = CustomJsonFormatter(
        timestamp=True,
        environment=environment,
        service_name=name.split(".")[0],
    )

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, level.upper()))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if enable_file and log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setLevel(getattr(logging, level.upper()))
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(
                "Could not create file handler",
                extra={"event": "logging.file_handler_failed", "log_file": log_file, "error": str(e)},
            )

    if debug_buffer is not None:
        logger.addHandler(debug_buffer)

    return logger


def get_logger(
    name: str,
    log_file: Optional[str] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """
    Get or create a logger with standard configuration.

    Child loggers of an already configured parent (``nuri.mobile.*`` under
    ``nuri``) are returned as-is and propagate to the parent's handlers.
    """
    logger = logging.getLogger(name)

    if not logger.handlers and "." not in name:
        return setup_logging(name=name, log_file=log_file, level=level)

    return logger


def report_error(
    logger: logging.Logger,
    error: WalletError,
    on_error: Optional[ErrorCallback],
    event: str,
) -> None:
    """Log a typed pipeline failure and hand it to the error callback, if any."""
    logger.error(
        error.message,
        extra={
            "event": event,
            "error_type": type(error).__name__,
            "details": error.details,
        },
    )
    if on_error is not None:
        try:
            on_error(error)
        except Exception as callback_exc:  # the callback belongs to the UI layer
            logger.warning(
                "Error callback raised",
                extra={"event": "logging.error_callback_failed", "error": str(callback_exc)},
            )
