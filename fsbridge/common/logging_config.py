"""
Structured JSON logging with correlation IDs and operation timing.

Provides:
- JSON format for log aggregation
- Correlation IDs shared by all log lines of one logical job
- Top-level backend, path, source and destination keys from ``extra=``
- Structured metadata via ``extra={"extra_fields": {...}}``
- Timing and throughput tracking for storage operations
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Context variable for correlation ID (thread-safe)
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None)

# Client libraries that log every HTTP round trip at INFO/DEBUG
NOISY_LOGGERS = ("urllib3", "botocore", "boto3", "s3transfer", "hdfs")

# Record attributes promoted to top-level JSON keys, set with
# logger.info(..., extra={"backend": "hdfs", "path": "/test002"})
STORAGE_FIELDS = ("backend", "path", "source", "destination")


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format with standardized fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        for field in STORAGE_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = str(value)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class PerformanceTracker:
    """
    Context manager for tracking operation performance.

    Transfers pass ``bytes=`` so completion also reports throughput.

    Usage:
        with PerformanceTracker("upload", logger, backend="hdfs", bytes=size):
            adapter.put_file(...)
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        log_level: int = logging.INFO,
        **extra_fields,
    ):
        """
        Initialize performance tracker.

        Args:
            operation: Operation name
            logger: Logger instance
            log_level: Log level for completion message
            **extra_fields: Additional structured fields
        """
        self.operation = operation
        self.logger = logger
        self.log_level = log_level
        self.extra_fields = extra_fields
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self):
        """Start timing."""
        self.start_time = time.time()
        extra = {"operation": self.operation, **self.extra_fields}

        self.logger.log(
            logging.DEBUG,
            f"Starting operation: {self.operation}",
            extra={"extra_fields": extra},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Log completion with duration."""
        self.duration_ms = round((time.time() - self.start_time) * 1000, 2)

        extra = {
            "operation": self.operation,
            "duration_ms": self.duration_ms,
            **self.extra_fields,
        }

        size = self.extra_fields.get("bytes")
        if not exc_type and size and self.duration_ms:
            extra["bytes_per_second"] = round(size / (self.duration_ms / 1000))

        if exc_type:
            extra["error"] = str(exc_val)
            extra["error_type"] = exc_type.__name__
            self.logger.error(
                f"Operation failed: {self.operation}",
                extra={"extra_fields": extra},
            )
        else:
            self.logger.log(
                self.log_level,
                f"Operation completed: {self.operation}",
                extra={"extra_fields": extra},
            )


def setup_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure application logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting if True, standard format if False
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, log_level.upper()))

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """
    Set correlation ID in context.

    Args:
        correlation_id: Correlation ID (generated if not provided)

    Returns:
        Correlation ID
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    correlation_id_ctx.set(correlation_id)
    return correlation_id


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID from context."""
    return correlation_id_ctx.get()


def clear_correlation_id():
    """Clear correlation ID from context."""
    correlation_id_ctx.set(None)
