"""
Prometheus metrics for storage operations.

Provides counters, histograms, and gauges for tracking:
- Facade operations per backend and outcome
- Operation latency
- Bytes moved by uploads and downloads
- Open backend sessions
"""

import time
from functools import wraps
from typing import Callable

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a global registry
REGISTRY = CollectorRegistry()

# ========== Counters ==========

storage_operations_total = Counter(
    "storage_operations_total",
    "Total number of storage facade operations",
    ["backend", "operation", "status"],  # hdfs/s3a/file, upload/..., success/failure
    registry=REGISTRY,
)

storage_bytes_transferred_total = Counter(
    "storage_bytes_transferred_total",
    "Bytes copied between local disk and a backend",
    ["backend", "direction"],  # upload/download
    registry=REGISTRY,
)

# ========== Histograms ==========

storage_operation_duration_seconds = Histogram(
    "storage_operation_duration_seconds",
    "Time to complete a storage facade operation",
    ["backend", "operation"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0),
    registry=REGISTRY,
)

# ========== Gauges ==========

storage_open_sessions = Gauge(
    "storage_open_sessions",
    "Number of connected facades",
    ["backend"],
    registry=REGISTRY,
)


# ========== Metric Decorators ==========

def track_storage_operation(operation: str):
    """
    Decorator for facade methods; labels come from ``self.backend``.

    A False return value counts as a failure, so boolean transfer results
    are tracked like raised errors.

    Args:
        operation: Operation name (mkdir/upload/download/list/...)
    """
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            start_time = time.time()
            status = "success"
            try:
                result = func(self, *args, **kwargs)
                if result is False:
                    status = "failure"
                return result
            except Exception as e:
                status = "failure"
                raise e
            finally:
                duration = time.time() - start_time
                storage_operation_duration_seconds.labels(
                    backend=self.backend, operation=operation).observe(duration)
                storage_operations_total.labels(
                    backend=self.backend, operation=operation, status=status).inc()

        return wrapper
    return decorator


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for metrics response."""
    return CONTENT_TYPE_LATEST
