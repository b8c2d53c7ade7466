"""
TeoVerse - Monitoring Module

- Structured logging (structlog)
- In-process metrics with Prometheus text export
"""

from .logging import configure_logging, get_logger, log_duration
from .metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
    add_metrics_middleware,
    create_metrics_endpoint,
    metrics,
    track_time,
)

__all__ = [
    "MetricsRegistry",
    "Counter",
    "Gauge",
    "Histogram",
    "metrics",
    "track_time",
    "add_metrics_middleware",
    "create_metrics_endpoint",
    "configure_logging",
    "get_logger",
    "log_duration",
]
