"""
TeoVerse - Metrics

In-process metrics registry exported in Prometheus text format at /metrics.

Metrics Categories:
- HTTP request metrics (latency, status codes, in-flight requests)
- Domain metrics (passports, TEO minting, image cache, federation links,
  ambassador questions)
- AI provider metrics (LLM and image requests)
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, TypeVar, cast

import structlog

F = TypeVar("F", bound=Callable[..., Any])

logger = structlog.get_logger(__name__)

DEFAULT_BUCKETS = [0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]


# =============================================================================
# Metric Types
# =============================================================================

@dataclass
class _LabelledMetric:
    name: str
    description: str
    labels: list[str] = field(default_factory=list)
    _max_cardinality: int = 1000
    _cardinality_warned: bool = field(default=False, repr=False)

    def _label_key(self, labels: dict[str, str]) -> tuple[str, ...]:
        return tuple(str(labels.get(name, "")) for name in self.labels)

    def _admit(self, key: tuple[str, ...], store: dict[tuple[str, ...], Any]) -> bool:
        """Refuse new label combinations once the cardinality limit is hit."""
        if key in store or len(store) < self._max_cardinality:
            return True
        if not self._cardinality_warned:
            logger.warning(
                "metric_cardinality_limit",
                metric=self.name,
                limit=self._max_cardinality,
            )
            self._cardinality_warned = True
        return False


@dataclass
class Counter(_LabelledMetric):
    """A monotonically increasing counter."""

    _values: dict[tuple[str, ...], float] = field(default_factory=dict)

    def inc(self, value: float = 1.0, **labels: str) -> None:
        key = self._label_key(labels)
        if not self._admit(key, self._values):
            return
        self._values[key] = self._values.get(key, 0.0) + value

    def value(self, **labels: str) -> float:
        return self._values.get(self._label_key(labels), 0.0)

    def collect(self) -> list[dict[str, Any]]:
        return [
            {"labels": dict(zip(self.labels, key, strict=False)), "value": value}
            for key, value in self._values.items()
        ]


@dataclass
class Gauge(_LabelledMetric):
    """A metric that can go up and down."""

    _values: dict[tuple[str, ...], float] = field(default_factory=dict)

    def set(self, value: float, **labels: str) -> None:
        key = self._label_key(labels)
        if self._admit(key, self._values):
            self._values[key] = value

    def inc(self, value: float = 1.0, **labels: str) -> None:
        key = self._label_key(labels)
        if self._admit(key, self._values):
            self._values[key] = self._values.get(key, 0.0) + value

    def dec(self, value: float = 1.0, **labels: str) -> None:
        self.inc(-value, **labels)

    def value(self, **labels: str) -> float:
        return self._values.get(self._label_key(labels), 0.0)

    def collect(self) -> list[dict[str, Any]]:
        return [
            {"labels": dict(zip(self.labels, key, strict=False)), "value": value}
            for key, value in self._values.items()
        ]


@dataclass
class Histogram(_LabelledMetric):
    """Bucketed observations, stored as running counts."""

    buckets: list[float] = field(default_factory=lambda: list(DEFAULT_BUCKETS))
    _stats: dict[tuple[str, ...], dict[str, Any]] = field(default_factory=dict)

    def observe(self, value: float, **labels: str) -> None:
        key = self._label_key(labels)
        if not self._admit(key, self._stats):
            return
        stats = self._stats.get(key)
        if stats is None:
            bucket_counts = dict.fromkeys(self.buckets, 0)
            bucket_counts[float("inf")] = 0
            stats = self._stats[key] = {"count": 0, "sum": 0.0, "bucket_counts": bucket_counts}

        stats["count"] += 1
        stats["sum"] += value
        for bucket in stats["bucket_counts"]:
            if value <= bucket:
                stats["bucket_counts"][bucket] += 1

    def count(self, **labels: str) -> int:
        stats = self._stats.get(self._label_key(labels))
        return stats["count"] if stats else 0

    def collect(self) -> list[dict[str, Any]]:
        return [
            {
                "labels": dict(zip(self.labels, key, strict=False)),
                "buckets": stats["bucket_counts"].copy(),
                "sum": stats["sum"],
                "count": stats["count"],
            }
            for key, stats in self._stats.items()
        ]


# =============================================================================
# Metrics Registry
# =============================================================================

class MetricsRegistry:
    """
    Central registry for all application metrics.

    Usage:
        metrics = MetricsRegistry()
        passports = metrics.counter("passports_minted_total", "Passports minted")
        passports.inc()
    """

    def __init__(self, prefix: str = "teoverse"):
        self.prefix = prefix
        self._metrics: dict[str, Counter | Gauge | Histogram] = {}
        self._start_time = time.time()

    def _get_or_create(self, cls: type, name: str, description: str, **kwargs: Any) -> Any:
        full_name = f"{self.prefix}_{name}"
        if full_name not in self._metrics:
            self._metrics[full_name] = cls(name=full_name, description=description, **kwargs)
        return self._metrics[full_name]

    def counter(self, name: str, description: str, labels: list[str] | None = None) -> Counter:
        return cast(Counter, self._get_or_create(Counter, name, description, labels=labels or []))

    def gauge(self, name: str, description: str, labels: list[str] | None = None) -> Gauge:
        return cast(Gauge, self._get_or_create(Gauge, name, description, labels=labels or []))

    def histogram(
        self,
        name: str,
        description: str,
        labels: list[str] | None = None,
        buckets: list[float] | None = None,
    ) -> Histogram:
        return cast(
            Histogram,
            self._get_or_create(
                Histogram,
                name,
                description,
                labels=labels or [],
                buckets=buckets or list(DEFAULT_BUCKETS),
            ),
        )

    def to_prometheus_format(self) -> str:
        """Export metrics in Prometheus text format."""
        lines: list[str] = []

        for metric in self._metrics.values():
            lines.append(f"# HELP {metric.name} {metric.description}")

            if isinstance(metric, Histogram):
                lines.append(f"# TYPE {metric.name} histogram")
                for item in metric.collect():
                    base_labels = item["labels"]
                    for bucket, count in item["buckets"].items():
                        le = "+Inf" if bucket == float("inf") else str(bucket)
                        label_str = self._format_labels({**base_labels, "le": le})
                        lines.append(f"{metric.name}_bucket{label_str} {count}")
                    label_str = self._format_labels(base_labels)
                    lines.append(f"{metric.name}_sum{label_str} {item['sum']}")
                    lines.append(f"{metric.name}_count{label_str} {item['count']}")
            else:
                kind = "counter" if isinstance(metric, Counter) else "gauge"
                lines.append(f"# TYPE {metric.name} {kind}")
                for item in metric.collect():
                    label_str = self._format_labels(item["labels"])
                    lines.append(f"{metric.name}{label_str} {item['value']}")

            lines.append("")

        lines.append(f"# HELP {self.prefix}_process_start_time_seconds Start time of the process")
        lines.append(f"# TYPE {self.prefix}_process_start_time_seconds gauge")
        lines.append(f"{self.prefix}_process_start_time_seconds {self._start_time}")

        return "\n".join(lines)

    @staticmethod
    def _format_labels(labels: dict[str, Any]) -> str:
        parts = [f'{k}="{v}"' for k, v in labels.items() if v]
        return "{" + ",".join(parts) + "}" if parts else ""


# =============================================================================
# Pre-defined Metrics
# =============================================================================

metrics = MetricsRegistry()

# HTTP
http_requests_total = metrics.counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = metrics.histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
)

http_requests_in_progress = metrics.gauge(
    "http_requests_in_progress",
    "HTTP requests currently in progress",
    ["method"],
)

# Domain
passports_minted_total = metrics.counter(
    "passports_minted_total",
    "Total passports minted",
)

teo_minted_total = metrics.counter(
    "teo_minted_total",
    "Total federation currency minted",
)

geny_requests_total = metrics.counter(
    "geny_requests_total",
    "Image cache lookups",
    ["result"],
)

federation_link_attempts_total = metrics.counter(
    "federation_link_attempts_total",
    "Federation link attempts",
    ["outcome"],
)

ambassador_questions_total = metrics.counter(
    "ambassador_questions_total",
    "Questions answered by the AI ambassador",
    ["status"],
)

# AI providers
llm_requests_total = metrics.counter(
    "llm_requests_total",
    "Total LLM requests",
    ["provider", "model", "status"],
)

image_generation_duration_seconds = metrics.histogram(
    "image_generation_duration_seconds",
    "Image generation duration in seconds",
    ["provider"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
)

documentation_generation_duration_seconds = metrics.histogram(
    "documentation_generation_duration_seconds",
    "Documentation article generation duration in seconds",
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)


# =============================================================================
# Decorators
# =============================================================================

def track_time(histogram: Histogram, **labels: str) -> Callable[[F], F]:
    """Decorator to track function execution time."""
    def decorator(func: F) -> F:
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            try:
                return await func(*args, **kwargs)
            finally:
                histogram.observe(time.monotonic() - start, **labels)

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            try:
                return func(*args, **kwargs)
            finally:
                histogram.observe(time.monotonic() - start, **labels)

        if inspect.iscoroutinefunction(func):
            return cast(F, async_wrapper)
        return cast(F, sync_wrapper)
    return decorator


# =============================================================================
# FastAPI Integration
# =============================================================================

def _endpoint_label(request: Any) -> str:
    """Route template (``/api/v1/passport/ip-tokens/{token_id}``) when matched."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def add_metrics_middleware(app: Any) -> None:
    """Add metrics middleware to FastAPI app."""
    from fastapi import Request
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.responses import Response as StarletteResponse

    class MetricsMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next: Callable[..., Any]) -> StarletteResponse:
            method = request.method
            http_requests_in_progress.inc(method=method)
            start_time = time.monotonic()

            try:
                response = await call_next(request)
            except Exception:
                http_requests_total.inc(method=method, endpoint=_endpoint_label(request), status="500")
                raise
            finally:
                http_requests_in_progress.dec(method=method)

            endpoint = _endpoint_label(request)
            http_requests_total.inc(method=method, endpoint=endpoint, status=str(response.status_code))
            http_request_duration_seconds.observe(
                time.monotonic() - start_time,
                method=method,
                endpoint=endpoint,
            )
            return response  # type: ignore[no-any-return]

    app.add_middleware(MetricsMiddleware)


def create_metrics_endpoint(app: Any) -> None:
    """Create /metrics endpoint for Prometheus scraping."""
    from fastapi import Response

    @app.get("/metrics", include_in_schema=False)
    async def prometheus_metrics() -> Response:
        return Response(
            content=metrics.to_prometheus_format(),
            media_type="text/plain; version=0.0.4; charset=utf-8",
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
    "http_requests_total",
    "http_request_duration_seconds",
    "passports_minted_total",
    "teo_minted_total",
    "geny_requests_total",
    "federation_link_attempts_total",
    "ambassador_questions_total",
    "llm_requests_total",
    "image_generation_duration_seconds",
    "documentation_generation_duration_seconds",
]
