"""
Shared metrics configuration for the stale cache service.
"""

from typing import Any, Dict, Optional
import time
from contextlib import contextmanager

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, Info, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Each collector owns its registry so several caches can live in one process
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._setup_cache_metrics()

    def _setup_cache_metrics(self):
        """Set up cache orchestration metrics."""
        self._metrics["cache_lookups_total"] = Counter(
            "cache_lookups_total",
            "Cache lookups by outcome",
            ["cache", "outcome"],
            registry=self.registry
        )

        self._metrics["cache_backend_errors_total"] = Counter(
            "cache_backend_errors_total",
            "Storage backend failures absorbed by the cache",
            ["cache", "backend", "operation"],
            registry=self.registry
        )

        self._metrics["cache_refresh_total"] = Counter(
            "cache_refresh_total",
            "Producer refreshes by mode and result",
            ["cache", "mode", "result"],
            registry=self.registry
        )

        self._metrics["cache_refresh_duration_seconds"] = Histogram(
            "cache_refresh_duration_seconds",
            "Producer refresh duration in seconds",
            ["cache", "mode"],
            registry=self.registry
        )

    def sample(self, name: str, **labels) -> float:
        """Read back the current value of a sample, 0.0 when never recorded."""
        value = self.registry.get_sample_value(name, labels)
        return value or 0.0

    def render(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_lookup(self, cache: str, outcome: str):
        """Record the decision taken for a cache lookup."""
        self._metrics["cache_lookups_total"].labels(cache=cache, outcome=outcome).inc()

    def record_backend_error(self, cache: str, backend: str, operation: str):
        """Record a backend failure that was absorbed."""
        self._metrics["cache_backend_errors_total"].labels(
            cache=cache,
            backend=backend,
            operation=operation
        ).inc()

    @contextmanager
    def time_refresh(self, cache: str, mode: str):
        """Context manager timing a producer refresh and counting its result."""
        start_time = time.time()
        result = "error"
        try:
            yield
            result = "ok"
        finally:
            duration = time.time() - start_time
            self._metrics["cache_refresh_duration_seconds"].labels(cache=cache, mode=mode).observe(duration)
            self._metrics["cache_refresh_total"].labels(cache=cache, mode=mode, result=result).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
