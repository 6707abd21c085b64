"""
Prometheus metrics collection.

In-memory counters and histograms; Prometheus handles storage.
Metric labels never carry masked or unmasked payload values.
"""

import time
from typing import Optional

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info

from .. import __version__

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for TraceMask.

    Pass a private registry to keep collectors isolated (tests, embedding).
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.registry = registry

        # Service info
        self.service_info = Info(
            "tracemask_service",
            "TraceMask service information",
            registry=registry,
        )
        self.service_info.info({
            "version": __version__,
            "service": "tracemask",
        })

        # Request metrics
        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry,
        )

        # Masking metrics
        self.events_masked_total = Counter(
            "events_masked_total",
            "Total network events masked",
            ["kind", "level"],
            registry=registry,
        )

        self.masking_fallbacks_total = Counter(
            "masking_fallbacks_total",
            "Events re-masked with the locked policy after an unexpected error",
            registry=registry,
        )

        self.masking_duration = Histogram(
            "masking_duration_seconds",
            "Time spent masking a single event",
            buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5],
            registry=registry,
        )

        # Diagnostic logging
        self.diagnostic_logs_total = Counter(
            "diagnostic_logs_total",
            "Unmasked diagnostic log lines emitted",
            ["level"],
            registry=registry,
        )

        # Sink metrics
        self.sink_events_recorded_total = Counter(
            "sink_events_recorded_total",
            "Masked events handed to the analytics sink",
            registry=registry,
        )

        self.sink_events_dropped_total = Counter(
            "sink_events_dropped_total",
            "Masked events dropped because the sink buffer was full",
            registry=registry,
        )

        self.sink_requests_total = Counter(
            "sink_requests_total",
            "Total uploads to the analytics collector",
            ["status_code"],
            registry=registry,
        )

        self.sink_request_duration = Histogram(
            "sink_request_duration_seconds",
            "Analytics upload duration in seconds",
            buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=registry,
        )

        self.sink_events_forwarded_total = Counter(
            "sink_events_forwarded_total",
            "Total masked events forwarded to the analytics collector",
            registry=registry,
        )

        self.sink_retries_total = Counter(
            "sink_retries_total",
            "Total analytics upload retries",
            ["attempt"],
            registry=registry,
        )

        self.uptime_seconds = Gauge(
            "uptime_seconds",
            "Service uptime in seconds",
            registry=registry,
        )

        # Track start time for uptime calculation
        self._start_time = time.time()

    def record_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_seconds: float
    ) -> None:
        """Record HTTP request metrics."""
        self.requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self.request_duration.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration_seconds)

    def record_masking(self, kind: str, level: str, duration_seconds: Optional[float] = None) -> None:
        """Record a masked event."""
        self.events_masked_total.labels(kind=kind, level=level).inc()
        if duration_seconds is not None:
            self.masking_duration.observe(duration_seconds)

    def record_masking_fallback(self) -> None:
        """Record a locked-policy fallback."""
        self.masking_fallbacks_total.inc()

    def record_diagnostic_log(self, level: str) -> None:
        self.diagnostic_logs_total.labels(level=level).inc()

    def record_sink_event(self, dropped: int = 0) -> None:
        """Record an event handed to the sink and any it displaced."""
        self.sink_events_recorded_total.inc()
        if dropped:
            self.sink_events_dropped_total.inc(dropped)

    def record_sink_drops(self, count: int) -> None:
        self.sink_events_dropped_total.inc(count)

    def record_sink_request(
        self,
        status_code: int,
        duration_seconds: float,
        events_count: int,
    ) -> None:
        """Record an upload to the analytics collector."""
        self.sink_requests_total.labels(status_code=str(status_code)).inc()
        self.sink_request_duration.observe(duration_seconds)

        if 200 <= status_code < 300:
            self.sink_events_forwarded_total.inc(events_count)

    def record_sink_retry(self, attempt: int) -> None:
        self.sink_retries_total.labels(attempt=str(attempt)).inc()

    def update_system_metrics(self) -> None:
        """Update system-level metrics."""
        self.uptime_seconds.set(time.time() - self._start_time)
