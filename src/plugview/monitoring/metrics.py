"""
Metrics Collection
Prometheus metrics for relay sessions and forwarded traffic
"""

import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class RelayMetrics:
    """
    Collects and exposes Prometheus metrics for the relay.

    Each instance owns its registry so several relay apps can coexist in one
    process.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()

        # Connection metrics
        self.connections_total = Counter(
            "relay_connections_total",
            "Total number of accepted WebSocket connections",
            ["side"],
            registry=self.registry,
        )
        self.rejections_total = Counter(
            "relay_rejections_total",
            "Total number of connections closed by relay policy",
            ["reason"],
            registry=self.registry,
        )
        self.active_sessions = Gauge(
            "relay_active_sessions",
            "Number of plugin sessions currently registered",
            registry=self.registry,
        )

        # Traffic metrics
        self.frames_total = Counter(
            "relay_frames_total",
            "Total number of forwarded frames",
            ["direction"],
            registry=self.registry,
        )
        self.bytes_total = Counter(
            "relay_bytes_total",
            "Total number of forwarded bytes",
            ["direction"],
            registry=self.registry,
        )
        self.frames_dropped = Counter(
            "relay_frames_dropped_total",
            "Frames dropped because the peer was absent",
            ["direction"],
            registry=self.registry,
        )
        self.session_duration = Histogram(
            "relay_session_duration_seconds",
            "Lifetime of a plugin connection in seconds",
            buckets=[1.0, 10.0, 60.0, 300.0, 900.0, 3600.0],
            registry=self.registry,
        )

        # System metrics
        self.uptime = Gauge(
            "relay_uptime_seconds",
            "Relay uptime in seconds",
            registry=self.registry,
        )
        self.start_time = time.time()

    def record_connection(self, side: str) -> None:
        """Record an accepted connection ('plugin' or 'host')."""
        self.connections_total.labels(side=side).inc()

    def record_rejection(self, reason: str) -> None:
        """Record a policy close."""
        self.rejections_total.labels(reason=reason).inc()

    def record_frame(self, direction: str, size: int) -> None:
        """Record a forwarded frame."""
        self.frames_total.labels(direction=direction).inc()
        self.bytes_total.labels(direction=direction).inc(size)

    def record_dropped(self, direction: str) -> None:
        self.frames_dropped.labels(direction=direction).inc()

    def record_session_closed(self, duration: float) -> None:
        self.session_duration.observe(duration)

    def set_active_sessions(self, count: int) -> None:
        self.active_sessions.set(count)

    def update_uptime(self) -> None:
        """Update the uptime metric."""
        self.uptime.set(time.time() - self.start_time)

    def get_metrics(self) -> bytes:
        """Get metrics in Prometheus format."""
        self.update_uptime()
        return generate_latest(self.registry)
