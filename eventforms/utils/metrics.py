"""Prometheus metrics for sync operations."""

from prometheus_client import Counter, Histogram

from eventforms.sync.instrumentation import SyncMetrics

sync_latency_ms = Histogram(
    "eventforms_sync_latency_ms",
    "Remote sync operation latency in milliseconds",
    ["operation", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000],
)

sync_outcomes_total = Counter(
    "eventforms_sync_outcomes_total",
    "Sync operation outcomes",
    ["operation", "outcome"],
)


class PrometheusSyncMetrics(SyncMetrics):
    """Prometheus-based sync metrics implementation."""

    def record_latency(self, operation: str, outcome: str, latency_ms: float) -> None:
        """Record remote operation latency."""
        sync_latency_ms.labels(operation=operation, outcome=outcome).observe(latency_ms)

    def inc_outcome(self, operation: str, outcome: str) -> None:
        """Increment outcome counter."""
        sync_outcomes_total.labels(operation=operation, outcome=outcome).inc()
