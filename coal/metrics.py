"""
Prometheus metrics for Coal.
"""

from typing import Optional

from prometheus_client import Counter, Histogram, CollectorRegistry


class CacheMetrics:
    """Counters and histograms for cache and lock activity.

    Metrics are only exported when a registry is supplied; without one they
    still count, which keeps several ``Coal`` instances in one process from
    colliding on the default registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry

        self.requests = Counter(
            "coal_cache_requests_total",
            "Cache reads by result",
            ["result"],
            registry=registry
        )
        self.recomputes = Counter(
            "coal_recomputes_total",
            "Recompute callbacks invoked on cache miss",
            registry=registry
        )
        self.writes = Counter(
            "coal_cache_writes_total",
            "Cache entries written",
            registry=registry
        )
        self.lock_attempts = Histogram(
            "coal_lock_attempts",
            "Conditional-set attempts needed to obtain a lock",
            buckets=(1, 2, 3, 5, 10, 25, 50, 100),
            registry=registry
        )
        self.lock_wait = Histogram(
            "coal_lock_wait_seconds",
            "Time spent spinning for a lock",
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=registry
        )
        self.lock_timeouts = Counter(
            "coal_lock_timeouts_total",
            "Lock acquisitions abandoned after the timeout",
            registry=registry
        )
        self.store_errors = Counter(
            "coal_store_errors_total",
            "Store failures by operation",
            ["operation"],
            registry=registry
        )

    def record_hit(self):
        self.requests.labels(result="hit").inc()

    def record_miss(self):
        self.requests.labels(result="miss").inc()

    def record_recompute(self):
        self.recomputes.inc()

    def record_write(self):
        self.writes.inc()

    def record_lock_acquired(self, attempts: int, elapsed_ms: float):
        self.lock_attempts.observe(attempts)
        self.lock_wait.observe(elapsed_ms / 1000.0)

    def record_lock_timeout(self):
        self.lock_timeouts.inc()

    def record_store_error(self, operation: str):
        self.store_errors.labels(operation=operation).inc()
