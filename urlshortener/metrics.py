"""Prometheus metrics for the URL shortener core.

Metrics are module-level collectors registered once in the default registry,
the same way ``prometheus_client`` is used across the service. The FastAPI
app exposes them on ``/metrics``.
"""

from prometheus_client import Counter, Histogram

__all__ = [
    "TOKEN_GENERATION_REQUESTS_TOTAL",
    "TOKEN_GENERATION_DURATION",
    "TOKEN_RESOLUTION_REQUESTS_TOTAL",
    "CACHE_ERRORS_TOTAL",
    "SWEPT_ENTRIES_TOTAL",
    "SWEEP_FAILURES_TOTAL",
]

# Request metrics
TOKEN_GENERATION_REQUESTS_TOTAL = Counter(
    "url_shortener_generation_requests_total",
    "Total token generation requests",
    ["status", "kind"],
)
TOKEN_RESOLUTION_REQUESTS_TOTAL = Counter(
    "url_shortener_resolution_requests_total",
    "Total token resolution requests",
    ["status", "cache_hit"],
)

# Performance metrics
TOKEN_GENERATION_DURATION = Histogram(
    "url_shortener_generation_duration_seconds",
    "Time taken to allocate and persist a token",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# Cache metrics
CACHE_ERRORS_TOTAL = Counter(
    "url_shortener_cache_errors_total",
    "Cache operations that failed and were downgraded",
    ["operation"],
)

# Sweeper metrics
SWEPT_ENTRIES_TOTAL = Counter(
    "url_shortener_swept_entries_total",
    "Expired entries deleted by the sweeper",
)
SWEEP_FAILURES_TOTAL = Counter(
    "url_shortener_sweep_failures_total",
    "Sweeper ticks whose store delete failed",
)
