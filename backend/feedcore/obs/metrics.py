"""Central registry for Prometheus metrics used across the feed core."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"feedcore_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"feedcore_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

CACHE_HITS = Counter(
	"feedcore_cache_hits_total",
	"Cache hits per domain",
	["domain"],
)

CACHE_MISSES = Counter(
	"feedcore_cache_misses_total",
	"Cache misses per domain (including expired entries)",
	["domain"],
)

CACHE_EVICTIONS = Counter(
	"feedcore_cache_evictions_total",
	"Entries evicted by LRU pressure",
	["domain"],
)

CACHE_ERRORS = Counter(
	"feedcore_cache_errors_total",
	"Cache operations that failed and were bypassed",
	["domain", "op"],
)

CACHE_INVALIDATIONS = Counter(
	"feedcore_cache_invalidations_total",
	"Explicit cache invalidations issued by writes",
	["domain", "kind"],
)

CACHE_ENTRIES = Gauge(
	"feedcore_cache_entries",
	"Live entries per cache domain, sampled by the readiness check",
	["domain"],
)

FEED_PARTITION_FETCH_FAILURES = Counter(
	"feedcore_feed_partition_fetch_failures_total",
	"Partition window fetches that failed and were skipped",
	["source"],
)

FEED_MERGE_CANDIDATES = Counter(
	"feedcore_feed_merge_candidates_total",
	"Items considered by the merge engine after dedup",
)

FEED_MERGE_DURATION = Histogram(
	"feedcore_feed_merge_duration_ms",
	"Merge-paginate duration for cache misses",
	buckets=[5, 10, 20, 40, 80, 160, 320, 640],
)

REVIEW_AGG_DURATION = Histogram(
	"feedcore_review_aggregation_duration_ms",
	"Review aggregation duration for cache misses",
	buckets=[5, 10, 20, 40, 80, 160, 320, 640],
)

REVIEW_AGG_EXCLUDED = Counter(
	"feedcore_review_aggregation_excluded_total",
	"Review items excluded because the viewer already acted on the target",
)

MEDIA_CLEANUP_FAILURES = Counter(
	"feedcore_media_cleanup_failures_total",
	"Media deletions that failed after the primary delete committed",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


__all__ = [
	"CACHE_ENTRIES",
	"CACHE_ERRORS",
	"CACHE_EVICTIONS",
	"CACHE_HITS",
	"CACHE_INVALIDATIONS",
	"CACHE_MISSES",
	"FEED_MERGE_CANDIDATES",
	"FEED_MERGE_DURATION",
	"FEED_PARTITION_FETCH_FAILURES",
	"MEDIA_CLEANUP_FAILURES",
	"REQUEST_COUNTER",
	"REQUEST_LATENCY",
	"REVIEW_AGG_DURATION",
	"REVIEW_AGG_EXCLUDED",
	"observe_request",
]
