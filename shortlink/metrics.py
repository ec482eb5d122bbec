"""Prometheus metrics shared by the service layer and the click recorder."""

from prometheus_client import Counter, Histogram

__all__ = [
    "LINK_CREATION_REQUESTS_TOTAL",
    "LINK_CREATION_DURATION",
    "RESOLVE_REQUESTS_TOTAL",
    "RESOLVE_DURATION",
    "CACHE_HITS_TOTAL",
    "CACHE_MISSES_TOTAL",
    "CACHE_ERRORS_TOTAL",
    "GENERATION_COLLISIONS_TOTAL",
    "CLICK_EVENTS_RECORDED_TOTAL",
    "CLICK_EVENTS_DROPPED_TOTAL",
    "CLICK_EVENTS_FAILED_TOTAL",
]

# Request metrics
LINK_CREATION_REQUESTS_TOTAL = Counter(
    "shortlink_creation_requests_total",
    "Total short link creation requests",
    ["status"],
)
LINK_CREATION_DURATION = Histogram(
    "shortlink_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
RESOLVE_REQUESTS_TOTAL = Counter(
    "shortlink_resolve_requests_total",
    "Total short code resolution requests",
    ["status", "cache_hit"],
)
RESOLVE_DURATION = Histogram(
    "shortlink_resolve_duration_seconds",
    "Time taken to resolve short codes",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)

# Cache metrics
CACHE_HITS_TOTAL = Counter(
    "shortlink_cache_hits_total",
    "Total cache hits for short code lookups",
)
CACHE_MISSES_TOTAL = Counter(
    "shortlink_cache_misses_total",
    "Total cache misses for short code lookups",
)
CACHE_ERRORS_TOTAL = Counter(
    "shortlink_cache_errors_total",
    "Cache operations that failed or timed out",
    ["operation"],
)

GENERATION_COLLISIONS_TOTAL = Counter(
    "shortlink_generation_collisions_total",
    "Generated short code candidates that were already taken",
)

# Click recording metrics
CLICK_EVENTS_RECORDED_TOTAL = Counter(
    "shortlink_click_events_recorded_total",
    "Click events appended to the click store",
)
CLICK_EVENTS_DROPPED_TOTAL = Counter(
    "shortlink_click_events_dropped_total",
    "Click events dropped because the recording queue was full",
)
CLICK_EVENTS_FAILED_TOTAL = Counter(
    "shortlink_click_events_failed_total",
    "Click events that failed to record",
)
