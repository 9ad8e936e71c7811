"""Prometheus metrics for the search fan-out and the HTTP API."""

from prometheus_client import CollectorRegistry, Counter, Histogram

METRICS_REGISTRY = CollectorRegistry()

SITE_FETCH_COUNT = Counter(
    "mms_site_fetch_total",
    "Site pipelines run, by outcome",
    ["site", "status"],
    registry=METRICS_REGISTRY,
)
SITE_LATENCY = Histogram(
    "mms_site_latency_seconds",
    "Fetch-and-extract latency per site in seconds",
    ["site"],
    registry=METRICS_REGISTRY,
)
REQUEST_COUNT = Counter(
    "mms_http_requests_total",
    "Total HTTP API requests",
    ["endpoint", "status"],
    registry=METRICS_REGISTRY,
)
