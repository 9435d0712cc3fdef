"""Prometheus instrumentation of the omniplexer front-end itself.

These are distinct from the hand-rendered ``omniplexer_*`` self-metrics
block (see services/self_metrics.py): that block reproduces the fixed
per-upstream report, while the collectors here describe the HTTP surface
and the upstream calls with proper counter/histogram semantics.  Both are
served from ``/metrics``; the collectors are appended after the report.

All collectors live in a dedicated CollectorRegistry rather than the
prometheus_client global one, so the output carries only omniplexer
series (no python_gc_* / process_* noise mixed into a proxied scrape).
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

REGISTRY = CollectorRegistry(auto_describe=True)

# ---------------------------------------------------------------------------
# Inbound HTTP (populated by MetricsMiddleware)
# ---------------------------------------------------------------------------
# The label is the routing mode, not the raw path: aggregate mode accepts
# any path, so a path label would have unbounded cardinality.

REQUEST_COUNT = Counter(
    "omniplexer_http_requests_total",
    "Inbound HTTP requests by method, routing mode, and status code",
    ["method", "route_mode", "status_code"],
    registry=REGISTRY,
)

REQUEST_DURATION = Histogram(
    "omniplexer_http_request_duration_seconds",
    "Inbound HTTP request duration in seconds",
    ["method", "route_mode"],
    # Upper buckets cover the 5s per-upstream timeout
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 7.5],
    registry=REGISTRY,
)

ACTIVE_REQUESTS = Gauge(
    "omniplexer_http_active_requests",
    "Number of inbound HTTP requests currently being processed",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Upstream calls (populated by ParallelFetcher)
# ---------------------------------------------------------------------------

UPSTREAM_FETCH_DURATION = Histogram(
    "omniplexer_upstream_fetch_duration_seconds",
    "Upstream fetch duration in seconds by server and outcome",
    ["server", "outcome"],  # outcome: success | http_error | transport_error
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=REGISTRY,
)
