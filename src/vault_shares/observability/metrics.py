"""Prometheus metrics for the share service.

Usage::

    from vault_shares.observability.metrics import SHARE_RESOLUTIONS_TOTAL

    SHARE_RESOLUTIONS_TOTAL.labels(outcome="ok").inc()
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "vault_shares_http_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "vault_shares_http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Share lifecycle metrics
# ---------------------------------------------------------------------------

SHARE_RESOLUTIONS_TOTAL = Counter(
    "vault_shares_resolutions_total",
    "Share token resolutions by outcome (ok, not_found, expired, unavailable, timeout).",
    labelnames=["outcome"],
    registry=REGISTRY,
)

SHARES_CREATED_TOTAL = Counter(
    "vault_shares_created_total",
    "Shares created by mode and scope type.",
    labelnames=["mode", "scope_type"],
    registry=REGISTRY,
)

SHARES_PURGED_TOTAL = Counter(
    "vault_shares_purged_total",
    "Expired shares removed by the background purger.",
    registry=REGISTRY,
)

SCOPE_VIOLATIONS_TOTAL = Counter(
    "vault_shares_scope_violations_total",
    "Requests rejected by the path sandbox.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Deposit metrics
# ---------------------------------------------------------------------------

DEPOSIT_UPLOADS_TOTAL = Counter(
    "vault_shares_deposit_uploads_total",
    "Deposit files by result (uploaded, rejected).",
    labelnames=["result"],
    registry=REGISTRY,
)

RATE_LIMIT_DENIALS_TOTAL = Counter(
    "vault_shares_rate_limit_denials_total",
    "Deposit requests denied by the rate limiter, by reason.",
    labelnames=["reason"],
    registry=REGISTRY,
)

RATE_LIMIT_TRACKED_KEYS = Gauge(
    "vault_shares_rate_limit_tracked_keys",
    "Rate limiter entries remaining after the last sweep.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Access recording
# ---------------------------------------------------------------------------

ACCESS_EVENTS_DROPPED_TOTAL = Counter(
    "vault_shares_access_events_dropped_total",
    "Access-count events dropped because the recorder queue was full.",
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
