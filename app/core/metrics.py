"""Prometheus metric inventory.

Every metric the service exports is declared here; the modules that own
the behavior import and increment them at the point of action.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Authorization and entitlement metrics
# ---------------------------------------------------------------------------

AUTHZ_DECISIONS = Counter(
    "authz_decisions_total",
    "Authorization gate decisions by outcome",
    ["outcome"],  # allow|super_admin|unauthorized|forbidden|module_unavailable
)

LIMIT_VIOLATIONS = Counter(
    "limit_violations_total",
    "Writes rejected because an organization cap would be exceeded",
    ["resource"],  # users|employees
)

LAZY_ACTIVATIONS = Counter(
    "trial_lazy_activations_total",
    "OrgModule rows flipped to enabled on first observation of an active trial",
    ["module_key"],
)

SUBSCRIPTION_EVENTS = Counter(
    "subscription_events_total",
    "Subscription lifecycle events",
    ["event"],  # activated|pending|canceled|plan_changed|payment_confirmed
)

NOTIFICATION_FAILURES = Counter(
    "notification_failures_total",
    "Notifications that could not be dispatched",
    ["kind"],
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
