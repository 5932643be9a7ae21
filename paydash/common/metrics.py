"""Prometheus metric definitions for the payments service."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payments_created_total = Counter(
    "payments_created_total",
    "Total payments created at the gateway",
    ["service", "currency"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
gateway_requests_total = Counter(
    "gateway_requests_total",
    "Outbound gateway calls by operation and outcome",
    ["service", "operation", "outcome"],
)
gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Outbound gateway call duration seconds",
    ["service", "operation"],
)
token_exchanges_total = Counter(
    "token_exchanges_total",
    "Client-credentials token exchanges by outcome",
    ["service", "outcome"],
)
reconcile_attempts = Histogram(
    "reconcile_attempts",
    "Gateway polls performed per reconciliation",
    ["service"],
    buckets=(1, 2, 3, 4, 6, 8, 12),
)
reconcile_outcomes_total = Counter(
    "reconcile_outcomes_total",
    "Reconciliation results (changed/exhausted/cancelled)",
    ["service", "outcome"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
