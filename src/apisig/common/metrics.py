"""Prometheus metrics for apisig observability."""

import os
import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    multiprocess,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match
from starlette.types import ASGIApp, Scope

UNMATCHED_ROUTE = "unmatched"

# === Counters ===

AUTH_OUTCOMES_TOTAL = Counter(
    "apisig_auth_outcomes_total",
    "Signature verification outcomes",
    ["outcome", "reason"],  # outcome: authenticated, rejected
)

HTTP_REQUESTS_TOTAL = Counter(
    "apisig_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

# === Histograms ===

AUTH_VERIFY_LATENCY = Histogram(
    "apisig_auth_verify_latency_seconds",
    "Signature verification latency in seconds, excluding the body read",
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1],
)

HTTP_REQUEST_LATENCY = Histogram(
    "apisig_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


# === Helper Functions ===


def record_auth_outcome(outcome: str, reason: str, latency: float) -> None:
    """Record a signature verification outcome."""
    AUTH_OUTCOMES_TOTAL.labels(outcome=outcome, reason=reason).inc()
    AUTH_VERIFY_LATENCY.observe(latency)


def record_http_request(method: str, route: str, status: int, latency: float) -> None:
    """Count a served request under its route template."""
    HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=route, status=str(status)).inc()
    HTTP_REQUEST_LATENCY.labels(method=method, endpoint=route).observe(latency)


def route_template(scope: Scope) -> str:
    """
    Return the path template of the route a request targets.

    Requests matching no route share the ``unmatched`` label.
    """
    router = getattr(scope.get("app"), "router", None)
    for route in getattr(router, "routes", ()):
        match, _ = route.matches(scope)
        if match is not Match.NONE:
            return getattr(route, "path", UNMATCHED_ROUTE)
    return UNMATCHED_ROUTE


# === HTTP Endpoint ===


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record request counts and latency per method, route and status."""

    def __init__(self, app: ASGIApp, exclude_paths: list[str] | None = None) -> None:
        super().__init__(app)
        self._exclude_paths = set(exclude_paths or [])

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exclude_paths:
            return await call_next(request)

        route = route_template(request.scope)
        status = 500
        start = time.perf_counter()
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            record_http_request(request.method, route, status, time.perf_counter() - start)


async def metrics_endpoint(_request: Request) -> Response:
    """Expose metrics in Prometheus text format."""
    registry = REGISTRY
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)  # type: ignore[no-untyped-call]
    return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
