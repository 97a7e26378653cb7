"""Prometheus metrics for the recommendation API."""

from __future__ import annotations

import time
from collections.abc import Callable

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .logging_config import SERVICE_NAME, SERVICE_VERSION

service_info = Info("isle_concierge", "Build information for the recommendation API")
service_info.info({"service": SERVICE_NAME, "version": SERVICE_VERSION})

# ------------------------------------------------------------------------------
# transport
# ------------------------------------------------------------------------------

http_requests_total = Counter(
    "http_requests_total",
    "HTTP requests by route template and status code",
    ["method", "route", "status"],
)

http_request_latency = Histogram(
    "http_request_duration_seconds",
    "Wall-clock time spent serving an HTTP request",
    ["method", "route"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

http_inflight = Gauge(
    "http_requests_in_progress",
    "Requests being served right now",
    ["method"],
)

# ------------------------------------------------------------------------------
# engine
# ------------------------------------------------------------------------------

recommendations_total = Counter(
    "recommendations_total",
    "Recommendation requests by scoring mode (semantic, degraded, default)",
    ["mode"],
)

recommendation_duration_seconds = Histogram(
    "recommendation_duration_seconds",
    "Time from query to selected markers, reasoning included",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

recommendation_candidates = Histogram(
    "recommendation_candidates",
    "Candidates left after filtering and the score cutoff",
    buckets=(0, 1, 5, 10, 25, 50, 100, 250, 500, 1000),
)

semantic_fallbacks_total = Counter(
    "semantic_fallbacks_total",
    "Requests scored without the semantic axis",
    ["reason"],
)

corpus_size = Gauge(
    "corpus_size",
    "POIs in the active snapshot",
    ["state"],
)


def track_recommendation(mode: str, duration: float, candidates: int) -> None:
    recommendations_total.labels(mode=mode).inc()
    recommendation_duration_seconds.observe(duration)
    recommendation_candidates.observe(candidates)


def track_corpus(total: int, usable: int) -> None:
    corpus_size.labels(state="loaded").set(total)
    corpus_size.labels(state="usable").set(usable)


def route_label(request: Request) -> str:
    """Matched route template, so path parameters never become label values."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        http_inflight.labels(method=method).inc()
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            # the router fills scope["route"] while call_next runs
            route = route_label(request)
            http_request_latency.labels(method=method, route=route).observe(
                time.perf_counter() - started
            )
            http_requests_total.labels(method=method, route=route, status=str(status_code)).inc()
            http_inflight.labels(method=method).dec()


def get_metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "PrometheusMiddleware",
    "get_metrics",
    "semantic_fallbacks_total",
    "track_corpus",
    "track_recommendation",
]
