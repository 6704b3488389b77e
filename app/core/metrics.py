"""
Prometheus metrics: request duration histogram plus the client's
default process collectors, exposed at /metrics.
"""
import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Histogram, generate_latest

from app.core.config import settings

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "Duration of HTTP requests in seconds",
    ["method", "route", "status"],
    buckets=(0.05, 0.1, 0.2, 0.5, 1, 2, 5),
)


def route_label(request: Request) -> str:
    # path template ("/api/bills/{bill_id}") once the router has matched
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


async def metrics_middleware(request: Request, call_next):
    if not settings.METRICS_ENABLED:
        return await call_next(request)

    start = time.perf_counter()
    response = await call_next(request)
    REQUEST_DURATION.labels(request.method, route_label(request), str(response.status_code)).observe(
        time.perf_counter() - start
    )
    return response


def render_latest():
    return generate_latest(), CONTENT_TYPE_LATEST
