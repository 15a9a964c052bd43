"""Prometheus metrics for the application."""

import re
import time

from prometheus_client import Counter, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# --- Metrics ---

APP_INFO = Info("app", "AI Mention Tracker application info")
APP_INFO.info({"version": "1.0.0", "name": "ai_mention_tracker"})

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

PROCESSING_JOBS = Counter(
    "processing_jobs_total",
    "Processing jobs by terminal status (plus 'started')",
    ["status"],
)

PROVIDER_CALLS = Counter(
    "provider_calls_total",
    "Provider calls by outcome",
    ["provider", "status"],
)

PROVIDER_CALL_DURATION = Histogram(
    "provider_call_duration_seconds",
    "Provider call duration including retries",
    ["provider"],
    buckets=[0.5, 1, 2.5, 5, 10, 20, 30, 60, 120],
)

CREDITS_DEDUCTED = Counter(
    "credits_deducted_total",
    "Credits deducted when starting jobs",
)


# --- Middleware ---

# Collapse dynamic path segments to reduce cardinality
_PATH_PATTERNS = (
    (re.compile(r"^/api/v1/processing-jobs/[^/]+"), "/api/v1/processing-jobs/{job_id}"),
    (re.compile(r"^/api/v1/brands/[^/]+"), "/api/v1/brands/{brand_id}"),
    (re.compile(r"^/api/v1/admin/users/[^/]+"), "/api/v1/admin/users/{uid}"),
)


def _normalize_path(path: str) -> str:
    for pattern, replacement in _PATH_PATTERNS:
        if pattern.match(path):
            return pattern.sub(replacement, path, count=1)
    return path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect HTTP request metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        REQUEST_COUNT.labels(method=method, path=path, status=response.status_code).inc()
        REQUEST_DURATION.labels(method=method, path=path).observe(duration)

        return response


def metrics_response() -> Response:
    """Generate Prometheus /metrics response."""
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
