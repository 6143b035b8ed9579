"""
Prometheus metrics middleware for the lead qualification API.

Exposes /metrics endpoint with request counters, latency histograms,
and lead business metrics.
"""

import logging
import time

from fastapi import Request, Response
from prometheus_client import (
    Counter, Histogram, Gauge,
    generate_latest, CONTENT_TYPE_LATEST,
)
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Request metrics
REQUEST_COUNT = Counter(
    "skale_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "skale_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACTIVE_REQUESTS = Gauge(
    "skale_http_active_requests",
    "Currently active HTTP requests",
)

# Business metrics
LEAD_UPSERTS = Counter(
    "skale_lead_upserts_total",
    "Lead progress upserts",
    ["source", "created"],
)
LEADS_COMPLETED = Counter(
    "skale_leads_completed_total",
    "Leads that completed qualification",
    ["source", "classification"],
)
LEAD_SCORE_HIST = Histogram(
    "skale_lead_score",
    "Score of completed leads",
    buckets=[5, 10, 20, 30, 40, 50, 60, 70, 80, 100],
)
CHAT_TURNS = Counter(
    "skale_chat_turns_total",
    "Chat turns processed",
    ["outcome"],
)
CHAT_LATENCY = Histogram(
    "skale_chat_turn_duration_seconds",
    "Chat turn latency (model and tool calls)",
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)


def record_lead_upsert(source: str, created: bool):
    """Record a lead progress upsert."""
    LEAD_UPSERTS.labels(source=source, created=str(created).lower()).inc()


def record_lead_completed(source: str, classification: str, score: float):
    """Record a lead reaching completion."""
    LEADS_COMPLETED.labels(source=source, classification=classification).inc()
    LEAD_SCORE_HIST.observe(score)


def record_chat_turn(outcome: str, seconds: float):
    """Record a chat turn (ok, fallback, limit_reached)."""
    CHAT_TURNS.labels(outcome=outcome).inc()
    CHAT_LATENCY.observe(seconds)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        ACTIVE_REQUESTS.inc()
        start = time.time()

        try:
            response = await call_next(request)
        except Exception:
            ACTIVE_REQUESTS.dec()
            raise

        duration = time.time() - start
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)
        ACTIVE_REQUESTS.dec()

        return response


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
