"""Prometheus instrumentation for forwarded requests and the /metrics endpoint."""
from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

log = logging.getLogger("Telemetry-Proxy.metrics")

metrics_router = APIRouter()

PROXY_REQUESTS = Counter(
    "proxy_requests_total",
    "Total number of proxy requests",
    ["upstream", "method", "status"],
)
PROXY_LATENCY = Histogram(
    "proxy_request_duration_seconds",
    "Duration of proxy requests in seconds",
    ["upstream", "method"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)


class RequestTimer:
    """Latency timer for one forwarded request.

    ``observe`` records the request counter and latency exactly once; later
    calls are no-ops. Metric failures are logged and never raised.
    """

    def __init__(self, upstream: str, method: str):
        self.upstream = upstream
        self.method = method
        self._start = time.perf_counter()
        self._observed = False

    @property
    def observed(self) -> bool:
        return self._observed

    def observe(self, status: int) -> None:
        if self._observed:
            return
        self._observed = True
        elapsed = time.perf_counter() - self._start
        try:
            PROXY_REQUESTS.labels(upstream=self.upstream, method=self.method, status=str(status)).inc()
            PROXY_LATENCY.labels(upstream=self.upstream, method=self.method).observe(elapsed)
        except Exception as e:
            log.warning("failed to record metrics for %s %s: %s", self.method, self.upstream, e)


def start_timer(upstream: str, method: str) -> RequestTimer:
    """Start timing a request to ``upstream``."""
    return RequestTimer(upstream, method)


@metrics_router.get("/metrics")
async def metrics():
    """Prometheus exposition endpoint."""
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
