from __future__ import annotations

"""Prometheus metrics for the CodeWriter FastAPI backend.

Adds an HTTP middleware that records request latency per method/path/status,
plus counters for turn and extraction outcomes.
"""

import time
from typing import Awaitable, Callable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

# Histogram buckets chosen for web latencies (seconds); streamed turns run long
REQUEST_LATENCY = Histogram(
    "codewriter_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 120.0),
)

TURNS_TOTAL = Counter(
    "codewriter_turns_total",
    "Generation turns by flow, transport and outcome",
    labelnames=("flow", "mode", "outcome"),
)

EXTRACTIONS_TOTAL = Counter(
    "codewriter_extractions_total",
    "Completed turns by flow and whether usable output was recovered",
    labelnames=("flow", "result"),
)


def sanitize_path(path: str) -> str:
    """Reduce a request path to its first two static segments."""
    if not path:
        return "/"
    segs = [s for s in path.split("?")[0].split("/") if s]
    if not segs:
        return "/"
    return "/" + "/".join(segs[:2])


def record_turn(flow: str, mode: str, outcome: str) -> None:
    TURNS_TOTAL.labels(flow=flow, mode=mode, outcome=outcome).inc()


def record_extraction(flow: str, found: int) -> None:
    EXTRACTIONS_TOTAL.labels(flow=flow, result="usable" if found else "empty").inc()


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        # Avoid observing the metrics endpoint itself
        if request.url.path.endswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        try:
            REQUEST_LATENCY.labels(
                method=request.method,
                path=sanitize_path(request.url.path),
                status=str(response.status_code),
            ).observe(elapsed)
        except Exception:
            # Never block the request due to metrics
            pass
        return response

    return middleware
