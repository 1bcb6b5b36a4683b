"""Request middleware for the health and metrics server.

The only clients are health checks, scrapers and the occasional curl against
``/api/summary``, so one middleware does all of the per-request work:
correlation IDs, request metrics and a log line tagged with the monitor's
measurement state.
"""

import time
from typing import Any, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .logging import set_correlation_id
from .metrics import get_metrics

log = structlog.get_logger()

CORRELATION_HEADERS = ("x-correlation-id", "x-request-id")

# Hit every few seconds by the orchestrator and Prometheus
QUIET_PATHS = frozenset({"/healthz", "/readyz", "/metrics"})


def route_label(request: Request) -> str:
    """Matched route template, falling back to the raw path."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def measurement_running(request: Request) -> bool | None:
    """Whether a speed test was in flight, None before startup."""
    state: Any = getattr(request.state, "state", None)
    if state is None:
        return None
    return state.monitor.is_measuring


class MonitorRequestMiddleware(BaseHTTPMiddleware):
    """Correlates, measures and logs each request.

    Responses are slower while a speed test saturates the link, so the log
    line records whether one was running.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = next(
            (request.headers[name] for name in CORRELATION_HEADERS if request.headers.get(name)),
            None,
        )
        correlation_id = set_correlation_id(incoming)
        measuring = measurement_running(request)

        started = time.monotonic()
        response = await call_next(request)
        duration_ms = (time.monotonic() - started) * 1000

        path = route_label(request)
        get_metrics().record_request(request.method, path, response.status_code, duration_ms)
        response.headers["X-Correlation-ID"] = correlation_id

        if request.url.path not in QUIET_PATHS:
            log.info(
                "http_request",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
                measuring=measuring,
            )
        return response
