"""FastAPI application: health probes, metrics and the current summary."""

from contextlib import AbstractAsyncContextManager
from typing import Any, Callable

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from .metrics import get_metrics
from .middleware import MonitorRequestMiddleware
from .services.lifespan import AppState, lifespan

Lifespan = Callable[[FastAPI], AbstractAsyncContextManager[Any]]


def get_app_state(request: Request) -> AppState | None:
    """Get application state from request, None before startup completes."""
    return getattr(request.state, "state", None)


def create_app(lifespan_handler: Lifespan = lifespan) -> FastAPI:
    app = FastAPI(
        title="netpulse",
        description="Internet speed monitor health and metrics API",
        lifespan=lifespan_handler,
    )

    app.add_middleware(MonitorRequestMiddleware)

    @app.get("/healthz", response_class=PlainTextResponse)
    async def liveness_probe() -> str:
        """Liveness probe: the process is up."""
        return "ok"

    @app.get("/readyz", response_class=PlainTextResponse)
    async def readiness_probe(request: Request) -> PlainTextResponse:
        """Readiness probe: background tasks running and the bot connected."""
        state = get_app_state(request)
        if state is None or not state.is_ready:
            return PlainTextResponse("not ready", status_code=503)
        return PlainTextResponse("ready")

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics(request: Request) -> str:
        """Prometheus text format metrics."""
        state = get_app_state(request)
        extra = {}
        if state is not None:
            extra["netpulse_history_size"] = len(state.history)
            extra["netpulse_measurement_in_progress"] = int(state.monitor.is_measuring)
        return get_metrics().to_prometheus_format(extra_gauges=extra)

    @app.get("/api/summary")
    async def summary(request: Request) -> dict[str, Any]:
        """Statistics for the last 24 hours."""
        state = get_app_state(request)
        if state is None:
            return {"status": "starting"}
        data = state.monitor.summary().model_dump(mode="json")
        data["download_threshold"] = state.settings.monitor.download_threshold
        data["upload_threshold"] = state.settings.monitor.upload_threshold
        return data

    return app
