"""Application entrypoint for the command gate service."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from commandgate.core.config import settings
from commandgate.core.logging import configure_logging
from commandgate.routers import decisions
from commandgate.telemetry import configure_metrics, shutdown_metrics, collect_prometheus_metrics
from commandgate.dependencies import get_event_sink


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    configure_metrics()
    yield
    sink = get_event_sink()
    if hasattr(sink, "close"):
        sink.close()
    shutdown_metrics()


def create_app() -> FastAPI:
    app = FastAPI(
        title="IssueOps Command Gate",
        description="Decides whether chat-triggered commands on issues and pull requests may proceed.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(decisions.router)

    @app.get("/healthz", tags=["health"])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    if settings.otel_exporter.lower().strip() == "prometheus":

        @app.get("/metrics", tags=["metrics"])
        def metrics_endpoint() -> PlainTextResponse:
            payload, content_type = collect_prometheus_metrics()
            return PlainTextResponse(payload, media_type=content_type)

    return app


app = create_app()
