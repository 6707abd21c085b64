"""
FastAPI application for the TraceMask service.

The lifespan wires the masking engine, the analytics sink and the tracer
onto ``app.state``; routers read them from there.
"""

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncIterator, Awaitable, Callable, Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from . import __version__
from .api import events_router, healthz_router, metrics_router
from .config import Settings, get_settings
from .core.assembler import EventMasker
from .core.exceptions import TraceMaskException
from .core.metrics import MetricsCollector
from .core.policy import MaskingPolicy
from .core.sink import AnalyticsSink, HttpAnalyticsSink, InMemorySink
from .core.sink_service import SinkForwarderService
from .core.tracer import NetworkTracer
from .log import configure_logging

logger = structlog.get_logger(__name__)


@dataclass
class ServiceComponents:
    """Everything the routers need, built once per app start."""

    metrics: MetricsCollector
    policy: MaskingPolicy
    masker: EventMasker
    sink: AnalyticsSink
    tracer: NetworkTracer
    forwarder_service: Optional[SinkForwarderService] = None

    def install(self, app: FastAPI) -> None:
        app.state.metrics = self.metrics
        app.state.policy = self.policy
        app.state.masker = self.masker
        app.state.sink = self.sink
        app.state.tracer = self.tracer
        app.state.forwarder_service = self.forwarder_service


def build_components(settings: Settings) -> ServiceComponents:
    """
    Build the service from settings.

    An empty ``sink.endpoint_url`` selects the in-memory sink and no
    background forwarder is created.
    """
    metrics = MetricsCollector()
    policy = MaskingPolicy.from_settings(settings.masking)
    masker = EventMasker(policy, metrics)

    sink: AnalyticsSink
    forwarder_service = None
    if settings.sink.endpoint_url:
        http_sink = HttpAnalyticsSink(settings.sink, metrics)
        forwarder_service = SinkForwarderService(http_sink, settings.sink.flush_interval_seconds)
        sink = http_sink
    else:
        sink = InMemorySink()

    tracer = NetworkTracer(diagnostics=settings.diagnostics, sink=sink, masker=masker, metrics=metrics)
    return ServiceComponents(metrics, policy, masker, sink, tracer, forwarder_service)


def _lifespan(settings: Settings) -> Callable[[FastAPI], AsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting TraceMask service", version=app.version)

        components = build_components(settings)
        components.install(app)
        if components.forwarder_service is not None:
            await components.forwarder_service.start()

        logger.info(
            "TraceMask service ready",
            level=components.policy.level.value,
            sink=type(components.sink).__name__,
        )
        try:
            yield
        finally:
            if components.forwarder_service is not None:
                await components.forwarder_service.stop()
            logger.info("TraceMask service stopped")

    return lifespan


async def _record_request_metrics(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    started = time.perf_counter()
    response = await call_next(request)

    metrics: Optional[MetricsCollector] = getattr(request.app.state, "metrics", None)
    if metrics is not None:
        metrics.record_request(
            method=request.method,
            endpoint=request.url.path,
            status_code=response.status_code,
            duration_seconds=time.perf_counter() - started,
        )
    return response


async def _handle_tracemask_exception(request: Request, exc: TraceMaskException) -> JSONResponse:
    logger.error(
        "Request failed",
        error_code=exc.error_code,
        status_code=exc.status_code,
        error=str(exc),
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error",
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"error": "internal_server_error", "message": "An unexpected error occurred"},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI app; settings default to the cached configuration."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="TraceMask",
        description="Privacy masking for REST and GraphQL network telemetry",
        version=__version__,
        lifespan=_lifespan(settings),
    )

    app.middleware("http")(_record_request_metrics)
    app.add_exception_handler(TraceMaskException, _handle_tracemask_exception)
    app.add_exception_handler(Exception, _handle_unexpected_exception)

    app.include_router(events_router, prefix="/v1", tags=["events"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(healthz_router, tags=["health"])

    @app.get("/", include_in_schema=False)
    async def service_info() -> dict:
        return {"service": "TraceMask", "version": app.version, "docs": app.docs_url}

    return app


app = create_app()
