"""Prometheus scrape endpoint."""

import structlog
from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = structlog.get_logger(__name__)

router = APIRouter()

_NO_COLLECTOR = b"# no metrics collector on this app\n"


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="""
    Text exposition of the service registry.

    Masking: events_masked_total{kind,level}, masking_fallbacks_total,
    masking_duration_seconds. Diagnostics: diagnostic_logs_total{level}.
    Sink: sink_events_recorded_total, sink_events_dropped_total,
    sink_requests_total{status_code}, sink_events_forwarded_total.
    """,
)
async def get_metrics(request: Request) -> Response:
    collector = getattr(request.app.state, "metrics", None)
    if collector is None:
        return Response(content=_NO_COLLECTOR, media_type=CONTENT_TYPE_LATEST)

    collector.update_system_metrics()
    payload = generate_latest(collector.registry)
    logger.debug("Metrics scraped", size_bytes=len(payload))
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
