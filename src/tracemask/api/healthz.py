"""
Probe endpoints for orchestrators.

``/healthz`` answers whenever the process serves HTTP. ``/readyz`` also
requires the tracer and, when an analytics endpoint is configured, a live
sink forwarder task.
"""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Request, Response, status

from .. import __version__

logger = structlog.get_logger(__name__)

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/healthz", summary="Liveness probe")
async def healthz() -> Dict[str, Any]:
    return {"status": "alive", "timestamp": _now(), "service": "tracemask", "version": __version__}


@router.get(
    "/readyz",
    summary="Readiness probe",
    responses={503: {"description": "A required component is not running"}},
)
async def readyz(request: Request, response: Response) -> Dict[str, Any]:
    state = request.app.state
    checks = {"tracer": getattr(state, "tracer", None) is not None}

    forwarder = getattr(state, "forwarder_service", None)
    if forwarder is not None:
        checks["sink_forwarder"] = forwarder.is_healthy()

    body: Dict[str, Any] = {"status": "ready", "timestamp": _now(), "checks": checks}
    failed = [name for name, ok in checks.items() if not ok]
    if failed:
        logger.warning("Not ready", failed_checks=failed)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        body.update(status="not_ready", failed_checks=failed)
    return body
