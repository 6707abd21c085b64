"""
Event masking and tracking API endpoints.

- POST /v1/events:mask - mask one event and return the masked copy
- POST /v1/events:track - log the raw event and record its masked copy
- POST /v1/sink:flush - force the analytics sink to upload now
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request

from ..core.assembler import EventMasker
from ..core.exceptions import ServiceUnavailableError, SinkError, ValidationError
from ..core.policy import DEFAULT_POLICY, MaskingPolicy, PrivacyLevel
from ..core.tracer import NetworkTracer
from ..models.event import ErrorResponse, FlushResponse, MaskedEvent, NetworkEvent, TrackResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


async def get_event_masker(
    request: Request,
    level: Optional[str] = Query(None, description="Override the configured privacy level"),
) -> EventMasker:
    """Dependency returning the app masker, or one with the level overridden."""
    masker: Optional[EventMasker] = getattr(request.app.state, "masker", None)
    metrics = getattr(request.app.state, "metrics", None)
    if masker is None:
        masker = EventMasker(DEFAULT_POLICY, metrics)

    if level is None:
        return masker

    try:
        privacy_level = PrivacyLevel(level)
    except ValueError:
        raise ValidationError(
            f"Unknown privacy level: {level}",
            details={"allowed": [member.value for member in PrivacyLevel]},
        )

    policy: MaskingPolicy = masker.policy.model_copy(update={"level": privacy_level})
    return EventMasker(policy, metrics)


async def get_tracer(request: Request) -> NetworkTracer:
    """Dependency to get the tracer from app state."""
    tracer = getattr(request.app.state, "tracer", None)
    if tracer is None:
        raise ServiceUnavailableError("Tracer not initialized")
    return tracer


@router.post(
    "/events:mask",
    response_model=MaskedEvent,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid privacy level"},
        422: {"description": "Malformed event"},
    },
    summary="Mask a network event",
    description="""
    Mask one network event and return the masked copy.

    Nothing is logged or recorded. The optional ``level`` query parameter
    overrides the configured privacy level for this call only; the other
    policy settings (exemption sets, query literal masking) still apply.
    """,
)
async def mask_network_event(
    event: NetworkEvent,
    masker: EventMasker = Depends(get_event_masker),
) -> MaskedEvent:
    return masker.mask_event(event)


@router.post(
    "/events:track",
    response_model=TrackResponse,
    status_code=202,
    responses={
        422: {"description": "Malformed event"},
        503: {"model": ErrorResponse, "description": "Tracer not initialized"},
    },
    summary="Trace a network event",
    description="""
    Trace one network event.

    **Dispatch:**
    1. The unmasked event is formatted and written to the diagnostics logger
       (subject to the configured minimum level)
    2. A masked copy is handed to the analytics sink

    The analytics sink never receives the unmasked event.
    """,
)
async def track_network_event(
    event: NetworkEvent,
    tracer: NetworkTracer = Depends(get_tracer),
) -> TrackResponse:
    masked = tracer.trace(event)

    logger.info(
        "Event tracked",
        request_id=event.request_id,
        kind=event.kind,
        recorded=masked is not None,
    )

    return TrackResponse(
        message="Event accepted",
        request_id=event.request_id,
        timestamp=datetime.now(timezone.utc),
        recorded=masked is not None,
    )


@router.post(
    "/sink:flush",
    response_model=FlushResponse,
    responses={
        502: {"model": ErrorResponse, "description": "Analytics collector unavailable"},
    },
    summary="Flush the analytics sink",
)
async def flush_sink(request: Request) -> FlushResponse:
    """
    Upload buffered events immediately.

    With the in-memory sink there is nothing to upload and the result is
    a zero-count success.
    """
    forwarder_service = getattr(request.app.state, "forwarder_service", None)
    if forwarder_service is None:
        return FlushResponse(success=True, events_forwarded=0, batches_sent=0)

    logger.info("Manual flush requested")
    result = await forwarder_service.force_flush()

    if not result["success"]:
        logger.warning("Manual flush failed", error=result.get("error"))
        raise SinkError(
            f"Flush failed: {result.get('error', 'Unknown error')}",
            details={
                "events_forwarded": result["events_forwarded"],
                "batches_sent": result["batches_sent"],
            },
        )

    logger.info(
        "Manual flush completed successfully",
        events_forwarded=result["events_forwarded"],
        batches_sent=result["batches_sent"],
    )
    return FlushResponse(**result)
