"""
Pydantic data models package.

Contains all data validation models for:
- Network events (raw and masked)
- API requests and responses
"""

from .event import (
    ErrorResponse,
    ErrorType,
    FlushResponse,
    MaskedEvent,
    NetworkEvent,
    RequestType,
    ResponseType,
    TrackResponse,
)

__all__ = [
    # Event models
    "NetworkEvent",
    "MaskedEvent",
    "RequestType",
    "ResponseType",
    "ErrorType",

    # API models
    "TrackResponse",
    "FlushResponse",
    "ErrorResponse",
]
