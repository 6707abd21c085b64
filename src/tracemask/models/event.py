"""
Network event data models.

- NetworkEvent: raw request/response/error record built by an HTTP adapter
- MaskedEvent: the same record after every field has been masked
- Entry types are a tagged union discriminated by ``kind``
"""

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class RequestType(BaseModel):
    """Outgoing request."""

    kind: Literal["request"] = "request"
    method: str
    url: str

    model_config = ConfigDict(frozen=True)


class ResponseType(BaseModel):
    """Received response."""

    kind: Literal["response"] = "response"
    method: str
    url: str
    status_code: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class ErrorType(BaseModel):
    """Transport-level failure."""

    kind: Literal["error"] = "error"
    method: str
    url: str
    error: str

    model_config = ConfigDict(frozen=True)


EntryType = Annotated[
    Union[RequestType, ResponseType, ErrorType],
    Field(discriminator="kind"),
]


def _new_request_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NetworkEntry(BaseModel):
    """
    Fields shared by raw and masked events.

    Bodies are raw bytes; JSON input may pass them as text.
    """

    type: EntryType = Field(description="Request, response or error with its method and URL")
    headers: Optional[Dict[str, str]] = Field(default=None, description="HTTP headers")
    body: Optional[bytes] = Field(default=None, description="Raw body, typically JSON")
    timestamp: datetime = Field(default_factory=_utcnow, description="When the event occurred")
    duration: Optional[float] = Field(default=None, ge=0, description="Duration in seconds")
    request_id: str = Field(default_factory=_new_request_id, description="Correlates request and response")

    # GraphQL context
    operation_name: Optional[str] = Field(default=None, description="GraphQL operation name")
    query: Optional[str] = Field(default=None, description="GraphQL query source text")
    variables: Optional[Dict[str, Any]] = Field(default=None, description="GraphQL variables")

    model_config = ConfigDict(frozen=True)

    @property
    def kind(self) -> str:
        return self.type.kind

    @property
    def method(self) -> str:
        return self.type.method

    @property
    def url(self) -> str:
        return self.type.url

    @property
    def status_code(self) -> Optional[int]:
        return self.type.status_code if isinstance(self.type, ResponseType) else None

    @property
    def error(self) -> Optional[str]:
        return self.type.error if isinstance(self.type, ErrorType) else None

    @field_serializer("body", when_used="json")
    def serialize_body(self, body: Optional[bytes]) -> Optional[str]:
        """Render bodies as text in JSON output."""
        if body is None:
            return None
        return body.decode("utf-8", errors="replace")


class NetworkEvent(NetworkEntry):
    """Unmasked event. Only the diagnostic logging path may see it."""


class MaskedEvent(NetworkEntry):
    """Event whose URL, headers, body, variables and query have been masked."""


class TrackResponse(BaseModel):
    """
    Response from the tracking endpoint.

    202 Accepted once the event has been logged and recorded.
    """

    message: str = Field(description="Response message")
    request_id: str = Field(description="Request identifier of the tracked event")
    timestamp: datetime = Field(description="Processing timestamp")
    recorded: bool = Field(description="Whether a masked copy was handed to the analytics sink")


class FlushResponse(BaseModel):
    """Result of a manual sink flush."""

    success: bool
    events_forwarded: int
    batches_sent: int
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    """
    Standard error response model.
    """

    error: str = Field(description="Error code")
    message: str = Field(description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details"
    )
