"""
TraceMask exception hierarchy.

Each subclass fixes the HTTP status and the machine-readable error code the
API returns for it. Masking itself never raises to its caller; these cover
the service and sink layers around it.
"""

from typing import Any, Dict, Optional


class TraceMaskException(Exception):
    """Base exception for TraceMask service."""

    status_code = 500
    error_code = "internal_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        """Body of the JSON error response."""
        return {"error": self.error_code, "message": str(self), "details": self.details}


class ValidationError(TraceMaskException):
    """A request parameter is outside its allowed values."""

    status_code = 400
    error_code = "validation_error"


class MaskingError(TraceMaskException):
    """An event reached a place only masked events may go."""

    error_code = "masking_error"


class SinkError(TraceMaskException):
    """The analytics collector rejected or could not take an upload."""

    status_code = 502
    error_code = "sink_error"


class ServiceUnavailableError(TraceMaskException):
    """A component the request needs has not been started."""

    status_code = 503
    error_code = "service_unavailable"
