"""
Network tracer: sends each event down two paths.

1. Diagnostics - the unmasked event, formatted for humans, on the
   ``tracemask.diagnostics`` logger
2. Analytics - a masked copy, recorded on the configured sink

Either path may be disabled. The raw event never reaches the sink.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

import structlog

from ..config import DiagnosticsSettings
from ..models.event import ErrorType, MaskedEvent, NetworkEvent, RequestType, ResponseType
from .assembler import EventMasker, get_event_masker
from .formatting import BODY_DECODERS, event_log_level, format_event_message, should_log
from .metrics import MetricsCollector
from .sink import AnalyticsSink

logger = structlog.get_logger(__name__)
diagnostics_logger = structlog.get_logger("tracemask.diagnostics")

UNKNOWN = "UNKNOWN"


class NetworkTracer:
    """
    Dual-dispatch tracer for REST and GraphQL traffic.

    The helpers build a NetworkEvent from plain values so HTTP client
    adapters only need to pass what they have.
    """

    def __init__(
        self,
        diagnostics: Optional[DiagnosticsSettings] = None,
        sink: Optional[AnalyticsSink] = None,
        masker: Optional[EventMasker] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.diagnostics = diagnostics
        self.sink = sink
        self.masker = masker
        if self.masker is None and sink is not None:
            self.masker = get_event_masker()
        self.metrics = metrics

        logger.info(
            "Network tracer initialized",
            diagnostics_enabled=bool(diagnostics and diagnostics.enabled),
            has_sink=sink is not None,
        )

    def trace(self, event: NetworkEvent) -> Optional[MaskedEvent]:
        """
        Log the event and record its masked copy.

        Returns:
            The masked event handed to the sink, or None without a sink
        """
        if self.diagnostics is not None and self.diagnostics.enabled:
            self._log_diagnostic(event, self.diagnostics)

        if self.sink is None or self.masker is None:
            return None

        masked = self.masker.mask_event(event)
        self.sink.record(masked)
        return masked

    def _log_diagnostic(self, event: NetworkEvent, diagnostics: DiagnosticsSettings) -> None:
        level = event_log_level(event)
        if not should_log(diagnostics.min_level, level):
            return

        decoder = BODY_DECODERS[diagnostics.body_decoder]
        message = format_event_message(event, decoder)
        getattr(diagnostics_logger, level)(message, request_id=event.request_id, kind=event.kind)

        if self.metrics:
            self.metrics.record_diagnostic_log(level)

    # REST

    def trace_request(
        self,
        method: Optional[str],
        url: Optional[str],
        headers: Optional[Dict[str, str]] = None,
        body: Optional[bytes] = None,
        request_id: Optional[str] = None,
    ) -> Optional[MaskedEvent]:
        entry = RequestType(method=method or UNKNOWN, url=url or UNKNOWN)
        return self.trace(_build_event(entry, request_id, headers=headers, body=body))

    def trace_response(
        self,
        method: Optional[str],
        url: Optional[str],
        status_code: Optional[int],
        headers: Optional[Dict[str, str]] = None,
        body: Optional[bytes] = None,
        request_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
    ) -> Optional[MaskedEvent]:
        entry = ResponseType(method=method or UNKNOWN, url=url or UNKNOWN, status_code=status_code)
        return self.trace(_build_event(
            entry,
            request_id,
            headers=headers,
            body=body,
            duration=_elapsed_since(start_time),
        ))

    def trace_error(
        self,
        method: Optional[str],
        url: Optional[str],
        error: Union[BaseException, str],
        headers: Optional[Dict[str, str]] = None,
        request_id: Optional[str] = None,
    ) -> Optional[MaskedEvent]:
        entry = ErrorType(method=method or UNKNOWN, url=url or UNKNOWN, error=str(error))
        return self.trace(_build_event(entry, request_id, headers=headers))

    # GraphQL

    def trace_graphql_request(
        self,
        url: Optional[str],
        operation_name: str,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        request_id: Optional[str] = None,
    ) -> Optional[MaskedEvent]:
        entry = RequestType(method="POST", url=url or UNKNOWN)
        return self.trace(_build_event(
            entry,
            request_id,
            headers=headers,
            operation_name=operation_name,
            query=query,
            variables=variables,
        ))

    def trace_graphql_response(
        self,
        url: Optional[str],
        operation_name: str,
        status_code: Optional[int],
        request_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
    ) -> Optional[MaskedEvent]:
        entry = ResponseType(method="POST", url=url or UNKNOWN, status_code=status_code)
        return self.trace(_build_event(
            entry,
            request_id,
            operation_name=operation_name,
            duration=_elapsed_since(start_time),
        ))

    def trace_graphql_error(
        self,
        url: Optional[str],
        operation_name: str,
        error: Union[BaseException, str],
        request_id: Optional[str] = None,
    ) -> Optional[MaskedEvent]:
        entry = ErrorType(method="POST", url=url or UNKNOWN, error=str(error))
        return self.trace(_build_event(entry, request_id, operation_name=operation_name))


def _build_event(entry: Any, request_id: Optional[str], **fields: Any) -> NetworkEvent:
    if request_id is not None:
        fields["request_id"] = request_id
    return NetworkEvent(type=entry, **fields)


def _elapsed_since(start_time: Optional[datetime]) -> Optional[float]:
    if start_time is None:
        return None
    now = datetime.now(timezone.utc) if start_time.tzinfo else datetime.now()
    return max(0.0, (now - start_time).total_seconds())
