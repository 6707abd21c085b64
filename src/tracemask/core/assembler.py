"""
Event masking engine.

Applies the URL, structural and query-literal maskers to every field of a
network event and produces a new MaskedEvent. The input event is never
mutated and the output shares no containers with it.
"""

import time
from typing import Iterable, List, Optional

import structlog

from ..config import get_settings
from ..models.event import MaskedEvent, NetworkEntry
from .metrics import MetricsCollector
from .policy import MaskingPolicy, PrivacyLevel
from .query import mask_query_literals
from .structural import mask_body, mask_headers, mask_variables
from .url import mask_url

logger = structlog.get_logger(__name__)

_LOCKED_POLICY = MaskingPolicy(level=PrivacyLevel.LOCKED)


class EventMasker:
    """
    Masks network events for the analytics path.

    Field wiring:
    - URL: query parameters masked or stripped
    - headers: flat map, exempt names kept at RESTRICTED
    - body: parsed as JSON and masked structurally, dropped at LOCKED
    - variables: masked structurally, dropped at LOCKED
    - query: literals masked when enabled, dropped at LOCKED
    """

    def __init__(self, policy: MaskingPolicy, metrics: Optional[MetricsCollector] = None) -> None:
        self.policy = policy
        self.metrics = metrics
        logger.debug(
            "Event masker initialized",
            level=policy.level.value,
            mask_query_literals=policy.mask_query_literals,
            unmasked_headers=len(policy.unmasked_header_keys),
            unmasked_query_params=len(policy.unmasked_query_param_keys),
            unmasked_body_fields=len(policy.unmasked_body_field_keys),
        )

    def mask_event(self, event: NetworkEntry) -> MaskedEvent:
        """
        Mask a single event.

        Args:
            event: Raw event from the HTTP adapter

        Returns:
            Masked copy of the event. Unexpected failures fall back to the
            LOCKED policy rather than propagating.
        """
        started = time.perf_counter()
        try:
            masked = self._mask_with(event, self.policy)
        except Exception as e:
            logger.error(
                "Failed to mask event, falling back to locked policy",
                request_id=event.request_id,
                kind=event.kind,
                error_type=type(e).__name__,
                exc_info=True,
            )
            if self.metrics:
                self.metrics.record_masking_fallback()
            return self._mask_with(event, _LOCKED_POLICY)

        if self.metrics:
            self.metrics.record_masking(
                kind=event.kind,
                level=self.policy.level.value,
                duration_seconds=time.perf_counter() - started,
            )

        logger.debug(
            "Masked event",
            request_id=event.request_id,
            kind=event.kind,
            level=self.policy.level.value,
            has_body=masked.body is not None,
            has_variables=masked.variables is not None,
            has_query=masked.query is not None,
        )
        return masked

    def _mask_with(self, event: NetworkEntry, policy: MaskingPolicy) -> MaskedEvent:
        masked_type = event.type.model_copy(update={"url": mask_url(event.url, policy)})

        return MaskedEvent(
            type=masked_type,
            headers=mask_headers(event.headers, policy),
            body=mask_body(event.body, policy),
            timestamp=event.timestamp,
            duration=event.duration,
            request_id=event.request_id,
            operation_name=event.operation_name,
            query=self._mask_query(event.query, policy),
            variables=mask_variables(event.variables, policy),
        )

    @staticmethod
    def _mask_query(query: Optional[str], policy: MaskingPolicy) -> Optional[str]:
        if query is None:
            return None
        if policy.level is PrivacyLevel.LOCKED:
            # Query text is treated as maximally sensitive
            return None
        if policy.mask_query_literals:
            return mask_query_literals(query)
        return query


# Global masker instance
_event_masker: Optional[EventMasker] = None


def get_event_masker() -> EventMasker:
    """Get or create the global masker built from settings."""
    global _event_masker

    if _event_masker is None:
        settings = get_settings()
        _event_masker = EventMasker(MaskingPolicy.from_settings(settings.masking))

    return _event_masker


def mask_event(event: NetworkEntry, policy: Optional[MaskingPolicy] = None) -> MaskedEvent:
    """Mask one event with the given policy, or the configured one."""
    masker = EventMasker(policy) if policy is not None else get_event_masker()
    return masker.mask_event(event)


def mask_events(events: Iterable[NetworkEntry], policy: Optional[MaskingPolicy] = None) -> List[MaskedEvent]:
    """
    Convenience function to mask a batch of events.

    Args:
        events: Raw events
        policy: Policy to apply; defaults to the configured one

    Returns:
        List of masked events, in input order
    """
    masker = EventMasker(policy) if policy is not None else get_event_masker()
    return [masker.mask_event(event) for event in events]
