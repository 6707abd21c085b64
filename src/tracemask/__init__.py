"""
TraceMask - Privacy masking for network telemetry

Redacts REST and GraphQL request/response/error events before they are
forwarded to analytics, while an unredacted copy goes to diagnostic logs.
"""

__version__ = "0.1.0"
__author__ = "Timilehin Olusegun"
__email__ = "timiddon97@gmail.com"

from .core.assembler import EventMasker, mask_event, mask_events
from .core.policy import DEFAULT_POLICY, MASK, MaskingPolicy, PrivacyLevel
from .core.query import mask_query_literals
from .core.structural import mask_body, mask_headers, mask_structure, mask_variables
from .core.tracer import NetworkTracer
from .core.url import mask_url
from .models.event import MaskedEvent, NetworkEvent

__all__ = [
    "DEFAULT_POLICY",
    "MASK",
    "EventMasker",
    "MaskedEvent",
    "MaskingPolicy",
    "NetworkEvent",
    "NetworkTracer",
    "PrivacyLevel",
    "mask_body",
    "mask_event",
    "mask_events",
    "mask_headers",
    "mask_query_literals",
    "mask_structure",
    "mask_url",
    "mask_variables",
]
