"""
Core masking and tracing components.

This package contains:
- Privacy policy and levels
- Structural, URL and query-literal maskers
- Event assembler (the masking engine)
- Diagnostic formatting and the dual-dispatch tracer
- Analytics sinks and their background forwarder
- Metrics collection
"""
