"""
Active trace context accessor.

The only place that reads the ambient OpenTelemetry span. Callers that need
trace ids depend on the `TraceContextReader` signature so they can be handed
a different reader (tests, custom context propagation).
"""

from typing import Callable, Dict

from opentelemetry import trace

TraceContextReader = Callable[[], Dict[str, str]]


def get_trace_context() -> Dict[str, str]:
    """
    Get the trace context of the span currently in scope.

    Returns trace_id and span_id as lowercase hex, or an empty dict when
    no valid span is active.
    """
    span = trace.get_current_span()
    ctx = span.get_span_context()
    if not ctx.is_valid:
        return {}

    return {
        "trace_id": format(ctx.trace_id, '032x'),
        "span_id": format(ctx.span_id, '016x'),
    }
