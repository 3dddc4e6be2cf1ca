"""
Observability for test runs.

- Trace context (workflow_id, test_run_id, lead_id) propagated via ContextVar
- Structured JSON logging for production
- Human-readable logging for development
"""

from leadflow.observability.logging import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)

__all__ = [
    "configure_logging",
    "get_trace_context",
    "set_trace_context",
    "clear_trace_context",
]
