"""Test-run runtime: job services, the polling test runner, events and traces."""

from leadflow.runtime.event_bus import EventBus, EventType, WorkflowEvent
from leadflow.runtime.http_service import HttpTestRunService
from leadflow.runtime.runner import RunnerState, WorkflowTestRunner
from leadflow.runtime.service import (
    InProcessTestRunService,
    LeadNotFoundError,
    TestRunNotFoundError,
    TestRunService,
    TestRunServiceError,
)
from leadflow.runtime.trace import TraceEntry, TraceOutcome, build_trace, format_trace

__all__ = [
    "EventBus",
    "EventType",
    "WorkflowEvent",
    "TestRunService",
    "InProcessTestRunService",
    "HttpTestRunService",
    "TestRunServiceError",
    "TestRunNotFoundError",
    "LeadNotFoundError",
    "WorkflowTestRunner",
    "RunnerState",
    "TraceEntry",
    "TraceOutcome",
    "build_trace",
    "format_trace",
]
