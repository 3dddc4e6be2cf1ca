"""Data exchanged with the test-run job service."""

from leadflow.schemas.execution import (
    MOCK_LEAD_ID,
    ActionRecord,
    ExecutionState,
    ExecutionStatus,
    LeadContext,
    NodeError,
    TestLead,
    TestResult,
    TestRunStatus,
    TestRunStatusResponse,
    TestRunSubmission,
    mock_lead,
)

__all__ = [
    "ActionRecord",
    "ExecutionState",
    "ExecutionStatus",
    "LeadContext",
    "MOCK_LEAD_ID",
    "NodeError",
    "TestLead",
    "TestResult",
    "TestRunStatus",
    "TestRunStatusResponse",
    "TestRunSubmission",
    "mock_lead",
]
