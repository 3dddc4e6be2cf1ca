"""
Execution Schema - What a dry run of an automation graph produced.

ExecutionState is the per-node trace; TestResult wraps it with the actions
that would have fired. Neither is part of the WorkflowGraph aggregate: they
are produced by a test run, displayed, and discarded.

The job-status API may return the server-side trace shape
(``executionTrace.nodesVisited`` ...) instead of the client shape
(``state.visitedNodes`` ...). TestResult accepts both.
"""

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

from leadflow.graph.node_types import NodeType

_WIRE_CONFIG = {"alias_generator": to_camel, "populate_by_name": True}


class ExecutionStatus(StrEnum):
    """Status of a (dry) execution."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


class TestRunStatus(StrEnum):
    """Status of a test-run job as reported by the job service."""

    __test__ = False  # Not a pytest test class

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TestRunStatus.COMPLETED, TestRunStatus.FAILED)


class NodeError(BaseModel):
    """An error raised while evaluating one node."""

    node_id: str
    error: str

    model_config = _WIRE_CONFIG


class ActionRecord(BaseModel):
    """An action that would have fired. Nothing was mutated."""

    node_id: str | None = None
    type: NodeType = Field(validation_alias=AliasChoices("type", "action"))
    config: dict[str, Any] = Field(default_factory=dict)
    description: str = ""

    model_config = _WIRE_CONFIG


class ExecutionState(BaseModel):
    """
    Trace of a dry run.

    ``visited_nodes`` is ordered and holds each node at most once.
    ``completed_nodes`` is a subset of it; nodes the run never reached
    because a branch was not taken are in ``skipped_nodes``.
    """

    current_node_id: str | None = None
    visited_nodes: list[str] = Field(default_factory=list)
    completed_nodes: list[str] = Field(default_factory=list)
    skipped_nodes: list[str] = Field(default_factory=list)
    errors: list[NodeError] = Field(default_factory=list)
    status: ExecutionStatus = ExecutionStatus.RUNNING

    model_config = _WIRE_CONFIG

    def visit(self, node_id: str) -> bool:
        """Record a visit. Returns False if the node was already visited."""
        if node_id in self.visited_nodes:
            return False
        self.visited_nodes.append(node_id)
        self.current_node_id = node_id
        return True

    def complete(self, node_id: str) -> None:
        if node_id not in self.completed_nodes:
            self.completed_nodes.append(node_id)

    def skip(self, node_id: str) -> None:
        if node_id not in self.skipped_nodes and node_id not in self.visited_nodes:
            self.skipped_nodes.append(node_id)

    def fail(self, node_id: str, error: str) -> None:
        self.errors.append(NodeError(node_id=node_id, error=error))
        self.status = ExecutionStatus.FAILED


class TestResult(BaseModel):
    """Outcome of a dry run: the trace plus the actions that would have fired."""

    __test__ = False  # Not a pytest test class

    success: bool
    state: ExecutionState = Field(default_factory=ExecutionState)
    actions_taken: list[ActionRecord] = Field(default_factory=list)
    error: str | None = None
    duration_ms: int | None = None

    model_config = _WIRE_CONFIG

    @model_validator(mode="before")
    @classmethod
    def _accept_execution_trace(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "executionTrace" not in data or "state" in data:
            return data

        trace = data.get("executionTrace") or {}
        errors = trace.get("errors") or []
        success = data.get("success", not errors)
        status = ExecutionStatus.COMPLETED if success else ExecutionStatus.FAILED
        converted = {
            "success": success,
            "state": {
                "visitedNodes": trace.get("nodesVisited") or [],
                "completedNodes": trace.get("nodesCompleted") or [],
                "skippedNodes": trace.get("nodesSkipped") or [],
                "errors": errors,
                "status": status,
            },
            "actionsTaken": trace.get("actionsTaken") or [],
            "error": data.get("error"),
        }
        if data.get("duration") is not None:
            converted["durationMs"] = data["duration"]
        return converted

    @property
    def status(self) -> ExecutionStatus:
        return self.state.status


class TestLead(BaseModel):
    """A lead offered in the "simulate as this lead" selector."""

    __test__ = False  # Not a pytest test class

    id: str
    full_name: str | None = None
    username: str | None = None
    email: str | None = None
    profile_url: str | None = None
    platform: str | None = None

    model_config = {**_WIRE_CONFIG, "extra": "ignore"}

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or self.email or self.id


class LeadContext(BaseModel):
    """The simulation subject: a lead id plus the fields conditions are evaluated against."""

    id: str
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = _WIRE_CONFIG


MOCK_LEAD_ID = "mock-test-lead-id"


def mock_lead() -> LeadContext:
    """Synthetic subject used when no concrete lead is selected."""
    return LeadContext(
        id=MOCK_LEAD_ID,
        data={
            "fullName": "Test Lead",
            "username": "testlead",
            "email": "test@example.com",
            "profileUrl": "https://example.com/testlead",
            "platform": "linkedin",
            "avatarUrl": None,
            "bio": "Test lead for workflow testing",
            "headline": "Test User",
            "company": "Test Company",
            "industry": "Technology",
            "location": "San Francisco, CA",
            "score": 50,
            "tags": [],
            "pipelineStageId": None,
        },
    )


class TestRunSubmission(BaseModel):
    """Acknowledgement of a submitted test run."""

    __test__ = False  # Not a pytest test class

    test_run_id: str
    status: TestRunStatus = TestRunStatus.PENDING
    message: str | None = None

    model_config = _WIRE_CONFIG


class TestRunStatusResponse(BaseModel):
    """One poll of a test run. ``result`` is present only for terminal statuses."""

    __test__ = False  # Not a pytest test class

    test_run_id: str | None = Field(
        default=None, validation_alias=AliasChoices("testRunId", "test_run_id", "id")
    )
    status: TestRunStatus
    result: TestResult | None = None
    error: str | None = None

    model_config = _WIRE_CONFIG
