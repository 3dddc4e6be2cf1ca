"""
leadflow - Automation graph engine for lead workflows.

Build a graph of trigger, action and flow-control nodes, validate every
edge as it is drawn, and dry-run the whole graph against a lead to see
which nodes would run and which actions would fire.
"""

from leadflow.graph import (
    ConnectionResult,
    ConnectionValidator,
    NodeType,
    StructuralClass,
    WorkflowGraph,
    WorkflowValidator,
)
from leadflow.runtime import InProcessTestRunService, WorkflowTestRunner
from leadflow.schemas import LeadContext, TestResult
from leadflow.simulation import DryRunExecutor

__version__ = "0.1.0"

__all__ = [
    "ConnectionResult",
    "ConnectionValidator",
    "DryRunExecutor",
    "InProcessTestRunService",
    "LeadContext",
    "NodeType",
    "StructuralClass",
    "TestResult",
    "WorkflowGraph",
    "WorkflowTestRunner",
    "WorkflowValidator",
]
