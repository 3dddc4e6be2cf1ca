"""
Execution trace rendering.

Turns a TestResult into one entry per node: visited nodes first in
execution order, then skipped nodes, then nodes the run never reached.
"""

from dataclasses import dataclass, field
from enum import StrEnum

from leadflow.graph.node_types import NodeType, label
from leadflow.graph.workflow import WorkflowGraph
from leadflow.schemas.execution import ActionRecord, TestResult


class TraceOutcome(StrEnum):
    COMPLETED = "completed"
    VISITED = "visited"  # Visited but neither completed nor errored (run paused mid-node)
    ERROR = "error"
    SKIPPED = "skipped"
    NOT_REACHED = "not_reached"


OUTCOME_MARKERS = {
    TraceOutcome.COMPLETED: "✓",
    TraceOutcome.VISITED: "…",
    TraceOutcome.ERROR: "✗",
    TraceOutcome.SKIPPED: "⊘",
    TraceOutcome.NOT_REACHED: "·",
}


@dataclass
class TraceEntry:
    """One node's line in the execution trace."""

    node_id: str
    node_type: NodeType | None
    label: str
    outcome: TraceOutcome
    step: int | None = None  # 1-based position in the visit order
    error: str | None = None
    actions: list[ActionRecord] = field(default_factory=list)


def build_trace(graph: WorkflowGraph, result: TestResult) -> list[TraceEntry]:
    """
    Build the per-node trace for ``result`` against ``graph``.

    Nodes the result mentions but the graph no longer has (edited since the
    run) are kept with an "Unknown node" label.
    """
    state = result.state
    errors = {}
    for node_error in state.errors:
        errors.setdefault(node_error.node_id, node_error.error)
    completed = set(state.completed_nodes)
    actions_by_node: dict[str, list[ActionRecord]] = {}
    for action in result.actions_taken:
        if action.node_id:
            actions_by_node.setdefault(action.node_id, []).append(action)

    def entry(node_id: str, outcome: TraceOutcome, step: int | None = None) -> TraceEntry:
        node = graph.get_node(node_id)
        return TraceEntry(
            node_id=node_id,
            node_type=node.type if node else None,
            label=label(node.type) if node else "Unknown node",
            outcome=outcome,
            step=step,
            error=errors.get(node_id),
            actions=actions_by_node.get(node_id, []),
        )

    entries: list[TraceEntry] = []
    seen: set[str] = set()

    for step, node_id in enumerate(state.visited_nodes, start=1):
        if node_id in errors:
            outcome = TraceOutcome.ERROR
        elif node_id in completed:
            outcome = TraceOutcome.COMPLETED
        else:
            outcome = TraceOutcome.VISITED
        entries.append(entry(node_id, outcome, step))
        seen.add(node_id)

    for node_id in state.skipped_nodes:
        if node_id not in seen:
            entries.append(entry(node_id, TraceOutcome.SKIPPED))
            seen.add(node_id)

    for node in graph.nodes:
        if node.id not in seen:
            entries.append(entry(node.id, TraceOutcome.NOT_REACHED))

    return entries


def format_trace(graph: WorkflowGraph, result: TestResult) -> str:
    """Render the trace as plain text for the CLI."""
    state = result.state
    action_count = len(result.actions_taken)
    lines = [
        f"Test run {state.status}: {len(state.visited_nodes)} visited, "
        f"{len(state.skipped_nodes)} skipped, "
        f"{action_count} action{'' if action_count == 1 else 's'}",
        "",
    ]

    for item in build_trace(graph, result):
        step = f"{item.step:>2}." if item.step is not None else "   "
        line = f"  {step} {OUTCOME_MARKERS[item.outcome]} {item.label} [{item.node_id}]"
        if item.outcome in (TraceOutcome.SKIPPED, TraceOutcome.NOT_REACHED):
            line += f" ({item.outcome.value.replace('_', ' ')})"
        lines.append(line)
        for action in item.actions:
            lines.append(f"         → {action.description or action.type}")
        if item.error:
            lines.append(f"         error: {item.error}")

    workflow_errors = [
        e
        for e in state.errors
        if graph.get_node(e.node_id) is None and e.node_id not in state.visited_nodes
    ]
    for node_error in workflow_errors:
        lines.append(f"  ✗ {node_error.node_id}: {node_error.error}")

    if result.error:
        lines.extend(["", f"Error: {result.error}"])
    return "\n".join(lines)
