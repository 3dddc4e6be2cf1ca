"""
Structural validation for automation graphs.

Two validators with different jobs:

ConnectionValidator
    Edit-time gate for a single proposed edge. Every edge, whether drawn by
    a user, created from a template, or added by a bulk import, passes
    through ``can_connect`` before the graph stores it. Rules are checked
    in a fixed order and the first failing rule decides the rejection.

WorkflowValidator
    Save/test-time check of a whole graph: exactly one trigger, no cycles,
    everything reachable, condition nodes with both branches, well-formed
    node configs.

Both return data. A rejection is a value the caller displays, never an
exception.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from leadflow.graph.cycles import build_adjacency, find_cycle, reachable_from, would_create_cycle
from leadflow.graph.edge import ConditionBranch, EdgeSpec
from leadflow.graph.node import NodeSpec, parse_node_config
from leadflow.graph.node_types import NodeType, StructuralClass, label, structural_class

if TYPE_CHECKING:
    from leadflow.graph.workflow import WorkflowGraph

logger = logging.getLogger(__name__)

_NON_TRIGGER_TARGETS = frozenset(
    {
        StructuralClass.ACTION,
        StructuralClass.CONDITION,
        StructuralClass.DELAY,
        StructuralClass.LOOP,
        StructuralClass.END,
    }
)

# source class -> classes it may target
ALLOWED_TARGETS: dict[StructuralClass, frozenset[StructuralClass]] = {
    StructuralClass.TRIGGER: _NON_TRIGGER_TARGETS,
    StructuralClass.ACTION: _NON_TRIGGER_TARGETS,
    StructuralClass.CONDITION: _NON_TRIGGER_TARGETS,
    StructuralClass.DELAY: _NON_TRIGGER_TARGETS,
    StructuralClass.LOOP: _NON_TRIGGER_TARGETS,
    StructuralClass.END: frozenset(),
}

MAX_RECOMMENDED_NODES = 50


def is_node_type_compatible(source_type: NodeType, target_type: NodeType) -> bool:
    """Check the structural-class adjacency table for a source/target pair."""
    return structural_class(target_type) in ALLOWED_TARGETS[structural_class(source_type)]


# ---------------------------------------------------------------------------
# Connection validation
# ---------------------------------------------------------------------------


class ConnectionRule(StrEnum):
    """Rule that rejected a proposed connection."""

    INVALID_NODE_REFERENCE = "invalid_node_reference"
    SELF_LOOP = "self_loop"
    CYCLE = "cycle"
    INCOMPATIBLE_TYPES = "incompatible_types"
    TRIGGER_FAN_OUT = "trigger_fan_out"
    TRIGGER_FAN_IN = "trigger_fan_in"


@dataclass(frozen=True)
class ConnectionResult:
    """Accept, or reject with a human-readable reason."""

    accepted: bool
    reason: str | None = None
    rule: ConnectionRule | None = None

    @classmethod
    def accept(cls) -> "ConnectionResult":
        return cls(accepted=True)

    @classmethod
    def reject(cls, rule: ConnectionRule, reason: str) -> "ConnectionResult":
        return cls(accepted=False, reason=reason, rule=rule)

    def __bool__(self) -> bool:
        return self.accepted


class ConnectionValidator:
    """
    Decides whether a proposed edge may be added to a graph.

    Rules, in order:
    1. both endpoints exist
    2. no self-loop
    3. no cycle
    4. structural-class compatibility
    5. a trigger has at most one successor
    6. a trigger has no predecessors

    The validator never mutates the graph.
    """

    def can_connect(self, graph: "WorkflowGraph", source: str, target: str) -> ConnectionResult:
        """
        Evaluate a proposed edge ``source -> target``.

        Args:
            graph: Graph the edge would be added to
            source: Source node ID
            target: Target node ID

        Returns:
            ConnectionResult; ``accepted`` is False with a reason on rejection
        """
        result = self._check(graph, source, target)
        if not result.accepted:
            logger.debug(
                f"Rejected connection {source} -> {target} in workflow '{graph.id}': "
                f"{result.reason}"
            )
        return result

    def _check(self, graph: "WorkflowGraph", source: str, target: str) -> ConnectionResult:
        source_node = graph.get_node(source)
        target_node = graph.get_node(target)

        if source_node is None or target_node is None:
            return ConnectionResult.reject(
                ConnectionRule.INVALID_NODE_REFERENCE, "invalid node reference"
            )

        if source == target:
            return ConnectionResult.reject(ConnectionRule.SELF_LOOP, "self-loop")

        if would_create_cycle(graph.edges, source, target):
            return ConnectionResult.reject(ConnectionRule.CYCLE, "would create a cycle")

        if not is_node_type_compatible(source_node.type, target_node.type):
            return ConnectionResult.reject(
                ConnectionRule.INCOMPATIBLE_TYPES,
                f"{label(source_node.type)} cannot connect to {label(target_node.type)}",
            )

        is_trigger_source = source_node.structural_class == StructuralClass.TRIGGER
        if is_trigger_source and graph.outgoing_edges(source):
            return ConnectionResult.reject(
                ConnectionRule.TRIGGER_FAN_OUT, "Trigger nodes can only have one output"
            )

        # The proposed edge is itself an incoming edge, so any trigger target fails.
        if target_node.structural_class == StructuralClass.TRIGGER:
            return ConnectionResult.reject(
                ConnectionRule.TRIGGER_FAN_IN, "Trigger nodes cannot have incoming connections"
            )

        return ConnectionResult.accept()


# ---------------------------------------------------------------------------
# Whole-graph validation
# ---------------------------------------------------------------------------


class IssueType(StrEnum):
    MISSING_TRIGGER = "missing_trigger"
    MULTIPLE_TRIGGERS = "multiple_triggers"
    CYCLE = "cycle"
    DISCONNECTED = "disconnected"
    INVALID_CONDITION = "invalid_condition"
    INVALID_EDGE = "invalid_edge"
    INVALID_CONFIG = "invalid_config"


@dataclass
class ValidationIssue:
    """A single problem found in a graph."""

    type: IssueType
    message: str
    node_id: str | None = None
    edge_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "nodeId": self.node_id,
            "edgeId": self.edge_id,
            "details": self.details,
        }


@dataclass
class WorkflowValidationResult:
    """Result of validating a whole graph."""

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return len(self.errors) == 0

    @property
    def error(self) -> str:
        """Get combined error message."""
        return "; ".join(issue.message for issue in self.errors)


class WorkflowValidationError(Exception):
    """Raised by ``validate_or_raise`` when a graph is not runnable."""

    def __init__(self, result: WorkflowValidationResult):
        super().__init__(f"Workflow validation failed: {result.error}")
        self.result = result

    @property
    def issues(self) -> list[ValidationIssue]:
        return self.result.errors


class WorkflowValidator:
    """
    Validates a complete graph before it is saved or test-run.

    Works on plain node/edge sequences so graphs that never went through
    the editing path (imports, API payloads) can be checked too.
    """

    def validate(
        self, nodes: Sequence[NodeSpec], edges: Sequence[EdgeSpec]
    ) -> WorkflowValidationResult:
        result = WorkflowValidationResult()

        if not nodes:
            result.errors.append(
                ValidationIssue(IssueType.MISSING_TRIGGER, "Workflow must have at least one node")
            )
            return result

        node_ids = {node.id for node in nodes}
        triggers = [n for n in nodes if n.structural_class == StructuralClass.TRIGGER]

        # 1. Exactly one trigger
        if not triggers:
            result.errors.append(
                ValidationIssue(
                    IssueType.MISSING_TRIGGER, "Workflow must have exactly one trigger node"
                )
            )
        elif len(triggers) > 1:
            result.errors.append(
                ValidationIssue(
                    IssueType.MULTIPLE_TRIGGERS,
                    "Workflow must have exactly one trigger node",
                    details={
                        "triggerCount": len(triggers),
                        "triggerNodeIds": [t.id for t in triggers],
                    },
                )
            )

        # 2. Edge references and self-loops
        valid_edges: list[EdgeSpec] = []
        for edge in edges:
            dangling = False
            if edge.source_node_id not in node_ids:
                dangling = True
                result.errors.append(
                    ValidationIssue(
                        IssueType.INVALID_EDGE,
                        "Edge references non-existent source node",
                        edge_id=edge.id,
                        details={"sourceNodeId": edge.source_node_id},
                    )
                )
            if edge.target_node_id not in node_ids:
                dangling = True
                result.errors.append(
                    ValidationIssue(
                        IssueType.INVALID_EDGE,
                        "Edge references non-existent target node",
                        edge_id=edge.id,
                        details={"targetNodeId": edge.target_node_id},
                    )
                )
            if not dangling and edge.source_node_id == edge.target_node_id:
                result.errors.append(
                    ValidationIssue(
                        IssueType.INVALID_EDGE,
                        "Self-loops are not allowed",
                        edge_id=edge.id,
                        details={"nodeId": edge.source_node_id},
                    )
                )
            if not dangling:
                valid_edges.append(edge)

        # 3. Cycles (self-loops are already reported above)
        cycle = find_cycle(
            [n.id for n in nodes],
            [e for e in valid_edges if e.source_node_id != e.target_node_id],
        )
        if cycle:
            result.errors.append(
                ValidationIssue(
                    IssueType.CYCLE,
                    f"Cycle detected in workflow: {' -> '.join(cycle)}",
                    details={"cycle": cycle},
                )
            )

        # 4. Reachability from the single trigger
        if len(triggers) == 1:
            reachable = reachable_from(triggers[0].id, build_adjacency(valid_edges))
            unreachable = [n.id for n in nodes if n.id not in reachable]
            if unreachable:
                result.errors.append(
                    ValidationIssue(
                        IssueType.DISCONNECTED,
                        f"{len(unreachable)} node(s) are not reachable from the trigger",
                        details={"unreachableNodeIds": unreachable},
                    )
                )

        # 5. Condition branches
        for node in nodes:
            if node.type != NodeType.CONDITION:
                continue
            outgoing = [e for e in valid_edges if e.source_node_id == node.id]
            if len(outgoing) != 2:
                result.errors.append(
                    ValidationIssue(
                        IssueType.INVALID_CONDITION,
                        "Condition node must have exactly 2 outgoing branches (true and false)",
                        node_id=node.id,
                        details={"actualBranches": len(outgoing), "expectedBranches": 2},
                    )
                )
                continue
            branches = {e.condition_branch for e in outgoing}
            has_true = ConditionBranch.TRUE in branches
            has_false = ConditionBranch.FALSE in branches
            if not (has_true and has_false):
                result.errors.append(
                    ValidationIssue(
                        IssueType.INVALID_CONDITION,
                        "Condition node must have both 'true' and 'false' branches",
                        node_id=node.id,
                        details={"hasTrueBranch": has_true, "hasFalseBranch": has_false},
                    )
                )

        # 6. Typed configs
        for node in nodes:
            try:
                parse_node_config(node)
            except ValidationError as e:
                problems = [
                    f"{'.'.join(str(loc) for loc in err['loc']) or 'config'}: {err['msg']}"
                    for err in e.errors()
                ]
                result.errors.append(
                    ValidationIssue(
                        IssueType.INVALID_CONFIG,
                        f"{label(node.type)} node has invalid config: {'; '.join(problems)}",
                        node_id=node.id,
                        details={"problems": problems},
                    )
                )

        # Warnings
        if len(nodes) > MAX_RECOMMENDED_NODES:
            result.warnings.append(
                f"Workflow has more than {MAX_RECOMMENDED_NODES} nodes, "
                "which may impact performance"
            )
        if len(nodes) > 1 and not any(n.type == NodeType.END for n in nodes):
            result.warnings.append(
                "Workflow has no explicit end node, execution will stop at leaf nodes"
            )

        return result

    def validate_graph(self, graph: "WorkflowGraph") -> WorkflowValidationResult:
        return self.validate(graph.nodes, graph.edges)

    def validate_or_raise(self, graph: "WorkflowGraph") -> None:
        """
        Validate a graph and raise if it is not runnable.

        Raises:
            WorkflowValidationError: carrying every issue found
        """
        result = self.validate_graph(graph)
        if not result.valid:
            raise WorkflowValidationError(result)
