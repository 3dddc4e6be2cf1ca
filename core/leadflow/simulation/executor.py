"""
Dry-Run Executor - Simulates an automation graph against one lead.

The executor:
1. Starts at the chosen trigger (or the first trigger in node order)
2. Follows edges one node at a time
3. Picks a branch at condition and loop nodes from the lead's fields
4. Records what each action node would do, without doing it
5. Stops at the first node error

Nothing outside the returned TestResult is touched.
"""

import logging
import time

from pydantic import ValidationError

from leadflow.graph.cycles import build_adjacency, reachable_from
from leadflow.graph.edge import ConditionBranch, EdgeSpec, LoopBranch
from leadflow.graph.node import (
    AssignUserConfig,
    AudienceConfig,
    ChangeStageConfig,
    ConditionConfig,
    DelayConfig,
    EnqueueAgentConfig,
    NodeConfig,
    NodeSpec,
    ScoreConfig,
    SendMessageConfig,
    SendWebhookConfig,
    TagConfig,
    UpdateLeadFieldConfig,
    WaitUntilConfig,
    parse_node_config,
)
from leadflow.graph.node_types import NodeType, StructuralClass
from leadflow.graph.workflow import WorkflowGraph
from leadflow.schemas.execution import (
    ActionRecord,
    ExecutionState,
    ExecutionStatus,
    LeadContext,
    TestResult,
    mock_lead,
)
from leadflow.simulation.conditions import evaluate_condition

MAX_STEPS = 1000


class NodeExecutionError(Exception):
    """A node could not be evaluated."""


def describe_action(node_type: NodeType, config: NodeConfig) -> str:
    """Human-readable description of what an action node would do."""
    if isinstance(config, SendMessageConfig):
        return f"Would send message: {config.template or 'Default message'}"
    if isinstance(config, TagConfig):
        verb = "add" if node_type == NodeType.ACTION_ADD_TAG else "remove"
        return f"Would {verb} tag '{config.tag}'"
    if isinstance(config, AssignUserConfig):
        return f"Would assign lead to user {config.assigned_user_id}"
    if isinstance(config, ChangeStageConfig):
        return f"Would move lead to stage {config.target_stage_id}"
    if isinstance(config, UpdateLeadFieldConfig):
        fields = ", ".join(sorted(config.lead_field_data)) or "no fields"
        return f"Would update lead fields: {fields}"
    if isinstance(config, EnqueueAgentConfig):
        return f"Would enqueue AI agent task: {config.agent_task}"
    if isinstance(config, SendWebhookConfig):
        return f"Would POST to webhook {config.webhook_url}"
    if isinstance(config, AudienceConfig):
        if node_type == NodeType.ACTION_ADD_TO_AUDIENCE:
            return f"Would add lead to audience {config.audience_id}"
        return f"Would remove lead from audience {config.audience_id}"
    if isinstance(config, WaitUntilConfig):
        return f"Would wait until {config.wait_until}"
    if isinstance(config, ScoreConfig):
        sign = "+" if node_type == NodeType.ACTION_INCREMENT_SCORE else "-"
        return f"Would change score by {sign}{config.score_increment}"
    if isinstance(config, DelayConfig):
        if config.delay_seconds is not None:
            return f"Would wait {config.delay_seconds:g} seconds"
        return f"Would wait until {config.delay_until.isoformat()}"
    return f"Would run {node_type}"


def _format_validation_error(node: NodeSpec, error: ValidationError) -> str:
    problems = [
        f"{'.'.join(str(loc) for loc in err['loc']) or 'config'}: {err['msg']}"
        for err in error.errors()
    ]
    return f"Invalid {node.label} config: {'; '.join(problems)}"


class DryRunExecutor:
    """
    Simulates a graph against a lead and returns the execution trace.

    Example:
        executor = DryRunExecutor()
        result = executor.run(graph, lead=LeadContext(id="lead-1", data={"score": 80}))
        print(result.state.visited_nodes)
    """

    def __init__(self, pause_on_delay: bool = False, max_steps: int = MAX_STEPS):
        """
        Args:
            pause_on_delay: Stop at the first delay node with status ``paused``,
                as a live run would. By default the delay is recorded and the
                simulation continues.
            max_steps: Hard limit on the number of nodes evaluated
        """
        self.pause_on_delay = pause_on_delay
        self.max_steps = max_steps
        self.logger = logging.getLogger(__name__)

    def run(
        self,
        graph: WorkflowGraph,
        lead: LeadContext | None = None,
        entry_node_id: str | None = None,
    ) -> TestResult:
        """
        Simulate ``graph`` against ``lead`` (the mock lead if None).

        Returns:
            TestResult; node errors are recorded in ``state.errors``, never raised
        """
        started = time.monotonic()
        lead = lead or mock_lead()
        state = ExecutionState()
        actions: list[ActionRecord] = []

        entry = self._find_entry(graph, entry_node_id)
        if entry is None:
            message = (
                f"Entry node '{entry_node_id}' is not a trigger in this workflow"
                if entry_node_id
                else "Workflow has no trigger node"
            )
            state.fail("workflow", message)
            self.logger.warning(f"Dry run of workflow '{graph.id}' not started: {message}")
            return TestResult(success=False, state=state, error=message, duration_ms=0)

        self.logger.info(f"🚀 Dry run of workflow '{graph.id}' for lead '{lead.id}'")
        adjacency = build_adjacency(graph.edges)
        current: NodeSpec | None = entry
        steps = 0

        while current is not None:
            if steps >= self.max_steps:
                state.fail(current.id, f"Step limit of {self.max_steps} exceeded")
                break
            steps += 1

            if not state.visit(current.id):
                state.fail(current.id, "Node visited twice; the graph contains a cycle")
                break

            try:
                action, next_edge = self._step(graph, current, lead, adjacency, state)
            except NodeExecutionError as e:
                state.fail(current.id, str(e))
                self.logger.warning(f"✗ Node {current.id} failed: {e}")
                break
            except ValidationError as e:
                state.fail(current.id, _format_validation_error(current, e))
                self.logger.warning(f"✗ Node {current.id} has an invalid config")
                break

            state.complete(current.id)
            if action is not None:
                actions.append(action)
                self.logger.info(f"   → {action.description}")

            if state.status == ExecutionStatus.PAUSED:
                break
            current = graph.get_node(next_edge.target_node_id) if next_edge else None

        if state.status == ExecutionStatus.RUNNING:
            state.status = ExecutionStatus.COMPLETED

        success = state.status in (ExecutionStatus.COMPLETED, ExecutionStatus.PAUSED)
        result = TestResult(
            success=success,
            state=state,
            actions_taken=actions,
            error=None if success else state.errors[0].error,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        self.logger.info(
            f"{'✓' if success else '✗'} Dry run {state.status}: "
            f"{len(state.visited_nodes)} visited, {len(state.skipped_nodes)} skipped, "
            f"{len(actions)} action(s)"
        )
        return result

    def _find_entry(self, graph: WorkflowGraph, entry_node_id: str | None) -> NodeSpec | None:
        if entry_node_id is None:
            triggers = graph.triggers()
            return triggers[0] if triggers else None
        node = graph.get_node(entry_node_id)
        if node is None or node.structural_class != StructuralClass.TRIGGER:
            return None
        return node

    def _step(
        self,
        graph: WorkflowGraph,
        node: NodeSpec,
        lead: LeadContext,
        adjacency: dict[str, list[str]],
        state: ExecutionState,
    ) -> tuple[ActionRecord | None, EdgeSpec | None]:
        """Evaluate one node. Returns the action it would take and the edge to follow."""
        outgoing = graph.outgoing_edges(node.id)
        config = parse_node_config(node)
        cls = node.structural_class

        if cls == StructuralClass.TRIGGER:
            return None, outgoing[0] if outgoing else None

        if cls == StructuralClass.END:
            return None, None

        if cls == StructuralClass.ACTION:
            return self._action(node, config), outgoing[0] if outgoing else None

        if cls == StructuralClass.CONDITION:
            taken = self._choose_condition_branch(
                graph, node, config, lead, outgoing, adjacency, state
            )
            return None, taken

        if cls == StructuralClass.DELAY:
            if self.pause_on_delay:
                state.status = ExecutionStatus.PAUSED
            return self._action(node, config), outgoing[0] if outgoing else None

        if cls == StructuralClass.LOOP:
            return None, self._choose_loop_branch(outgoing)

        raise NodeExecutionError(f"Unsupported node type: {node.type}")

    def _action(self, node: NodeSpec, config: NodeConfig) -> ActionRecord:
        return ActionRecord(
            node_id=node.id,
            type=node.type,
            config=dict(node.config),
            description=describe_action(node.type, config),
        )

    def _choose_condition_branch(
        self,
        graph: WorkflowGraph,
        node: NodeSpec,
        config: ConditionConfig,
        lead: LeadContext,
        outgoing: list[EdgeSpec],
        adjacency: dict[str, list[str]],
        state: ExecutionState,
    ) -> EdgeSpec | None:
        try:
            holds = evaluate_condition(config, lead.data)
        except TypeError as e:
            raise NodeExecutionError(f"Could not evaluate condition: {e}") from e

        wanted = ConditionBranch.TRUE if holds else ConditionBranch.FALSE
        taken = next((e for e in outgoing if e.condition_branch == wanted), None)
        if taken is None and holds:
            taken = next((e for e in outgoing if e.condition_branch is None), None)

        self.logger.info(
            f"   ⑂ Condition {node.id}: {config.field} {config.operator} {config.value!r} "
            f"-> {wanted}"
        )
        if taken is None:
            self.logger.info(f"   No '{wanted}' branch on condition {node.id}, ending")

        # Nodes reachable only through untaken branches are skipped
        still_reachable = (
            reachable_from(taken.target_node_id, adjacency) if taken is not None else set()
        )
        untaken: set[str] = set()
        for edge in outgoing:
            if edge is not taken:
                untaken |= reachable_from(edge.target_node_id, adjacency)
        for candidate in graph.nodes:
            if candidate.id in untaken and candidate.id not in still_reachable:
                state.skip(candidate.id)

        return taken

    def _choose_loop_branch(self, outgoing: list[EdgeSpec]) -> EdgeSpec | None:
        """A dry run iterates once: take the loop body, else the completion branch."""
        for branch in (LoopBranch.LOOP, LoopBranch.COMPLETE):
            for edge in outgoing:
                if edge.loop_branch == branch:
                    return edge
        return outgoing[0] if outgoing else None
