"""
Tests for the ConnectionValidator.

Covers each rule in evaluation order, the documented editing scenarios,
and the invariants that must hold for any sequence of accepted edges.
"""

import random

import pytest

from leadflow.graph.cycles import find_cycle
from leadflow.graph.node_types import NodeType, StructuralClass, types_in_class
from leadflow.graph.validator import (
    ALLOWED_TARGETS,
    ConnectionResult,
    ConnectionRule,
    ConnectionValidator,
    is_node_type_compatible,
)
from leadflow.graph.workflow import WorkflowGraph


def _graph(**nodes: NodeType) -> WorkflowGraph:
    graph = WorkflowGraph(id="wf")
    for node_id, node_type in nodes.items():
        graph.add_node(node_type, node_id=node_id)
    return graph


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    def test_closing_a_cycle_is_rejected(self):
        graph = _graph(
            A=NodeType.TRIGGER_MANUAL, B=NodeType.ACTION_SEND_MESSAGE, C=NodeType.END
        )
        graph.add_edge("A", "B")
        graph.add_edge("B", "C")

        result = graph.can_connect("C", "A")

        assert not result.accepted
        assert result.reason == "would create a cycle"
        assert result.rule == ConnectionRule.CYCLE

    def test_action_into_trigger_is_rejected(self):
        graph = _graph(
            A=NodeType.TRIGGER_MANUAL,
            B=NodeType.ACTION_SEND_MESSAGE,
            D=NodeType.TRIGGER_WEBHOOK,
        )
        graph.add_edge("A", "B")

        result = graph.can_connect("B", "D")

        assert not result.accepted
        assert result.rule in (ConnectionRule.INCOMPATIBLE_TYPES, ConnectionRule.TRIGGER_FAN_IN)

    def test_second_trigger_output_is_rejected(self):
        graph = _graph(
            A=NodeType.TRIGGER_MANUAL,
            B=NodeType.ACTION_SEND_MESSAGE,
            C=NodeType.ACTION_ADD_TAG,
        )
        graph.add_edge("A", "B")

        result = graph.can_connect("A", "C")

        assert not result.accepted
        assert result.rule == ConnectionRule.TRIGGER_FAN_OUT
        assert result.reason == "Trigger nodes can only have one output"


# ---------------------------------------------------------------------------
# Individual rules
# ---------------------------------------------------------------------------


class TestRules:
    def test_unknown_endpoint(self):
        graph = _graph(a=NodeType.TRIGGER_MANUAL)
        for source, target in (("a", "ghost"), ("ghost", "a"), ("ghost", "ghost")):
            result = graph.can_connect(source, target)
            assert result.rule == ConnectionRule.INVALID_NODE_REFERENCE
            assert result.reason == "invalid node reference"

    def test_self_loop(self):
        graph = _graph(a=NodeType.ACTION_ADD_TAG)
        result = graph.can_connect("a", "a")
        assert result.rule == ConnectionRule.SELF_LOOP
        assert result.reason == "self-loop"

    def test_end_has_no_successors(self):
        graph = _graph(end=NodeType.END, tag=NodeType.ACTION_ADD_TAG)
        result = graph.can_connect("end", "tag")
        assert result.rule == ConnectionRule.INCOMPATIBLE_TYPES
        assert result.reason == "End cannot connect to Add Tag"

    def test_trigger_cannot_target_trigger(self):
        graph = _graph(a=NodeType.TRIGGER_MANUAL, b=NodeType.TRIGGER_WEBHOOK)
        result = graph.can_connect("a", "b")
        assert result.rule == ConnectionRule.INCOMPATIBLE_TYPES
        assert result.reason == "Manual Trigger cannot connect to Webhook"

    def test_first_failing_rule_wins(self):
        # Self-loop on an end node: rule 2 fires before rule 4
        graph = _graph(end=NodeType.END)
        assert graph.can_connect("end", "end").rule == ConnectionRule.SELF_LOOP

    def test_flow_control_targets(self):
        graph = _graph(
            c=NodeType.CONDITION,
            d=NodeType.DELAY,
            loop=NodeType.LOOP,
            t=NodeType.ACTION_ADD_TAG,
            e=NodeType.END,
        )
        assert graph.can_connect("c", "d")
        assert graph.can_connect("d", "loop")
        assert graph.can_connect("loop", "t")
        assert graph.can_connect("t", "e")

    def test_condition_may_have_two_outputs(self):
        graph = _graph(c=NodeType.CONDITION, yes=NodeType.ACTION_ADD_TAG, no=NodeType.END)
        graph.add_edge("c", "yes", {"condition": "true"})
        assert graph.can_connect("c", "no").accepted

    def test_accept_is_truthy_reject_is_falsy(self):
        assert ConnectionResult.accept()
        assert not ConnectionResult.reject(ConnectionRule.SELF_LOOP, "self-loop")

    def test_validator_never_mutates(self):
        graph = _graph(a=NodeType.TRIGGER_MANUAL, b=NodeType.ACTION_ADD_TAG)
        ConnectionValidator().can_connect(graph, "a", "b")
        assert graph.edges == ()


class TestCompatibilityTable:
    @pytest.mark.parametrize("source_class", list(StructuralClass))
    def test_nothing_targets_a_trigger(self, source_class):
        assert StructuralClass.TRIGGER not in ALLOWED_TARGETS[source_class]

    def test_end_targets_nothing(self):
        assert ALLOWED_TARGETS[StructuralClass.END] == frozenset()

    def test_every_type_pair(self):
        for source in NodeType:
            for target in NodeType:
                compatible = is_node_type_compatible(source, target)
                if source == NodeType.END or target in types_in_class(StructuralClass.TRIGGER):
                    assert not compatible
                else:
                    assert compatible


# ---------------------------------------------------------------------------
# Invariants over random edit sequences
# ---------------------------------------------------------------------------


NODE_POOL = [
    NodeType.TRIGGER_MANUAL,
    NodeType.TRIGGER_WEBHOOK,
    NodeType.ACTION_SEND_MESSAGE,
    NodeType.ACTION_ADD_TAG,
    NodeType.ACTION_ASSIGN_USER,
    NodeType.CONDITION,
    NodeType.DELAY,
    NodeType.LOOP,
    NodeType.END,
    NodeType.END,
]


def _random_graph(seed: int, attempts: int = 200) -> tuple[WorkflowGraph, int]:
    rng = random.Random(seed)
    graph = WorkflowGraph(id=f"wf-{seed}")
    for i, node_type in enumerate(NODE_POOL):
        graph.add_node(node_type, node_id=f"n{i}")
    ids = [n.id for n in graph.nodes]

    rejected = 0
    for _ in range(attempts):
        source, target = rng.choice(ids), rng.choice(ids)
        nodes_before, edges_before = len(graph.nodes), len(graph.edges)
        result, edge = graph.connect(source, target)
        if not result.accepted:
            rejected += 1
            assert edge is None
            assert result.reason
            assert (len(graph.nodes), len(graph.edges)) == (nodes_before, edges_before)
    return graph, rejected


@pytest.mark.parametrize("seed", range(25))
def test_accepted_edges_keep_invariants(seed):
    graph, rejected = _random_graph(seed)
    assert rejected > 0

    # Acyclic
    assert find_cycle([n.id for n in graph.nodes], graph.edges) is None

    for node in graph.nodes:
        if node.structural_class == StructuralClass.TRIGGER:
            assert len(graph.outgoing_edges(node.id)) <= 1
            assert graph.incoming_edges(node.id) == []
        if node.structural_class == StructuralClass.END:
            assert graph.outgoing_edges(node.id) == []

    for edge in graph.edges:
        source = graph.get_node(edge.source_node_id)
        target = graph.get_node(edge.target_node_id)
        assert source is not None and target is not None
        assert edge.source_node_id != edge.target_node_id
        assert is_node_type_compatible(source.type, target.type)


def test_rejection_is_idempotent():
    graph = _graph(a=NodeType.TRIGGER_MANUAL, b=NodeType.ACTION_ADD_TAG, c=NodeType.END)
    graph.connect("a", "b")
    graph.connect("b", "c")
    snapshot = graph.to_dict()

    first = graph.can_connect("c", "a")
    second = graph.can_connect("c", "a")
    graph.connect("c", "a")

    assert first == second
    assert graph.to_dict() == snapshot


def test_cascading_delete_removes_only_incident_edges():
    graph = _graph(
        a=NodeType.TRIGGER_MANUAL,
        b=NodeType.CONDITION,
        c=NodeType.ACTION_ADD_TAG,
        d=NodeType.ACTION_SEND_MESSAGE,
        e=NodeType.END,
    )
    graph.connect("a", "b")
    graph.connect("b", "c", {"condition": "true"})
    graph.connect("b", "d", {"condition": "false"})
    graph.connect("c", "e")
    graph.connect("d", "e")
    untouched = {e.id for e in graph.edges if "c" not in (e.source_node_id, e.target_node_id)}

    removed = graph.remove_node("c")

    assert {(e.source_node_id, e.target_node_id) for e in removed} == {("b", "c"), ("c", "e")}
    assert {e.id for e in graph.edges} == untouched
