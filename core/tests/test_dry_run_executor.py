"""
Tests for DryRunExecutor.

Covers branch selection, skipped nodes, node errors halting the run,
delays, loops, and the guarantee that nothing outside the result changes.
"""

from leadflow.graph.node import DelayConfig, ScoreConfig, TagConfig
from leadflow.graph.node_types import NodeType
from leadflow.graph.workflow import WorkflowGraph
from leadflow.schemas.execution import MOCK_LEAD_ID, ExecutionStatus, LeadContext
from leadflow.simulation.executor import DryRunExecutor, describe_action


def _scoring_graph(labelled: bool = True) -> WorkflowGraph:
    """trigger -> condition(score > 50) -> add_tag -> end"""
    graph = WorkflowGraph(id="wf-score")
    graph.add_node(NodeType.TRIGGER_MANUAL, node_id="trigger")
    graph.add_node(
        NodeType.CONDITION,
        config={"field": "score", "operator": ">", "value": 50},
        node_id="condition",
    )
    graph.add_node(NodeType.ACTION_ADD_TAG, config={"tag": "hot"}, node_id="add_tag")
    graph.add_node(NodeType.END, node_id="end")
    graph.connect("trigger", "condition")
    graph.connect("condition", "add_tag", {"condition": "true"} if labelled else None)
    graph.connect("add_tag", "end")
    return graph


def _lead(score) -> LeadContext:
    return LeadContext(id="lead-1", data={"score": score})


class TestConditionBranches:
    def test_true_branch(self):
        result = DryRunExecutor().run(_scoring_graph(), lead=_lead(80))

        assert result.success is True
        assert result.status == ExecutionStatus.COMPLETED
        assert result.state.visited_nodes == ["trigger", "condition", "add_tag", "end"]
        assert result.state.completed_nodes == result.state.visited_nodes
        assert [a.type for a in result.actions_taken] == [NodeType.ACTION_ADD_TAG]
        assert result.actions_taken[0].description == "Would add tag 'hot'"
        assert result.state.skipped_nodes == []

    def test_false_branch_skips_action(self):
        result = DryRunExecutor().run(_scoring_graph(), lead=_lead(10))

        assert result.success is True
        assert result.status == ExecutionStatus.COMPLETED
        assert result.state.visited_nodes == ["trigger", "condition"]
        assert "add_tag" in result.state.skipped_nodes
        assert "add_tag" not in result.state.visited_nodes
        assert result.actions_taken == []

    def test_unlabelled_edge_is_the_true_branch(self):
        taken = DryRunExecutor().run(_scoring_graph(labelled=False), lead=_lead(80))
        skipped = DryRunExecutor().run(_scoring_graph(labelled=False), lead=_lead(10))

        assert taken.state.visited_nodes == ["trigger", "condition", "add_tag", "end"]
        assert skipped.state.skipped_nodes == ["add_tag", "end"]
        assert skipped.actions_taken == []

    def test_shared_successor_is_not_skipped(self):
        graph = _scoring_graph()
        graph.add_node(NodeType.ACTION_SEND_MESSAGE, config={"template": "Hi"}, node_id="msg")
        graph.connect("condition", "msg", {"condition": "false"})
        graph.connect("msg", "end")

        result = DryRunExecutor().run(graph, lead=_lead(10))

        assert result.state.visited_nodes == ["trigger", "condition", "msg", "end"]
        assert result.state.skipped_nodes == ["add_tag"]
        assert [a.description for a in result.actions_taken] == ["Would send message: Hi"]

    def test_mock_lead_is_used_by_default(self):
        # The mock lead has score 50, so "score > 50" is false
        result = DryRunExecutor().run(_scoring_graph())
        assert result.state.skipped_nodes == ["add_tag", "end"]

    def test_non_numeric_score_takes_false_branch(self):
        result = DryRunExecutor().run(_scoring_graph(), lead=_lead("eighty"))
        assert result.success is True
        assert "add_tag" in result.state.skipped_nodes


class TestErrors:
    def test_invalid_config_halts_at_node(self):
        graph = _scoring_graph()
        graph.update_node_config("condition", {"operator": "between"})

        result = DryRunExecutor().run(graph, lead=_lead(80))

        assert result.success is False
        assert result.status == ExecutionStatus.FAILED
        assert result.state.visited_nodes == ["trigger", "condition"]
        assert result.state.completed_nodes == ["trigger"]
        assert result.state.errors[0].node_id == "condition"
        assert result.error.startswith("Invalid Condition config")
        assert result.actions_taken == []

    def test_no_trigger(self):
        graph = WorkflowGraph()
        graph.add_node(NodeType.END)

        result = DryRunExecutor().run(graph)

        assert result.success is False
        assert result.state.errors[0].node_id == "workflow"
        assert result.error == "Workflow has no trigger node"
        assert result.state.visited_nodes == []

    def test_entry_must_be_a_trigger(self):
        result = DryRunExecutor().run(_scoring_graph(), entry_node_id="add_tag")
        assert result.success is False
        assert "not a trigger" in result.error

    def test_explicit_entry_trigger(self):
        graph = _scoring_graph()
        graph.add_node(NodeType.TRIGGER_WEBHOOK, node_id="hook")
        graph.add_node(NodeType.END, node_id="hook_end")
        graph.connect("hook", "hook_end")

        result = DryRunExecutor().run(graph, entry_node_id="hook")

        assert result.state.visited_nodes == ["hook", "hook_end"]

    def test_cycle_in_unchecked_graph_halts(self):
        graph = WorkflowGraph()
        graph.add_node(NodeType.TRIGGER_MANUAL, node_id="t")
        graph.add_node(NodeType.ACTION_ADD_TAG, node_id="a")
        graph.add_node(NodeType.ACTION_REMOVE_TAG, node_id="b")
        graph.add_edge("t", "a")
        graph.add_edge("a", "b")
        graph.add_edge("b", "a")

        result = DryRunExecutor().run(graph)

        assert result.status == ExecutionStatus.FAILED
        assert result.state.visited_nodes == ["t", "a", "b"]
        assert result.state.errors[0].node_id == "a"

    def test_step_limit(self):
        result = DryRunExecutor(max_steps=2).run(_scoring_graph(), lead=_lead(80))
        assert result.status == ExecutionStatus.FAILED
        assert result.state.visited_nodes == ["trigger", "condition"]
        assert result.error == "Step limit of 2 exceeded"


class TestFlowControl:
    def _delay_graph(self) -> WorkflowGraph:
        graph = WorkflowGraph()
        graph.add_node(NodeType.TRIGGER_LEAD_STAGE_ENTRY, node_id="t")
        graph.add_node(NodeType.DELAY, config={"delaySeconds": 60}, node_id="wait")
        graph.add_node(NodeType.ACTION_SEND_MESSAGE, config={"template": "Hi"}, node_id="msg")
        graph.connect("t", "wait")
        graph.connect("wait", "msg")
        return graph

    def test_delay_is_recorded_and_continues(self):
        result = DryRunExecutor().run(self._delay_graph())

        assert result.status == ExecutionStatus.COMPLETED
        assert result.state.visited_nodes == ["t", "wait", "msg"]
        assert [a.description for a in result.actions_taken] == [
            "Would wait 60 seconds",
            "Would send message: Hi",
        ]

    def test_pause_on_delay(self):
        result = DryRunExecutor(pause_on_delay=True).run(self._delay_graph())

        assert result.success is True
        assert result.status == ExecutionStatus.PAUSED
        assert result.state.visited_nodes == ["t", "wait"]
        assert "wait" in result.state.completed_nodes

    def test_loop_takes_body_once(self):
        graph = WorkflowGraph()
        graph.add_node(NodeType.TRIGGER_MANUAL, node_id="t")
        graph.add_node(NodeType.LOOP, node_id="loop")
        graph.add_node(NodeType.ACTION_INCREMENT_SCORE, node_id="bump")
        graph.add_node(NodeType.END, node_id="end")
        graph.connect("t", "loop")
        graph.connect("loop", "end", {"branch": "complete"})
        graph.connect("loop", "bump", {"branch": "loop"})
        graph.connect("bump", "end")

        result = DryRunExecutor().run(graph)

        assert result.state.visited_nodes == ["t", "loop", "bump", "end"]
        assert result.state.skipped_nodes == []
        assert result.actions_taken[0].description == "Would change score by +1"


def test_dry_run_does_not_touch_graph_or_lead():
    graph = _scoring_graph()
    lead = _lead(80)
    graph_before = graph.to_dict()
    lead_before = lead.model_dump()

    DryRunExecutor().run(graph, lead=lead)

    assert graph.to_dict() == graph_before
    assert lead.model_dump() == lead_before


def test_result_wire_shape():
    result = DryRunExecutor().run(_scoring_graph(), lead=_lead(80))
    data = result.model_dump(mode="json", by_alias=True)

    assert data["state"]["visitedNodes"] == ["trigger", "condition", "add_tag", "end"]
    assert data["actionsTaken"][0]["type"] == "action_add_tag"
    assert data["actionsTaken"][0]["nodeId"] == "add_tag"


def test_describe_action():
    assert describe_action(NodeType.ACTION_REMOVE_TAG, TagConfig(tag="cold")) == (
        "Would remove tag 'cold'"
    )
    assert describe_action(NodeType.ACTION_DECREMENT_SCORE, ScoreConfig(score_increment=3)) == (
        "Would change score by -3"
    )
    delay = DelayConfig.model_validate({"delayUntil": "2030-01-01T09:00:00+00:00"})
    assert describe_action(NodeType.DELAY, delay) == "Would wait until 2030-01-01T09:00:00+00:00"


def test_mock_lead_id():
    assert MOCK_LEAD_ID == "mock-test-lead-id"
