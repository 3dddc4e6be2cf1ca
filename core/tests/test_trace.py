"""Tests for execution trace building and rendering."""

from leadflow.graph.node_types import NodeType
from leadflow.graph.workflow import WorkflowGraph
from leadflow.runtime.service import failed_result
from leadflow.runtime.trace import TraceOutcome, build_trace, format_trace
from leadflow.schemas.execution import LeadContext
from leadflow.simulation.executor import DryRunExecutor


def _graph() -> WorkflowGraph:
    graph = WorkflowGraph(id="wf")
    graph.add_node(NodeType.TRIGGER_MANUAL, node_id="trigger")
    graph.add_node(
        NodeType.CONDITION,
        config={"field": "score", "operator": "gt", "value": 50},
        node_id="cond",
    )
    graph.add_node(NodeType.ACTION_ADD_TAG, config={"tag": "hot"}, node_id="tag")
    graph.add_node(NodeType.ACTION_SEND_MESSAGE, config={"template": "Hi"}, node_id="msg")
    graph.add_node(NodeType.END, node_id="end")
    graph.connect("trigger", "cond")
    graph.connect("cond", "tag", {"condition": "true"})
    graph.connect("cond", "msg", {"condition": "false"})
    graph.connect("tag", "end")
    graph.connect("msg", "end")
    return graph


def _run(graph: WorkflowGraph, score):
    return DryRunExecutor().run(graph, lead=LeadContext(id="lead", data={"score": score}))


class TestBuildTrace:
    def test_visited_then_skipped(self):
        graph = _graph()
        entries = build_trace(graph, _run(graph, 10))

        assert [(e.node_id, e.outcome) for e in entries] == [
            ("trigger", TraceOutcome.COMPLETED),
            ("cond", TraceOutcome.COMPLETED),
            ("msg", TraceOutcome.COMPLETED),
            ("end", TraceOutcome.COMPLETED),
            ("tag", TraceOutcome.SKIPPED),
        ]
        assert [e.step for e in entries] == [1, 2, 3, 4, None]
        msg = entries[2]
        assert msg.label == "Send Message"
        assert [a.description for a in msg.actions] == ["Would send message: Hi"]

    def test_error_and_not_reached(self):
        graph = _graph()
        graph.update_node_config("cond", {"operator": "between"})
        entries = build_trace(graph, _run(graph, 80))

        by_id = {e.node_id: e for e in entries}
        assert by_id["cond"].outcome == TraceOutcome.ERROR
        assert by_id["cond"].error.startswith("Invalid Condition config")
        assert {by_id[n].outcome for n in ("tag", "msg", "end")} == {TraceOutcome.NOT_REACHED}

    def test_node_removed_after_run(self):
        graph = _graph()
        result = _run(graph, 80)
        graph.remove_node("tag")

        entries = build_trace(graph, result)

        tag = next(e for e in entries if e.node_id == "tag")
        assert tag.label == "Unknown node"
        assert tag.node_type is None

    def test_paused_node_is_visited(self):
        graph = WorkflowGraph()
        graph.add_node(NodeType.TRIGGER_MANUAL, node_id="t")
        graph.add_node(NodeType.DELAY, config={"delaySeconds": 5}, node_id="wait")
        graph.connect("t", "wait")
        result = DryRunExecutor().run(graph)
        result.state.completed_nodes.remove("wait")

        entries = build_trace(graph, result)

        assert entries[1].outcome == TraceOutcome.VISITED


class TestFormatTrace:
    def test_completed_run(self):
        graph = _graph()
        text = format_trace(graph, _run(graph, 80))

        lines = text.splitlines()
        assert lines[0] == "Test run completed: 4 visited, 1 skipped, 1 action"
        assert "   1. ✓ Manual Trigger [trigger]" in lines
        assert "      ⊘ Send Message [msg] (skipped)" in lines
        assert "         → Would add tag 'hot'" in lines
        assert "Error:" not in text

    def test_workflow_level_failure(self):
        text = format_trace(_graph(), failed_result("Workflow validation failed: no trigger"))

        assert text.splitlines()[0] == "Test run failed: 0 visited, 0 skipped, 0 actions"
        assert "  ✗ workflow: Workflow validation failed: no trigger" in text
        assert text.endswith("Error: Workflow validation failed: no trigger")
        assert "(not reached)" in text
