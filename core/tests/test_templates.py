"""Tests for workflow templates."""

import pytest

from leadflow.graph.node import Position
from leadflow.graph.node_types import NodeType
from leadflow.graph.templates import (
    BUILTIN_TEMPLATES,
    TemplateEdge,
    TemplateError,
    TemplateNode,
    WorkflowTemplate,
    get_template,
    instantiate_template,
    list_templates,
)
from leadflow.graph.validator import WorkflowValidator


@pytest.mark.parametrize("template", BUILTIN_TEMPLATES, ids=lambda t: t.id)
def test_builtin_templates_produce_valid_graphs(template):
    graph = instantiate_template(template)

    assert len(graph.nodes) == len(template.nodes)
    assert len(graph.edges) == len(template.edges)
    result = WorkflowValidator().validate_graph(graph)
    assert result.valid, result.error


def test_instantiation_allocates_fresh_ids():
    template = get_template("welcome-message")
    first = instantiate_template(template)
    second = instantiate_template(template, name="Copy")

    assert second.name == "Copy"
    assert first.id != second.id
    assert {n.id for n in first.nodes}.isdisjoint({n.id for n in second.nodes})


def test_instantiation_keeps_config_and_position():
    graph = instantiate_template(get_template("score-based-nurture"))
    condition = next(n for n in graph.nodes if n.type == NodeType.CONDITION)
    assert condition.config == {"field": "score", "operator": "gte", "value": 70}
    assert condition.position == Position(x=250, y=200)
    labels = sorted(e.label for e in graph.outgoing_edges(condition.id))
    assert labels == ["No", "Yes"]


def test_template_edges_go_through_the_connection_validator():
    template = WorkflowTemplate(
        id="broken",
        name="Broken",
        nodes=[
            TemplateNode(key="a", type=NodeType.TRIGGER_MANUAL),
            TemplateNode(key="b", type=NodeType.ACTION_ADD_TAG),
            TemplateNode(key="c", type=NodeType.ACTION_SEND_MESSAGE),
        ],
        edges=[TemplateEdge(source="a", target="b"), TemplateEdge(source="a", target="c")],
    )
    with pytest.raises(TemplateError, match="Trigger nodes can only have one output"):
        instantiate_template(template)


def test_unknown_key_and_repeated_key():
    unknown = WorkflowTemplate(
        id="unknown",
        name="Unknown",
        nodes=[TemplateNode(key="a", type=NodeType.TRIGGER_MANUAL)],
        edges=[TemplateEdge(source="a", target="missing")],
    )
    repeated = WorkflowTemplate(
        id="repeated",
        name="Repeated",
        nodes=[
            TemplateNode(key="a", type=NodeType.TRIGGER_MANUAL),
            TemplateNode(key="a", type=NodeType.END),
        ],
    )
    with pytest.raises(TemplateError, match="unknown node"):
        instantiate_template(unknown)
    with pytest.raises(TemplateError, match="repeats node key"):
        instantiate_template(repeated)


def test_list_templates_filters():
    assert [t.id for t in list_templates(category="nurturing")] == ["score-based-nurture"]
    assert [t.id for t in list_templates(search="WELCOME")] == ["welcome-message"]
    assert list_templates(category="nurturing", search="welcome") == []
    assert len(list_templates()) == len(BUILTIN_TEMPLATES)


def test_get_template_unknown():
    assert get_template("nope") is None
