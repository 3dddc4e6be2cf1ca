"""
Workflow templates - Ready-made automations a user can start from.

A template is a graph blueprint with template-local node keys. Instantiation
allocates fresh node ids and re-creates every edge through
``WorkflowGraph.connect``, so a template can never produce a graph the
editor itself would have refused.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from leadflow.graph.node import Position
from leadflow.graph.node_types import NodeType
from leadflow.graph.workflow import GraphModelError, WorkflowGraph

logger = logging.getLogger(__name__)


class TemplateError(GraphModelError):
    """A template cannot be turned into a valid graph."""


class TemplateNode(BaseModel):
    key: str
    type: NodeType
    config: dict[str, Any] = Field(default_factory=dict)
    position: Position = Field(default_factory=Position)


class TemplateEdge(BaseModel):
    source: str
    target: str
    config: dict[str, Any] = Field(default_factory=dict)


class WorkflowTemplate(BaseModel):
    """A reusable automation blueprint."""

    id: str
    name: str
    description: str = ""
    category: str = "default"
    nodes: list[TemplateNode]
    edges: list[TemplateEdge] = Field(default_factory=list)


BUILTIN_TEMPLATES: list[WorkflowTemplate] = [
    WorkflowTemplate(
        id="welcome-message",
        name="Welcome New Leads",
        description="Send a welcome message when a lead enters the first pipeline stage.",
        category="welcome",
        nodes=[
            TemplateNode(
                key="trigger",
                type=NodeType.TRIGGER_LEAD_STAGE_ENTRY,
                config={"pipelineStageId": "new"},
                position=Position(x=250, y=50),
            ),
            TemplateNode(
                key="welcome",
                type=NodeType.ACTION_SEND_MESSAGE,
                config={"template": "Hi {{firstName}}, thanks for connecting!"},
                position=Position(x=250, y=200),
            ),
            TemplateNode(
                key="tag",
                type=NodeType.ACTION_ADD_TAG,
                config={"tag": "welcomed"},
                position=Position(x=250, y=350),
            ),
            TemplateNode(key="end", type=NodeType.END, position=Position(x=250, y=500)),
        ],
        edges=[
            TemplateEdge(source="trigger", target="welcome"),
            TemplateEdge(source="welcome", target="tag"),
            TemplateEdge(source="tag", target="end"),
        ],
    ),
    WorkflowTemplate(
        id="score-based-nurture",
        name="Score-Based Nurture",
        description="Tag hot leads and hand them to a rep; keep nurturing the rest.",
        category="nurturing",
        nodes=[
            TemplateNode(
                key="trigger",
                type=NodeType.TRIGGER_LEAD_SCORE_CHANGE,
                position=Position(x=250, y=50),
            ),
            TemplateNode(
                key="is_hot",
                type=NodeType.CONDITION,
                config={"field": "score", "operator": "gte", "value": 70},
                position=Position(x=250, y=200),
            ),
            TemplateNode(
                key="tag_hot",
                type=NodeType.ACTION_ADD_TAG,
                config={"tag": "hot"},
                position=Position(x=100, y=350),
            ),
            TemplateNode(
                key="assign",
                type=NodeType.ACTION_ASSIGN_USER,
                config={"assignedUserId": "round-robin"},
                position=Position(x=100, y=500),
            ),
            TemplateNode(
                key="nurture",
                type=NodeType.ACTION_SEND_MESSAGE,
                config={"template": "Here is a resource you might like."},
                position=Position(x=400, y=350),
            ),
            TemplateNode(key="end", type=NodeType.END, position=Position(x=250, y=650)),
        ],
        edges=[
            TemplateEdge(source="trigger", target="is_hot"),
            TemplateEdge(
                source="is_hot", target="tag_hot", config={"condition": "true", "label": "Yes"}
            ),
            TemplateEdge(
                source="is_hot", target="nurture", config={"condition": "false", "label": "No"}
            ),
            TemplateEdge(source="tag_hot", target="assign"),
            TemplateEdge(source="assign", target="end"),
            TemplateEdge(source="nurture", target="end"),
        ],
    ),
    WorkflowTemplate(
        id="stage-follow-up",
        name="Follow Up After Two Days",
        description="Wait two days after a stage change, then follow up and bump the score.",
        category="follow-up",
        nodes=[
            TemplateNode(
                key="trigger",
                type=NodeType.TRIGGER_LEAD_STAGE_ENTRY,
                config={"pipelineStageId": "contacted"},
                position=Position(x=250, y=50),
            ),
            TemplateNode(
                key="wait",
                type=NodeType.DELAY,
                config={"delaySeconds": 172800},
                position=Position(x=250, y=200),
            ),
            TemplateNode(
                key="follow_up",
                type=NodeType.ACTION_SEND_MESSAGE,
                config={"template": "Just following up on my last message."},
                position=Position(x=250, y=350),
            ),
            TemplateNode(
                key="bump",
                type=NodeType.ACTION_INCREMENT_SCORE,
                config={"scoreIncrement": 5},
                position=Position(x=250, y=500),
            ),
            TemplateNode(key="end", type=NodeType.END, position=Position(x=250, y=650)),
        ],
        edges=[
            TemplateEdge(source="trigger", target="wait"),
            TemplateEdge(source="wait", target="follow_up"),
            TemplateEdge(source="follow_up", target="bump"),
            TemplateEdge(source="bump", target="end"),
        ],
    ),
]


def list_templates(
    category: str | None = None,
    search: str | None = None,
    templates: list[WorkflowTemplate] | None = None,
) -> list[WorkflowTemplate]:
    """Filter templates by category and by a case-insensitive name/description search."""
    result = []
    for template in templates if templates is not None else BUILTIN_TEMPLATES:
        if category and template.category != category:
            continue
        if search:
            needle = search.lower()
            if needle not in template.name.lower() and needle not in template.description.lower():
                continue
        result.append(template)
    return result


def get_template(template_id: str) -> WorkflowTemplate | None:
    for template in BUILTIN_TEMPLATES:
        if template.id == template_id:
            return template
    return None


def instantiate_template(template: WorkflowTemplate, name: str | None = None) -> WorkflowGraph:
    """
    Build a new graph from a template.

    Raises:
        TemplateError: if the template references unknown keys or one of
            its edges is rejected by the ConnectionValidator
    """
    graph = WorkflowGraph(name=name or template.name, description=template.description)
    ids: dict[str, str] = {}

    for node in template.nodes:
        if node.key in ids:
            raise TemplateError(f"Template '{template.id}' repeats node key '{node.key}'")
        ids[node.key] = graph.add_node(node.type, node.position, config=node.config).id

    for edge in template.edges:
        if edge.source not in ids or edge.target not in ids:
            raise TemplateError(
                f"Template '{template.id}' edge {edge.source} -> {edge.target} "
                "references an unknown node"
            )
        result, _ = graph.connect(ids[edge.source], ids[edge.target], edge.config)
        if not result.accepted:
            raise TemplateError(
                f"Template '{template.id}' edge {edge.source} -> {edge.target} "
                f"rejected: {result.reason}"
            )

    logger.info(
        f"Instantiated template '{template.id}' as workflow '{graph.id}' "
        f"({len(graph.nodes)} nodes, {len(graph.edges)} edges)"
    )
    return graph
