"""Graph structures: node catalog, nodes, edges, the workflow aggregate and its validators."""

from leadflow.graph.cycles import find_cycle, would_create_cycle
from leadflow.graph.edge import ConditionBranch, EdgeSpec, LoopBranch
from leadflow.graph.node import (
    ConditionConfig,
    ConditionOperator,
    DelayConfig,
    LoopConfig,
    NodeConfig,
    NodeSpec,
    Position,
    describe_node,
    parse_node_config,
)
from leadflow.graph.node_types import (
    NODE_CATALOG,
    NodeType,
    StructuralClass,
    label,
    structural_class,
)
from leadflow.graph.templates import (
    TemplateError,
    WorkflowTemplate,
    instantiate_template,
    list_templates,
)
from leadflow.graph.validator import (
    ConnectionResult,
    ConnectionRule,
    ConnectionValidator,
    IssueType,
    ValidationIssue,
    WorkflowValidationError,
    WorkflowValidationResult,
    WorkflowValidator,
)
from leadflow.graph.workflow import (
    DuplicateEdgeError,
    DuplicateNodeError,
    EdgeNotFoundError,
    GraphModelError,
    NodeNotFoundError,
    WorkflowDefinition,
    WorkflowGraph,
)

__all__ = [
    # Catalog
    "NodeType",
    "StructuralClass",
    "NODE_CATALOG",
    "structural_class",
    "label",
    # Node
    "NodeSpec",
    "Position",
    "NodeConfig",
    "ConditionConfig",
    "ConditionOperator",
    "DelayConfig",
    "LoopConfig",
    "parse_node_config",
    "describe_node",
    # Edge
    "EdgeSpec",
    "ConditionBranch",
    "LoopBranch",
    # Aggregate
    "WorkflowGraph",
    "WorkflowDefinition",
    "GraphModelError",
    "NodeNotFoundError",
    "EdgeNotFoundError",
    "DuplicateEdgeError",
    "DuplicateNodeError",
    # Validation
    "ConnectionValidator",
    "ConnectionResult",
    "ConnectionRule",
    "WorkflowValidator",
    "WorkflowValidationResult",
    "WorkflowValidationError",
    "ValidationIssue",
    "IssueType",
    "would_create_cycle",
    "find_cycle",
    # Templates
    "WorkflowTemplate",
    "TemplateError",
    "list_templates",
    "instantiate_template",
]
