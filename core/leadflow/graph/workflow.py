"""
WorkflowGraph - The automation graph aggregate.

The graph owns its nodes and edges. Callers change it only through the
command methods (add_node, remove_node, update_node_config, add_edge,
remove_edge, connect). Nodes and edges are frozen, and every read hands out
a detached copy, so nothing returned by the graph can change it.

``add_edge`` stores an edge as given. ``connect`` is the editing entry
point: it runs the ConnectionValidator and only stores accepted edges.
Anything that creates edges on a user's behalf (templates, strict imports)
goes through ``connect``.

Usage:
    graph = WorkflowGraph(name="Welcome")
    trigger = graph.add_node(NodeType.TRIGGER_MANUAL)
    send = graph.add_node(NodeType.ACTION_SEND_MESSAGE)

    result, edge = graph.connect(trigger.id, send.id)
    if not result.accepted:
        show_toast(result.reason)
"""

import copy
import logging
import uuid
from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from leadflow.graph.edge import EdgeSpec
from leadflow.graph.node import NodeSpec, Position, default_config
from leadflow.graph.node_types import NodeType, StructuralClass
from leadflow.graph.validator import ConnectionResult, ConnectionValidator

logger = logging.getLogger(__name__)


class GraphModelError(Exception):
    """Misuse of the graph model (unknown ids, malformed payloads)."""


class NodeNotFoundError(GraphModelError, KeyError):
    pass


class EdgeNotFoundError(GraphModelError, KeyError):
    pass


class DuplicateNodeError(GraphModelError):
    pass


class DuplicateEdgeError(GraphModelError):
    pass


class WorkflowDefinition(BaseModel):
    """Wire shape of a whole graph, as exchanged with persistence and the job service."""

    id: str
    name: str = ""
    description: str = ""
    nodes: list[NodeSpec] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _detached(spec: NodeSpec | EdgeSpec) -> Any:
    return spec.model_copy(update={"config": copy.deepcopy(spec.config)})


class WorkflowGraph:
    """
    An automation graph: nodes, edges and their configuration.

    Invariants:
    - node ids are unique
    - every edge references two existing nodes
    - removing a node removes every edge incident to it
    """

    def __init__(
        self,
        id: str | None = None,
        name: str = "New Workflow",
        description: str = "",
        validator: ConnectionValidator | None = None,
    ):
        self.id = id or _new_id("workflow")
        self.name = name
        self.description = description
        self._validator = validator or ConnectionValidator()
        self._nodes: dict[str, NodeSpec] = {}
        self._edges: dict[str, EdgeSpec] = {}

    # === READ ACCESS ===

    @property
    def nodes(self) -> tuple[NodeSpec, ...]:
        return tuple(_detached(n) for n in self._nodes.values())

    @property
    def edges(self) -> tuple[EdgeSpec, ...]:
        return tuple(_detached(e) for e in self._edges.values())

    def get_node(self, node_id: str) -> NodeSpec | None:
        """Get a node by ID."""
        node = self._nodes.get(node_id)
        return _detached(node) if node is not None else None

    def get_edge(self, edge_id: str) -> EdgeSpec | None:
        edge = self._edges.get(edge_id)
        return _detached(edge) if edge is not None else None

    def outgoing_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges leaving a node, in insertion order."""
        return [_detached(e) for e in self._edges.values() if e.source_node_id == node_id]

    def incoming_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges entering a node."""
        return [_detached(e) for e in self._edges.values() if e.target_node_id == node_id]

    def triggers(self) -> list[NodeSpec]:
        return [
            _detached(n)
            for n in self._nodes.values()
            if n.structural_class == StructuralClass.TRIGGER
        ]

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    # === COMMANDS ===

    def add_node(
        self,
        node_type: NodeType,
        position: Position | None = None,
        config: dict[str, Any] | None = None,
        node_id: str | None = None,
    ) -> NodeSpec:
        """
        Add a node with a fresh unique ID.

        Args:
            node_type: Kind of node
            position: Canvas position, carried opaquely
            config: Initial config; defaults to the type's default config
            node_id: Explicit ID (used when rebuilding a stored graph)

        Returns:
            The created node

        Raises:
            DuplicateNodeError: if ``node_id`` is already used
        """
        node_id = node_id or _new_id("node")
        if node_id in self._nodes:
            raise DuplicateNodeError(f"Node '{node_id}' already exists in workflow '{self.id}'")

        node = NodeSpec(
            id=node_id,
            type=node_type,
            config=copy.deepcopy(config) if config is not None else default_config(node_type),
            position=position or Position(),
        )
        self._nodes[node_id] = node
        logger.debug(f"Added {node_type} node {node_id} to workflow '{self.id}'")
        return _detached(node)

    def remove_node(self, node_id: str) -> list[EdgeSpec]:
        """
        Remove a node and every edge whose source or target is that node.

        Returns:
            The edges removed along with the node

        Raises:
            NodeNotFoundError: if the node does not exist
        """
        if node_id not in self._nodes:
            raise NodeNotFoundError(node_id)

        removed = [
            e
            for e in self._edges.values()
            if e.source_node_id == node_id or e.target_node_id == node_id
        ]
        for edge in removed:
            del self._edges[edge.id]
        del self._nodes[node_id]

        logger.debug(
            f"Removed node {node_id} and {len(removed)} edge(s) from workflow '{self.id}'"
        )
        return removed

    def update_node_config(self, node_id: str, patch: dict[str, Any]) -> NodeSpec:
        """
        Merge ``patch`` into a node's config. Keys mapped to None are removed.

        Raises:
            NodeNotFoundError: if the node does not exist
        """
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)

        config = dict(node.config)
        for key, value in patch.items():
            if value is None:
                config.pop(key, None)
            else:
                config[key] = copy.deepcopy(value)

        updated = node.model_copy(update={"config": config})
        self._nodes[node_id] = updated
        return _detached(updated)

    def move_node(self, node_id: str, position: Position) -> NodeSpec:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        updated = node.model_copy(update={"position": position})
        self._nodes[node_id] = updated
        return _detached(updated)

    def add_edge(
        self,
        source: str,
        target: str,
        config: dict[str, Any] | None = None,
        edge_id: str | None = None,
    ) -> EdgeSpec:
        """
        Store an edge without structural validation.

        Callers run ``ConnectionValidator.can_connect`` first, or use
        ``connect`` which does both.

        Raises:
            NodeNotFoundError: if either endpoint does not exist
            DuplicateEdgeError: if ``edge_id`` is already used
        """
        for node_id in (source, target):
            if node_id not in self._nodes:
                raise NodeNotFoundError(node_id)
        if edge_id is not None and edge_id in self._edges:
            raise DuplicateEdgeError(f"Edge '{edge_id}' already exists in workflow '{self.id}'")

        edge = EdgeSpec(
            id=edge_id or _new_id("edge"),
            source_node_id=source,
            target_node_id=target,
            config=copy.deepcopy(config or {}),
        )
        self._edges[edge.id] = edge
        return _detached(edge)

    def remove_edge(self, edge_id: str) -> EdgeSpec:
        """
        Remove an edge.

        Raises:
            EdgeNotFoundError: if the edge does not exist
        """
        edge = self._edges.pop(edge_id, None)
        if edge is None:
            raise EdgeNotFoundError(edge_id)
        return edge

    def can_connect(self, source: str, target: str) -> ConnectionResult:
        return self._validator.can_connect(self, source, target)

    def connect(
        self,
        source: str,
        target: str,
        config: dict[str, Any] | None = None,
        edge_id: str | None = None,
    ) -> tuple[ConnectionResult, EdgeSpec | None]:
        """
        Validate a proposed edge and store it if accepted.

        A rejected edge leaves the graph unchanged.

        Returns:
            (result, edge) where edge is None on rejection

        Raises:
            DuplicateEdgeError: if ``edge_id`` is already used
        """
        result = self._validator.can_connect(self, source, target)
        if not result.accepted:
            return result, None
        return result, self.add_edge(source, target, config=config, edge_id=edge_id)

    # === SERIALIZATION ===

    def to_definition(self) -> WorkflowDefinition:
        return WorkflowDefinition(
            id=self.id,
            name=self.name,
            description=self.description,
            nodes=list(self.nodes),
            edges=list(self.edges),
        )

    def to_dict(self) -> dict[str, Any]:
        """Wire representation (camelCase keys)."""
        return self.to_definition().model_dump(mode="json", by_alias=True)

    @classmethod
    def from_definition(
        cls,
        definition: WorkflowDefinition,
        strict: bool = False,
        validator: ConnectionValidator | None = None,
    ) -> "WorkflowGraph":
        """
        Rebuild a graph from its wire shape.

        Args:
            definition: Stored graph
            strict: Re-validate every edge through the ConnectionValidator
            validator: Validator for the rebuilt graph

        Raises:
            GraphModelError: on duplicate node or edge ids, dangling edges, or (in
                strict mode) an edge the validator rejects
        """
        graph = cls(
            id=definition.id,
            name=definition.name,
            description=definition.description,
            validator=validator,
        )
        for node in definition.nodes:
            graph.add_node(node.type, node.position, config=node.config, node_id=node.id)

        for edge in definition.edges:
            for endpoint in (edge.source_node_id, edge.target_node_id):
                if endpoint not in graph:
                    raise GraphModelError(
                        f"Edge '{edge.id}' references missing node '{endpoint}'"
                    )
            if strict:
                result, _ = graph.connect(
                    edge.source_node_id, edge.target_node_id, edge.config, edge_id=edge.id
                )
                if not result.accepted:
                    raise GraphModelError(f"Edge '{edge.id}' rejected: {result.reason}")
            else:
                graph.add_edge(
                    edge.source_node_id, edge.target_node_id, edge.config, edge_id=edge.id
                )

        return graph

    @classmethod
    def from_dict(cls, data: dict[str, Any], strict: bool = False) -> "WorkflowGraph":
        return cls.from_definition(WorkflowDefinition.model_validate(data), strict=strict)
