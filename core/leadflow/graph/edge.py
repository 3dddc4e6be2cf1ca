"""
Edge Protocol - How nodes connect in an automation graph.

An edge is a directed connection from one node to another. Execution order
follows edges. The edge's ``config`` is an open map that may carry:
- ``label``: display text on the canvas
- ``condition``: ``"true"`` / ``"false"`` on edges leaving a condition node
- ``branch``: ``"loop"`` / ``"complete"`` on edges leaving a loop node

Edges are pure data. Whether an edge may exist is decided by the
ConnectionValidator before the graph ever stores it.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class ConditionBranch(StrEnum):
    """Branch labels on edges leaving a condition node."""

    TRUE = "true"
    FALSE = "false"


class LoopBranch(StrEnum):
    """Branch labels on edges leaving a loop node."""

    LOOP = "loop"
    COMPLETE = "complete"


class EdgeSpec(BaseModel):
    """
    Specification for an edge between nodes.

    Examples:
        # Plain sequencing
        EdgeSpec(id="edge_1", source_node_id="trigger", target_node_id="send")

        # True branch of a condition
        EdgeSpec(
            id="edge_2",
            source_node_id="is-hot",
            target_node_id="tag-hot",
            config={"condition": "true", "label": "Yes"},
        )
    """

    id: str
    source_node_id: str = Field(description="Source node ID")
    target_node_id: str = Field(description="Target node ID")
    config: dict[str, Any] = Field(default_factory=dict)

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "frozen": True}

    @property
    def label(self) -> str | None:
        value = self.config.get("label")
        return str(value) if value is not None else None

    @property
    def condition_branch(self) -> ConditionBranch | None:
        """The condition branch this edge represents, if it is labelled."""
        value = self.config.get("condition")
        if value is None:
            return None
        try:
            return ConditionBranch(str(value).lower())
        except ValueError:
            return None

    @property
    def loop_branch(self) -> LoopBranch | None:
        value = self.config.get("branch")
        if value is None:
            return None
        try:
            return LoopBranch(str(value).lower())
        except ValueError:
            return None
