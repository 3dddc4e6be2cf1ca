"""
Node Protocol - The steps of an automation graph.

A node is a typed step: a trigger that starts a run, an action that would
touch a lead, or a flow-control step (condition, delay, loop, end).

On the wire a node's ``config`` is an open map, so a node dropped onto the
canvas with an empty config is always representable. Each node type has a
typed config model, and ``parse_node_config`` turns the open map into that
model. Validation and dry-run execution read configs only through it, so a
delay with neither ``delaySeconds`` nor ``delayUntil`` is rejected in one
place instead of being re-derived by convention.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from leadflow.graph.node_types import NodeType, StructuralClass, label, structural_class

_WIRE_CONFIG = {"alias_generator": to_camel, "populate_by_name": True}
_FROZEN_WIRE_CONFIG = {**_WIRE_CONFIG, "frozen": True}


class Position(BaseModel):
    """Canvas coordinate. Carried opaquely, never read by validation or execution."""

    x: float = 0.0
    y: float = 0.0

    model_config = {"frozen": True}


class NodeSpec(BaseModel):
    """
    Specification for a node in an automation graph.

    Example:
        NodeSpec(
            id="node_3f2a9c1b7d4e",
            type=NodeType.CONDITION,
            config={"field": "score", "operator": "gt", "value": 50},
        )
    """

    id: str
    type: NodeType
    config: dict[str, Any] = Field(default_factory=dict)
    position: Position = Field(default_factory=Position)

    model_config = _FROZEN_WIRE_CONFIG

    @property
    def structural_class(self) -> StructuralClass:
        return structural_class(self.type)

    @property
    def label(self) -> str:
        return label(self.type)


# ---------------------------------------------------------------------------
# Typed configs
# ---------------------------------------------------------------------------


class NodeConfig(BaseModel):
    """Base for typed node configs. Unknown keys are kept for forward compatibility."""

    model_config = {**_WIRE_CONFIG, "extra": "allow"}


class TriggerConfig(NodeConfig):
    pipeline_stage_id: str | None = None
    field: str | None = None
    schedule: str | None = None
    webhook_secret: str | None = None


class ConditionOperator(StrEnum):
    """Comparison operators understood by condition nodes."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


OPERATOR_SYMBOLS: dict[str, ConditionOperator] = {
    "==": ConditionOperator.EQ,
    "!=": ConditionOperator.NE,
    ">": ConditionOperator.GT,
    ">=": ConditionOperator.GTE,
    "<": ConditionOperator.LT,
    "<=": ConditionOperator.LTE,
}

UNARY_OPERATORS = frozenset({ConditionOperator.IS_EMPTY, ConditionOperator.IS_NOT_EMPTY})


class ConditionConfig(NodeConfig):
    """``field operator value`` evaluated against the lead's fields."""

    field: str = Field(min_length=1, validation_alias=AliasChoices("field", "conditionField"))
    operator: ConditionOperator = Field(
        validation_alias=AliasChoices("operator", "conditionOperator")
    )
    value: Any = Field(default=None, validation_alias=AliasChoices("value", "conditionValue"))

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, v: Any) -> Any:
        if isinstance(v, str):
            return OPERATOR_SYMBOLS.get(v.strip(), v.strip())
        return v


class DelayConfig(NodeConfig):
    """Relative (``delaySeconds``) or absolute (``delayUntil``) wait, exactly one of them."""

    delay_seconds: float | None = None
    delay_until: datetime | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "DelayConfig":
        if (self.delay_seconds is None) == (self.delay_until is None):
            raise ValueError("delay node requires exactly one of delaySeconds or delayUntil")
        if self.delay_seconds is not None and self.delay_seconds < 0:
            raise ValueError("delaySeconds cannot be negative")
        return self


class LoopConfig(NodeConfig):
    iteration_type: Literal["leads", "audience"]
    audience_id: str | None = None
    pipeline_stage_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    max_iterations: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def _audience_needs_id(self) -> "LoopConfig":
        if self.iteration_type == "audience" and not self.audience_id:
            raise ValueError("loop over an audience requires audienceId")
        return self


class EndConfig(NodeConfig):
    pass


class SendMessageConfig(NodeConfig):
    template: str | None = None
    channel: str | None = None


class TagConfig(NodeConfig):
    tag: str | None = None


class AssignUserConfig(NodeConfig):
    assigned_user_id: str | None = None


class ChangeStageConfig(NodeConfig):
    target_stage_id: str | None = None


class UpdateLeadFieldConfig(NodeConfig):
    lead_field_data: dict[str, Any] = Field(default_factory=dict)


class EnqueueAgentConfig(NodeConfig):
    agent_task: str | None = None


class SendWebhookConfig(NodeConfig):
    webhook_url: str | None = None


class AudienceConfig(NodeConfig):
    audience_id: str | None = None


class WaitUntilConfig(NodeConfig):
    wait_until: datetime | None = None


class ScoreConfig(NodeConfig):
    score_increment: int = Field(default=1, ge=0)


CONFIG_MODELS: dict[NodeType, type[NodeConfig]] = {
    NodeType.TRIGGER_LEAD_STAGE_ENTRY: TriggerConfig,
    NodeType.TRIGGER_LEAD_SCORE_CHANGE: TriggerConfig,
    NodeType.TRIGGER_LEAD_FIELD_CHANGE: TriggerConfig,
    NodeType.TRIGGER_TIME_BASED: TriggerConfig,
    NodeType.TRIGGER_WEBHOOK: TriggerConfig,
    NodeType.TRIGGER_MANUAL: TriggerConfig,
    NodeType.ACTION_SEND_MESSAGE: SendMessageConfig,
    NodeType.ACTION_ADD_TAG: TagConfig,
    NodeType.ACTION_REMOVE_TAG: TagConfig,
    NodeType.ACTION_ASSIGN_USER: AssignUserConfig,
    NodeType.ACTION_CHANGE_STAGE: ChangeStageConfig,
    NodeType.ACTION_UPDATE_LEAD_FIELD: UpdateLeadFieldConfig,
    NodeType.ACTION_ENQUEUE_AGENT: EnqueueAgentConfig,
    NodeType.ACTION_SEND_WEBHOOK: SendWebhookConfig,
    NodeType.ACTION_ADD_TO_AUDIENCE: AudienceConfig,
    NodeType.ACTION_REMOVE_FROM_AUDIENCE: AudienceConfig,
    NodeType.ACTION_WAIT_UNTIL_TIME: WaitUntilConfig,
    NodeType.ACTION_INCREMENT_SCORE: ScoreConfig,
    NodeType.ACTION_DECREMENT_SCORE: ScoreConfig,
    NodeType.CONDITION: ConditionConfig,
    NodeType.DELAY: DelayConfig,
    NodeType.LOOP: LoopConfig,
    NodeType.END: EndConfig,
}


def parse_node_config(node: NodeSpec) -> NodeConfig:
    """
    Parse a node's open config map into its typed model.

    Raises:
        pydantic.ValidationError: if the config does not fit the node type
    """
    return CONFIG_MODELS[node.type].model_validate(node.config)


def default_config(node_type: NodeType) -> dict[str, Any]:
    """Initial config for a freshly added node."""
    if node_type == NodeType.CONDITION:
        return {"field": "", "operator": ConditionOperator.EQ.value, "value": None}
    if node_type == NodeType.LOOP:
        return {"iterationType": "leads", "maxIterations": 100}
    return {}


def describe_node(node: NodeSpec) -> str:
    """One-line description shown under a node on the canvas."""
    config = node.config
    if node.type == NodeType.TRIGGER_LEAD_STAGE_ENTRY:
        return f"Stage: {config.get('pipelineStageId') or 'Not set'}"
    if node.type == NodeType.ACTION_SEND_MESSAGE:
        template = config.get("template")
        return template[:50] if isinstance(template, str) and template else "No message"
    if node.type == NodeType.CONDITION:
        field = config.get("field", config.get("conditionField"))
        operator = config.get("operator", config.get("conditionOperator"))
        value = config.get("value", config.get("conditionValue"))
        return f"{field} {operator} {value}"
    if node.type == NodeType.DELAY:
        if config.get("delaySeconds") is not None:
            return f"Wait {config['delaySeconds']} seconds"
        if config.get("delayUntil"):
            return f"Until {config['delayUntil']}"
        return "No delay configured"
    if node.type == NodeType.LOOP:
        return f"Iterate over {config.get('iterationType') or 'leads'}"
    return ""
