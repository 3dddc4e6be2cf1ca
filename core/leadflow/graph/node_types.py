"""
Node Type Catalog - The closed set of node kinds an automation can contain.

Every node kind belongs to exactly one structural class:
- trigger: entry condition that starts a run (lead enters stage, webhook, ...)
- action: a business operation (send message, add tag, ...)
- condition / delay / loop / end: flow control

The catalog is a static table. Other components never parse type strings;
they ask the catalog for the structural class or the display label.
"""

from dataclasses import dataclass
from enum import StrEnum


class StructuralClass(StrEnum):
    """Structural class of a node, used by connectivity rules."""

    TRIGGER = "trigger"
    ACTION = "action"
    CONDITION = "condition"
    DELAY = "delay"
    LOOP = "loop"
    END = "end"


class NodeType(StrEnum):
    """Every node kind an automation graph may contain."""

    # Triggers
    TRIGGER_LEAD_STAGE_ENTRY = "trigger_lead_stage_entry"
    TRIGGER_LEAD_SCORE_CHANGE = "trigger_lead_score_change"
    TRIGGER_LEAD_FIELD_CHANGE = "trigger_lead_field_change"
    TRIGGER_TIME_BASED = "trigger_time_based"
    TRIGGER_WEBHOOK = "trigger_webhook"
    TRIGGER_MANUAL = "trigger_manual"

    # Actions
    ACTION_SEND_MESSAGE = "action_send_message"
    ACTION_ADD_TAG = "action_add_tag"
    ACTION_REMOVE_TAG = "action_remove_tag"
    ACTION_ASSIGN_USER = "action_assign_user"
    ACTION_CHANGE_STAGE = "action_change_stage"
    ACTION_UPDATE_LEAD_FIELD = "action_update_lead_field"
    ACTION_ENQUEUE_AGENT = "action_enqueue_agent"
    ACTION_SEND_WEBHOOK = "action_send_webhook"
    ACTION_ADD_TO_AUDIENCE = "action_add_to_audience"
    ACTION_REMOVE_FROM_AUDIENCE = "action_remove_from_audience"
    ACTION_WAIT_UNTIL_TIME = "action_wait_until_time"
    ACTION_INCREMENT_SCORE = "action_increment_score"
    ACTION_DECREMENT_SCORE = "action_decrement_score"

    # Flow control
    CONDITION = "condition"
    DELAY = "delay"
    LOOP = "loop"
    END = "end"


@dataclass(frozen=True)
class NodeTypeInfo:
    """Static catalog entry for a node type."""

    structural_class: StructuralClass
    label: str


NODE_CATALOG: dict[NodeType, NodeTypeInfo] = {
    NodeType.TRIGGER_LEAD_STAGE_ENTRY: NodeTypeInfo(StructuralClass.TRIGGER, "Lead Enters Stage"),
    NodeType.TRIGGER_LEAD_SCORE_CHANGE: NodeTypeInfo(StructuralClass.TRIGGER, "Score Changes"),
    NodeType.TRIGGER_LEAD_FIELD_CHANGE: NodeTypeInfo(StructuralClass.TRIGGER, "Field Changes"),
    NodeType.TRIGGER_TIME_BASED: NodeTypeInfo(StructuralClass.TRIGGER, "Time Based"),
    NodeType.TRIGGER_WEBHOOK: NodeTypeInfo(StructuralClass.TRIGGER, "Webhook"),
    NodeType.TRIGGER_MANUAL: NodeTypeInfo(StructuralClass.TRIGGER, "Manual Trigger"),
    NodeType.ACTION_SEND_MESSAGE: NodeTypeInfo(StructuralClass.ACTION, "Send Message"),
    NodeType.ACTION_ADD_TAG: NodeTypeInfo(StructuralClass.ACTION, "Add Tag"),
    NodeType.ACTION_REMOVE_TAG: NodeTypeInfo(StructuralClass.ACTION, "Remove Tag"),
    NodeType.ACTION_ASSIGN_USER: NodeTypeInfo(StructuralClass.ACTION, "Assign User"),
    NodeType.ACTION_CHANGE_STAGE: NodeTypeInfo(StructuralClass.ACTION, "Change Stage"),
    NodeType.ACTION_UPDATE_LEAD_FIELD: NodeTypeInfo(StructuralClass.ACTION, "Update Field"),
    NodeType.ACTION_ENQUEUE_AGENT: NodeTypeInfo(StructuralClass.ACTION, "Enqueue AI Agent"),
    NodeType.ACTION_SEND_WEBHOOK: NodeTypeInfo(StructuralClass.ACTION, "Send Webhook"),
    NodeType.ACTION_ADD_TO_AUDIENCE: NodeTypeInfo(StructuralClass.ACTION, "Add to Audience"),
    NodeType.ACTION_REMOVE_FROM_AUDIENCE: NodeTypeInfo(
        StructuralClass.ACTION, "Remove from Audience"
    ),
    NodeType.ACTION_WAIT_UNTIL_TIME: NodeTypeInfo(StructuralClass.ACTION, "Wait Until Time"),
    NodeType.ACTION_INCREMENT_SCORE: NodeTypeInfo(StructuralClass.ACTION, "Increment Score"),
    NodeType.ACTION_DECREMENT_SCORE: NodeTypeInfo(StructuralClass.ACTION, "Decrement Score"),
    NodeType.CONDITION: NodeTypeInfo(StructuralClass.CONDITION, "Condition"),
    NodeType.DELAY: NodeTypeInfo(StructuralClass.DELAY, "Delay"),
    NodeType.LOOP: NodeTypeInfo(StructuralClass.LOOP, "Loop"),
    NodeType.END: NodeTypeInfo(StructuralClass.END, "End"),
}


def structural_class(node_type: NodeType) -> StructuralClass:
    """Return the structural class of a node type."""
    return NODE_CATALOG[node_type].structural_class


def label(node_type: NodeType) -> str:
    """Return the human label of a node type."""
    return NODE_CATALOG[node_type].label


def is_trigger(node_type: NodeType) -> bool:
    return structural_class(node_type) == StructuralClass.TRIGGER


def is_action(node_type: NodeType) -> bool:
    return structural_class(node_type) == StructuralClass.ACTION


def types_in_class(cls: StructuralClass) -> list[NodeType]:
    """All node types belonging to a structural class, in declaration order."""
    return [t for t, info in NODE_CATALOG.items() if info.structural_class == cls]
