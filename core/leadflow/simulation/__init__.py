"""Side-effect-free simulation of automation graphs."""

from leadflow.simulation.conditions import evaluate_condition, get_nested_value
from leadflow.simulation.executor import MAX_STEPS, DryRunExecutor, describe_action

__all__ = [
    "DryRunExecutor",
    "MAX_STEPS",
    "describe_action",
    "evaluate_condition",
    "get_nested_value",
]
