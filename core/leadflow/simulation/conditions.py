"""
Condition evaluation against a lead's fields.

Comparisons are strict: ordering operators only compare numbers with
numbers and ``contains`` only looks inside strings. A type mismatch makes
the condition false rather than raising, so a lead with a missing or
non-numeric score simply takes the false branch.
"""

import logging
from collections.abc import Mapping
from typing import Any

from leadflow.graph.node import ConditionConfig, ConditionOperator

logger = logging.getLogger(__name__)

_MISSING = object()


def get_nested_value(data: Mapping[str, Any], path: str) -> Any:
    """
    Look up a dot-separated path (``"company.size"``) in nested mappings.

    Returns None when any segment is missing or not a mapping.
    """
    current: Any = data
    for key in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(key, _MISSING)
        if current is _MISSING:
            return None
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def evaluate_condition(config: ConditionConfig, data: Mapping[str, Any]) -> bool:
    """
    Evaluate ``field operator value`` against lead data.

    Args:
        config: Parsed condition config
        data: The lead's fields

    Returns:
        Whether the condition holds
    """
    actual = get_nested_value(data, config.field)
    expected = config.value
    op = config.operator

    if op == ConditionOperator.EQ:
        result = actual == expected
    elif op == ConditionOperator.NE:
        result = actual != expected
    elif op in (
        ConditionOperator.GT,
        ConditionOperator.GTE,
        ConditionOperator.LT,
        ConditionOperator.LTE,
    ):
        if not (_is_number(actual) and _is_number(expected)):
            result = False
        elif op == ConditionOperator.GT:
            result = actual > expected
        elif op == ConditionOperator.GTE:
            result = actual >= expected
        elif op == ConditionOperator.LT:
            result = actual < expected
        else:
            result = actual <= expected
    elif op == ConditionOperator.CONTAINS:
        result = isinstance(actual, str) and isinstance(expected, str) and expected in actual
    elif op == ConditionOperator.NOT_CONTAINS:
        result = isinstance(actual, str) and isinstance(expected, str) and expected not in actual
    elif op == ConditionOperator.IS_EMPTY:
        result = _is_empty(actual)
    else:
        result = not _is_empty(actual)

    logger.debug(f"Condition {config.field} {op} {expected!r} on {actual!r} -> {result}")
    return result
