"""Condition evaluation for CONDITION nodes.

Evaluation is total: unknown operators, missing fields and non-numeric
comparisons all evaluate to False instead of raising.
"""

import math
from collections.abc import Callable
from typing import Any

from src.mailflow.workflow.personalization import subscriber_field


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _greater_than(field_value: Any, compare: Any) -> bool:
    left, right = _number(field_value), _number(compare)
    return left is not None and right is not None and left > right


def _less_than(field_value: Any, compare: Any) -> bool:
    left, right = _number(field_value), _number(compare)
    return left is not None and right is not None and left < right


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda v, c: v == c,
    "not_equals": lambda v, c: v != c,
    "contains": lambda v, c: _text(c) in _text(v),
    "not_contains": lambda v, c: _text(c) not in _text(v),
    "starts_with": lambda v, c: _text(v).startswith(_text(c)),
    "ends_with": lambda v, c: _text(v).endswith(_text(c)),
    "is_empty": lambda v, _: _is_empty(v),
    "is_not_empty": lambda v, _: not _is_empty(v),
    "greater_than": _greater_than,
    "less_than": _less_than,
}


def evaluate_condition(field_value: Any, operator: str, compare_value: Any) -> bool:
    evaluate = OPERATORS.get(operator)
    if evaluate is None:
        return False
    try:
        return bool(evaluate(field_value, compare_value))
    except Exception:
        return False


def evaluate_subscriber_condition(
    subscriber: Any, field: str, operator: str, compare_value: Any
) -> bool:
    """Read ``field`` off the subscriber and evaluate it."""
    return evaluate_condition(subscriber_field(subscriber, field), operator, compare_value)
