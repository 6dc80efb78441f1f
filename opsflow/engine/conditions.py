"""Condition evaluation for opsflow.

Evaluates field-level predicates against arbitrary nested attribute maps.
Shared by task generation and grey area detection. Pure and side-effect free.

Type checks are explicit: numeric operators only accept real numbers and
never coerce strings, so "10" is not greater than 5.
"""

import logging
import re
from numbers import Real
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from opsflow.models.condition import Condition, ConditionLogic

logger = logging.getLogger(__name__)


class _Missing:
    """Sentinel for a path that does not resolve."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def get_nested_value(data: Any, path: str, default: Any = MISSING) -> Any:
    """Resolve a dot-separated path inside nested mappings, lists or objects.

    Args:
        data: Root mapping (or pydantic model / object)
        path: Dotted path, e.g. ``"amount.amount"``; list indexes are numeric parts
        default: Returned when any segment is missing

    Returns:
        The resolved value, or ``default``
    """
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return default
            current = current[index]
        elif current is not None and not isinstance(current, (str, bytes)) and hasattr(current, part):
            current = getattr(current, part)
        else:
            return default
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _numeric(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Condition], bool]:
    def check(value: Any, condition: Condition) -> bool:
        return _is_number(value) and _is_number(condition.value) and compare(value, condition.value)
    return check


def _in(value: Any, condition: Condition) -> bool:
    return isinstance(condition.value, (list, tuple, set)) and value in condition.value


def _nin(value: Any, condition: Condition) -> bool:
    return isinstance(condition.value, (list, tuple, set)) and value not in condition.value


def _contains(value: Any, condition: Condition) -> bool:
    if isinstance(value, str):
        return str(condition.value) in value
    if isinstance(value, (list, tuple, set)):
        return condition.value in value
    return False


def _regex(value: Any, condition: Condition) -> bool:
    if not isinstance(value, str):
        return False
    try:
        return re.search(str(condition.value), value) is not None
    except re.error as e:
        logger.warning(f"Invalid regex in condition on {condition.field}: {e}")
        return False


def _between(value: Any, condition: Condition) -> bool:
    upper = condition.value_end if condition.value_end is not None else condition.value
    if not (_is_number(value) and _is_number(condition.value) and _is_number(upper)):
        return False
    return condition.value <= value <= upper


def _exists(value: Any, condition: Condition) -> bool:
    # Only reached for resolved values; "exists: false" expects absence.
    return bool(condition.value)


OPERATORS: Dict[str, Callable[[Any, Condition], bool]] = {
    "eq": lambda value, condition: value == condition.value,
    "ne": lambda value, condition: value != condition.value,
    "gt": _numeric(lambda a, b: a > b),
    "gte": _numeric(lambda a, b: a >= b),
    "lt": _numeric(lambda a, b: a < b),
    "lte": _numeric(lambda a, b: a <= b),
    "in": _in,
    "nin": _nin,
    "contains": _contains,
    "regex": _regex,
    "between": _between,
    "exists": _exists,
}


def evaluate_condition(condition: Condition, data: Any) -> bool:
    """Evaluate one condition against an attribute map.

    A path that does not resolve fails every operator except ``eq`` against
    ``None`` and ``exists`` with a falsy expectation.
    """
    value = get_nested_value(data, condition.field)
    operator = condition.operator

    if value is MISSING:
        if operator == "eq":
            return condition.value is None
        if operator == "exists":
            return not condition.value
        return False

    check = OPERATORS.get(operator)
    if check is None:
        logger.warning(f"Unknown condition operator: {operator}")
        return False
    return check(value, condition)


def evaluate_conditions(
    conditions: Optional[List[Union[Condition, dict]]],
    logic: Union[ConditionLogic, str],
    data: Any,
) -> bool:
    """Evaluate a list of conditions combined with AND/OR.

    An empty (or missing) list evaluates to False: a rule with no conditions
    never matches conditionally.

    Args:
        conditions: Conditions (models or plain dicts)
        logic: ``"and"`` or ``"or"``
        data: Attribute map to test

    Returns:
        True if the combination holds
    """
    if not conditions:
        return False

    parsed = [c if isinstance(c, Condition) else Condition(**c) for c in conditions]
    results = (evaluate_condition(c, data) for c in parsed)
    if ConditionLogic(logic) == ConditionLogic.OR:
        return any(results)
    return all(results)
