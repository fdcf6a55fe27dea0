"""Relational and string operators for conditional slots and filter transformations."""

from collections.abc import Mapping, Sequence
from typing import Any

from .types import ConditionOperator, ConditionRule


def _comparable(left: Any, right: Any) -> bool:
    numbers = (int, float)
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    return (isinstance(left, numbers) and isinstance(right, numbers)) or (isinstance(left, str) and isinstance(right, str))


def compare(operator: ConditionOperator, field_value: Any, value: Any) -> bool:
    """Apply ``operator`` to a context value and a rule value.

    Ordering operators only compare number/number or string/string pairs and are
    False otherwise. String operators are False for non-string field values, except
    ``contains`` which also tests list membership.
    """
    match operator:
        case ConditionOperator.EQ:
            return field_value == value
        case ConditionOperator.NE:
            return field_value != value
        case ConditionOperator.GT:
            return _comparable(field_value, value) and field_value > value
        case ConditionOperator.LT:
            return _comparable(field_value, value) and field_value < value
        case ConditionOperator.GTE:
            return _comparable(field_value, value) and field_value >= value
        case ConditionOperator.LTE:
            return _comparable(field_value, value) and field_value <= value
        case ConditionOperator.IN:
            return isinstance(value, Sequence) and not isinstance(value, str) and field_value in value
        case ConditionOperator.CONTAINS:
            if isinstance(field_value, str):
                return isinstance(value, str) and value in field_value
            return isinstance(field_value, list) and value in field_value
        case ConditionOperator.STARTS_WITH:
            return isinstance(field_value, str) and isinstance(value, str) and field_value.startswith(value)
        case ConditionOperator.ENDS_WITH:
            return isinstance(field_value, str) and isinstance(value, str) and field_value.endswith(value)
    return False


def matches(rule: ConditionRule, context: Mapping[str, Any]) -> bool:
    """Evaluate one rule against the merged caller + resolved context."""
    return compare(rule.operator, context.get(rule.field), rule.value)


def first_match(rules: Sequence[ConditionRule], context: Mapping[str, Any]) -> ConditionRule | None:
    """Return the first rule that matches, in declaration order."""
    return next((rule for rule in rules if matches(rule, context)), None)


__all__ = ["compare", "first_match", "matches"]
