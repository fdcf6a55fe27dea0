"""Value transformations and validation rules applied after a slot resolves.

Transformations are pure value-to-value functions. Any failure (bad regex, value
that cannot become a number, rule violation) raises ValidationFailedError, which the
resolver treats exactly like a resolution failure.
"""

import re
from collections.abc import Mapping, Sequence
from datetime import UTC, date, datetime
from typing import Any

from prompt_engine.exceptions import ValidationFailedError
from prompt_engine.values import ValueKind, is_empty, to_number, to_text, value_kind

from .conditions import compare
from .types import ConditionOperator, SlotDefinition, Transformation, TransformationRule, TransformationType, ValidationRule, ValidationRuleType

_TYPE_ALIASES = {"object": ValueKind.MAP, "array": ValueKind.LIST, "dict": ValueKind.MAP, "str": ValueKind.STRING}


# ---------------------------------------------------------------------------
# Transformations
# ---------------------------------------------------------------------------


def _to_date(value: Any, fmt: str | None) -> str:
    if isinstance(value, int | float) and not isinstance(value, bool):
        parsed: date = datetime.fromtimestamp(value, tz=UTC).date()
    else:
        parsed = datetime.fromisoformat(to_text(value).strip()).date()
    return parsed.strftime(fmt) if fmt else parsed.isoformat()


def _format(value: Any, rule: TransformationRule) -> Any:
    match rule.type:
        case "string":
            return to_text(value)
        case "number":
            return to_number(value)
        case "date":
            return _to_date(value, rule.config.get("format"))
        case "uppercase":
            return to_text(value).upper()
        case "lowercase":
            return to_text(value).lower()
        case "trim":
            return to_text(value).strip()
        case "replace":
            return re.sub(rule.config.get("pattern", ""), rule.config.get("replacement", ""), to_text(value))
    return value


def _keep(item: Any, rules: Sequence[TransformationRule]) -> bool:
    return all(compare(ConditionOperator(rule.config.get("operator", "eq")), item, rule.config.get("value")) for rule in rules)


def _filter(value: Any, rules: Sequence[TransformationRule]) -> Any:
    if isinstance(value, list):
        return [item for item in value if _keep(item, rules)]
    if isinstance(value, str):
        return "\n".join(line for line in value.splitlines() if _keep(line, rules))
    return value


def _map_one(value: Any, rule: TransformationRule) -> Any:
    mapping: Mapping[str, Any] = rule.config.get("mapping", {})
    key = to_text(value)
    if key in mapping:
        return mapping[key]
    return rule.config["default"] if "default" in rule.config else value


def _map(value: Any, rule: TransformationRule) -> Any:
    if isinstance(value, list):
        return [_map_one(item, rule) for item in value]
    return _map_one(value, rule)


def apply_transformation(slot_id: str, value: Any, transformation: Transformation) -> Any:
    """Apply every rule of ``transformation`` to ``value`` in ``order``.

    Raises:
        ValidationFailedError: If a rule cannot be applied to the value.
    """
    rules = sorted(transformation.rules, key=lambda rule: rule.order)
    try:
        match transformation.type:
            case TransformationType.FORMAT:
                for rule in rules:
                    value = _format(value, rule)
            case TransformationType.FILTER:
                value = _filter(value, rules)
            case TransformationType.MAP:
                for rule in rules:
                    value = _map(value, rule)
    except (ValueError, TypeError, OverflowError, re.error) as e:
        raise ValidationFailedError(slot_id, f"Slot '{slot_id}' transformation '{transformation.type}' failed: {e}") from e
    return value


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _kind_matches(value: Any, expected: Any) -> bool:
    try:
        kind = value_kind(value)
    except TypeError:
        return False
    name = str(expected).lower()
    return kind == _TYPE_ALIASES.get(name, name)


def _length_ok(value: Any, limit: Any) -> bool:
    if not isinstance(value, str | list):
        return False
    if isinstance(limit, Mapping):
        return limit.get("min", 0) <= len(value) <= limit.get("max", len(value))
    return len(value) <= int(limit)


def _range_ok(value: Any, bounds: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, int | float) or not isinstance(bounds, Mapping):
        return False
    low, high = bounds.get("min"), bounds.get("max")
    return (low is None or value >= low) and (high is None or value <= high)


def check_rule(value: Any, rule: ValidationRule) -> bool:
    """Return True when ``value`` satisfies ``rule``."""
    match rule.type:
        case ValidationRuleType.REQUIRED:
            return not is_empty(value)
        case ValidationRuleType.TYPE:
            return _kind_matches(value, rule.value)
        case ValidationRuleType.LENGTH:
            return _length_ok(value, rule.value)
        case ValidationRuleType.PATTERN:
            return isinstance(value, str) and re.search(str(rule.value), value) is not None
        case ValidationRuleType.RANGE:
            return _range_ok(value, rule.value)
        case ValidationRuleType.CUSTOM:
            return rule.validator(value) if rule.validator is not None else True
    return True


def rule_violations(slot: SlotDefinition, value: Any) -> list[str]:
    """Return one message per validation rule of ``slot`` that ``value`` violates."""
    violations: list[str] = []
    for rule in slot.validation:
        try:
            ok = check_rule(value, rule)
        except (re.error, ValueError, TypeError) as e:
            violations.append(f"Slot '{slot.label}' rule '{rule.type}' could not be checked: {e}")
            continue
        if not ok:
            violations.append(f"Slot '{slot.label}' failed validation: {rule.message or rule.type.value}")
    return violations


def validate_value(slot: SlotDefinition, value: Any) -> None:
    """Raise ValidationFailedError if ``value`` violates any rule of ``slot``."""
    violations = rule_violations(slot, value)
    if violations:
        raise ValidationFailedError(slot.id, "; ".join(violations))


__all__ = ["apply_transformation", "check_rule", "rule_violations", "validate_value"]
