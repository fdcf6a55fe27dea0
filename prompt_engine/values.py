"""Slot value model.

Slot values form a closed union of JSON-like shapes: string, number, boolean,
ordered list and string-keyed map. Values crossing a boundary are normalized with
``coerce_value`` (caller input, API responses) and rendered with ``to_text``
(template substitution). Validation dispatches on ``value_kind``.
"""

import json
import math
from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import Any, TypeAlias

SlotValue: TypeAlias = str | int | float | bool | list["SlotValue"] | dict[str, "SlotValue"]


class ValueKind(StrEnum):
    """Tag of a slot value. Names match the ``type`` validation rule vocabulary."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    LIST = "list"
    MAP = "map"


def value_kind(value: Any) -> ValueKind:
    """Classify a normalized slot value.

    Raises:
        TypeError: If the value is outside the supported union.
    """
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, int | float):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, list):
        return ValueKind.LIST
    if isinstance(value, dict):
        return ValueKind.MAP
    raise TypeError(f"Unsupported slot value type: {type(value).__name__}")


def coerce_value(raw: Any) -> SlotValue:
    """Normalize an arbitrary Python/JSON value into the slot value union.

    Tuples and other non-string sequences become lists, mappings become dicts with
    string keys. Non-finite floats are rejected since they cannot round-trip through JSON.

    Raises:
        TypeError: For None or unsupported types.
        ValueError: For NaN or infinite floats.
    """
    if raw is None:
        raise TypeError("None is not a slot value")
    if isinstance(raw, bool | int | str):
        return raw
    if isinstance(raw, float):
        if not math.isfinite(raw):
            raise ValueError(f"Non-finite number is not a slot value: {raw}")
        return raw
    if isinstance(raw, Mapping):
        return {str(key): coerce_value(item) for key, item in raw.items()}
    if isinstance(raw, Sequence) and not isinstance(raw, bytes | bytearray):
        return [coerce_value(item) for item in raw]
    raise TypeError(f"Unsupported slot value type: {type(raw).__name__}")


def is_empty(value: Any) -> bool:
    """True for values that count as "not provided": None and the empty string."""
    return value is None or value == ""


def _format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_text(value: Any) -> str:
    """Render a slot value for substitution into template text.

    Strings are returned unchanged, booleans as ``true``/``false``, integral floats
    without a trailing ``.0``, lists as comma-separated items and maps as compact
    JSON with sorted keys.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return _format_number(value)
    if isinstance(value, str):
        return value
    if isinstance(value, list | tuple):
        return ", ".join(to_text(item) for item in value)
    if isinstance(value, Mapping):
        return json.dumps(value, sort_keys=True, ensure_ascii=False, separators=(",", ":"), default=str)
    return str(value)


def to_number(value: Any) -> int | float:
    """Convert a value to a number, keeping integers integral.

    Raises:
        ValueError: If the value has no numeric interpretation.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int | float):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            number = float(text)
            if not math.isfinite(number):
                raise ValueError(f"Not a finite number: {value!r}") from None
            return number
    raise ValueError(f"Cannot convert {type(value).__name__} to a number")


__all__ = ["SlotValue", "ValueKind", "coerce_value", "is_empty", "to_number", "to_text", "value_kind"]
