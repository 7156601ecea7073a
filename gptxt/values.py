"""Tagged value types for results captured from executed scripts."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Union


class UnsupportedResultType(TypeError):
    """Raised when a script result cannot be represented as a ResultValue."""

    def __init__(self, type_name: str) -> None:
        super().__init__(f"unsupported result type: {type_name}")
        self.type_name = type_name


@dataclass(frozen=True)
class TextValue:
    text: str


@dataclass(frozen=True)
class NumberValue:
    number: Union[int, float]


@dataclass(frozen=True)
class BoolValue:
    flag: bool


@dataclass(frozen=True)
class NullValue:
    pass


@dataclass(frozen=True)
class ListValue:
    items: tuple


@dataclass(frozen=True)
class MapValue:
    """Ordered mapping; keys are always text, in insertion order."""

    entries: tuple

    def keys(self) -> list[str]:
        return [key for key, _ in self.entries]


ResultValue = Union[TextValue, NumberValue, BoolValue, NullValue, ListValue, MapValue]


def _map_key(key: Any) -> str:
    # Same key coercion json.dumps applies.
    if isinstance(key, str):
        return key
    if key is None:
        return "null"
    if isinstance(key, bool):
        return "true" if key else "false"
    if isinstance(key, int):
        return str(key)
    if isinstance(key, float):
        if math.isnan(key):
            return "NaN"
        if math.isinf(key):
            return "Infinity" if key > 0 else "-Infinity"
        return repr(key)
    raise UnsupportedResultType(f"dict key {type(key).__name__}")


def from_python(obj: Any) -> ResultValue:
    """Convert a script's result object into a ResultValue.

    Only plain data survives the conversion: str, bool, int, float, None,
    list/tuple and dict (recursively). Subclasses of these builtins are accepted
    and normalized to the base type. Everything else (functions, sets, custom
    objects, ...) raises UnsupportedResultType.
    """

    if obj is None:
        return NullValue()
    if isinstance(obj, bool):
        return BoolValue(bool(obj))
    if isinstance(obj, int):
        return NumberValue(int(obj))
    if isinstance(obj, float):
        return NumberValue(float(obj))
    if isinstance(obj, str):
        return TextValue(str(obj))
    if isinstance(obj, (list, tuple)):
        return ListValue(tuple(from_python(item) for item in obj))
    if isinstance(obj, dict):
        return MapValue(tuple((_map_key(key), from_python(value)) for key, value in obj.items()))
    raise UnsupportedResultType(type(obj).__name__)


def to_python(value: ResultValue) -> Any:
    """Convert a ResultValue back into JSON-compatible Python objects."""

    if isinstance(value, TextValue):
        return value.text
    if isinstance(value, NumberValue):
        return value.number
    if isinstance(value, BoolValue):
        return value.flag
    if isinstance(value, NullValue):
        return None
    if isinstance(value, ListValue):
        return [to_python(item) for item in value.items]
    if isinstance(value, MapValue):
        return {key: to_python(item) for key, item in value.entries}
    raise TypeError(f"Not a ResultValue: {type(value).__name__}")
