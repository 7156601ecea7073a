"""Render captured result values as plain text or JSON."""

from __future__ import annotations

import json

from gptxt.values import (
    BoolValue,
    ListValue,
    MapValue,
    NullValue,
    NumberValue,
    ResultValue,
    TextValue,
    to_python,
)


def _scalar_text(value: ResultValue) -> str:
    if isinstance(value, TextValue):
        return value.text
    if isinstance(value, (NumberValue, BoolValue, NullValue)):
        return str(to_python(value))
    return json.dumps(to_python(value), ensure_ascii=False, separators=(",", ":"))


def format_plain(value: ResultValue) -> str:
    """Plain text rendering: text as-is, one line per list item, maps as JSON."""

    if isinstance(value, ListValue):
        return "\n".join(_scalar_text(item) for item in value.items)
    if isinstance(value, MapValue):
        return json.dumps(to_python(value), ensure_ascii=False, indent=2)
    return _scalar_text(value)


def format_json(value: ResultValue, one_line: bool = False) -> str:
    payload = to_python(value)
    if one_line:
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return json.dumps(payload, ensure_ascii=False, indent=2)
