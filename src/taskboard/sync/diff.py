# src/taskboard/sync/diff.py

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import asdict, is_dataclass
from typing import Any


def serialize_value(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def as_fields(value: Any) -> dict[str, Any]:
    """Dataclass or mapping -> plain dict of fields."""
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, Mapping):
        return dict(value)
    raise TypeError(f"Cannot derive fields from {type(value).__name__}")


def field_diff(before: Mapping[str, Any], after: Mapping[str, Any]) -> dict[str, Any]:
    """
    Fields of `after` whose serialized value differs from `before`.

    Keys only present in `before` are ignored (partial updates never delete).
    """
    out: dict[str, Any] = {}
    for key, value in after.items():
        if key not in before or serialize_value(before[key]) != serialize_value(value):
            out[key] = value
    return out


def same_fields(a: Mapping[str, Any], b: Mapping[str, Any]) -> bool:
    return serialize_value(dict(a)) == serialize_value(dict(b))
