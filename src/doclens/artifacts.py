"""JSON artifact helpers shared by proposals, drift reports and validation.

Artifacts are declared in terms of JSON-compatible aliases so every report
that leaves the process has an explicit value space.
"""

from __future__ import annotations

import json
from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, TypeAlias

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
JSONArray: TypeAlias = list[JSONValue]


def to_plain_json_value(value: Any) -> JSONValue:
    as_json = getattr(value, "as_json_dict", None)
    if callable(as_json):
        return to_plain_json_value(as_json())
    if isinstance(value, Enum):
        return to_plain_json_value(value.value)
    if is_dataclass(value) and not isinstance(value, type):
        return {
            spec.name: to_plain_json_value(getattr(value, spec.name))
            for spec in fields(value)
        }
    if isinstance(value, Mapping):
        return {str(key): to_plain_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return [to_plain_json_value(item) for item in sorted(value, key=repr)]
    if isinstance(value, Path):
        return value.as_posix()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def dumps(value: Any) -> str:
    return json.dumps(to_plain_json_value(value), indent=2, sort_keys=False) + "\n"


def write_json_artifact(value: Any, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dumps(value), encoding="utf-8")
    return path
