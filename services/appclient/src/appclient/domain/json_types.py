from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TypeAlias, TypeGuard

JsonScalar: TypeAlias = str | int | float | bool | None
JsonValue: TypeAlias = JsonScalar | dict[str, "JsonValue"] | list["JsonValue"]
JsonDict: TypeAlias = dict[str, JsonValue]


def _is_mapping(value: object) -> TypeGuard[Mapping[object, object]]:
    return isinstance(value, Mapping)


def _is_sequence(value: object) -> TypeGuard[Sequence[object]]:
    return isinstance(value, (list, tuple))


def coerce_json_value(value: object) -> JsonValue:
    if _is_mapping(value):
        return {str(k): coerce_json_value(v) for k, v in value.items()}
    if _is_sequence(value):
        return [coerce_json_value(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def as_json_dict(value: object) -> JsonDict:
    if not _is_mapping(value):
        return {}
    return {str(k): coerce_json_value(v) for k, v in value.items()}
