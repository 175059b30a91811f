"""
Tagged representation of response bodies.

Bodies arrive as arbitrary decoded JSON. Converting them once into an explicit
union lets the diff walk dispatch over a closed set of variants instead of
probing Python types at every node.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class JsonNull:
    tag = "null"

    def to_plain(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class JsonBool:
    value: bool
    tag = "boolean"

    def to_plain(self) -> bool:
        return self.value


@dataclass(frozen=True, slots=True)
class JsonNumber:
    value: int | float
    tag = "number"

    def to_plain(self) -> int | float:
        return self.value


@dataclass(frozen=True, slots=True)
class JsonString:
    value: str
    tag = "string"

    def to_plain(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class JsonArray:
    items: tuple["JsonValue", ...]
    tag = "array"

    def to_plain(self) -> list[Any]:
        return [item.to_plain() for item in self.items]


@dataclass(frozen=True, slots=True)
class JsonObject:
    fields: tuple[tuple[str, "JsonValue"], ...]
    tag = "object"

    def keys(self) -> list[str]:
        return [key for key, _ in self.fields]

    def as_mapping(self) -> dict[str, "JsonValue"]:
        return dict(self.fields)

    def to_plain(self) -> dict[str, Any]:
        return {key: value.to_plain() for key, value in self.fields}


JsonValue = Union[JsonNull, JsonBool, JsonNumber, JsonString, JsonArray, JsonObject]

SCALAR_TYPES = (JsonNull, JsonBool, JsonNumber, JsonString)
CONTAINER_TYPES = (JsonArray, JsonObject)


def to_tagged(value: Any) -> JsonValue:
    if value is None:
        return JsonNull()
    # bool is a subclass of int; test it first.
    if isinstance(value, bool):
        return JsonBool(value)
    if isinstance(value, (int, float)):
        return JsonNumber(value)
    if isinstance(value, str):
        return JsonString(value)
    if isinstance(value, (list, tuple)):
        return JsonArray(tuple(to_tagged(item) for item in value))
    if isinstance(value, dict):
        return JsonObject(tuple((str(key), to_tagged(item)) for key, item in value.items()))
    raise TypeError(f"Unsupported JSON value type: {type(value).__name__}")


def is_scalar(value: JsonValue) -> bool:
    return isinstance(value, SCALAR_TYPES)


def tag_of(value: JsonValue) -> str:
    return value.tag
