"""Field paths, write transforms and Firestore value ordering.

Write sentinels are the objects exported by ``google.cloud.firestore``
(``SERVER_TIMESTAMP``, ``DELETE_FIELD``, ``Increment`` ...), so code written
against the real client can hand them to the emulator unchanged.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from google.cloud.firestore_v1 import GeoPoint
from google.cloud.firestore_v1.field_path import FieldPath
from google.cloud.firestore_v1.transforms import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    Increment,
    Maximum,
    Minimum,
)

from firestore_double.errors import InvalidArgumentError
from firestore_double.paths import PathReference


FieldParts = tuple[str, ...]

_MISSING = object()

# Firestore cross-type ordering.
TYPE_NULL = 0
TYPE_BOOLEAN = 1
TYPE_NUMBER = 2
TYPE_TIMESTAMP = 3
TYPE_STRING = 4
TYPE_BYTES = 5
TYPE_REFERENCE = 6
TYPE_GEO_POINT = 7
TYPE_ARRAY = 8
TYPE_MAP = 9
TYPE_OTHER = 10


def parse_field_path(field_path: str | FieldPath) -> FieldParts:
    """Split a dotted field path; backticks quote segments containing dots."""

    if isinstance(field_path, FieldPath):
        return tuple(field_path.parts)
    if not isinstance(field_path, str) or not field_path:
        raise InvalidArgumentError(f"Field path must be a non-empty string: {field_path!r}")

    parts: list[str] = []
    current: list[str] = []
    quoted = False
    closed_quote = False
    for char in field_path:
        if char == "`":
            quoted = not quoted
            closed_quote = not quoted
            continue
        if char == "." and not quoted:
            if not current and not closed_quote:
                raise InvalidArgumentError(f"Field path has an empty segment: {field_path}")
            parts.append("".join(current))
            current = []
            closed_quote = False
            continue
        current.append(char)
    if quoted:
        raise InvalidArgumentError(f"Field path has an unterminated backtick: {field_path}")
    if not current and not closed_quote:
        raise InvalidArgumentError(f"Field path has an empty segment: {field_path}")
    parts.append("".join(current))
    return tuple(parts)


def copy_value(value: Any) -> Any:
    """Copy maps and arrays; scalars and references are shared."""

    if isinstance(value, Mapping):
        return {key: copy_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [copy_value(item) for item in value]
    return value


def lookup(data: Mapping[str, Any], parts: FieldParts, default: Any = _MISSING) -> Any:
    current: Any = data
    for part in parts:
        if not isinstance(current, Mapping) or part not in current:
            if default is _MISSING:
                raise KeyError(".".join(parts))
            return default
        current = current[part]
    return current


def has_field(data: Mapping[str, Any], parts: FieldParts) -> bool:
    try:
        lookup(data, parts)
    except KeyError:
        return False
    return True


def contains_delete_sentinel(value: Any) -> bool:
    if value is DELETE_FIELD:
        return True
    if isinstance(value, Mapping):
        return any(contains_delete_sentinel(item) for item in value.values())
    return False


def merge_into(target: dict[str, Any], data: Mapping[str, Any], now: datetime) -> None:
    """Deep-merge ``data`` into ``target``, resolving write transforms."""

    for key, value in data.items():
        if isinstance(value, Mapping) and value:
            child = target.get(key)
            if not isinstance(child, dict):
                child = {}
                target[key] = child
            merge_into(child, value, now)
        else:
            assign(target, key, value, now)


def set_at(target: dict[str, Any], parts: FieldParts, value: Any, now: datetime) -> None:
    """Replace the value at a field path, creating intermediate maps."""

    current = target
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            if value is DELETE_FIELD:
                return
            child = {}
            current[part] = child
        current = child
    assign(current, parts[-1], value, now)


def assign(target: dict[str, Any], key: str, value: Any, now: datetime) -> None:
    if value is DELETE_FIELD:
        target.pop(key, None)
        return
    target[key] = resolve_transform(value, target.get(key), now)


def resolve_transform(value: Any, current: Any, now: datetime) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, ArrayUnion):
        merged = copy_value(current) if isinstance(current, list) else []
        for item in value.values:
            if not any(values_equal(item, existing) for existing in merged):
                merged.append(copy_value(item))
        return merged
    if isinstance(value, ArrayRemove):
        if not isinstance(current, list):
            return []
        return [
            copy_value(existing)
            for existing in current
            if not any(values_equal(existing, item) for item in value.values)
        ]
    if isinstance(value, Increment):
        if is_number(current):
            return current + value.value
        return value.value
    if isinstance(value, Maximum):
        if is_number(current):
            return max(current, value.value)
        return value.value
    if isinstance(value, Minimum):
        if is_number(current):
            return min(current, value.value)
        return value.value
    if isinstance(value, Mapping):
        return {
            key: resolve_transform(item, None, now)
            for key, item in value.items()
            if item is not DELETE_FIELD
        }
    if isinstance(value, (list, tuple)):
        return [copy_value(item) for item in value]
    return value


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def type_rank(value: Any) -> int:
    if value is None:
        return TYPE_NULL
    if isinstance(value, bool):
        return TYPE_BOOLEAN
    if is_number(value):
        return TYPE_NUMBER
    if isinstance(value, datetime):
        return TYPE_TIMESTAMP
    if isinstance(value, str):
        return TYPE_STRING
    if isinstance(value, (bytes, bytearray)):
        return TYPE_BYTES
    if isinstance(value, PathReference):
        return TYPE_REFERENCE
    if isinstance(value, GeoPoint):
        return TYPE_GEO_POINT
    if isinstance(value, (list, tuple)):
        return TYPE_ARRAY
    if isinstance(value, Mapping):
        return TYPE_MAP
    return TYPE_OTHER


def compare_values(left: Any, right: Any) -> int:
    """Three-way comparison using Firestore's cross-type ordering."""

    left_rank = type_rank(left)
    right_rank = type_rank(right)
    if left_rank != right_rank:
        return -1 if left_rank < right_rank else 1

    if left_rank == TYPE_NULL:
        return 0
    if left_rank == TYPE_TIMESTAMP:
        return _cmp(_as_aware(left), _as_aware(right))
    if left_rank == TYPE_REFERENCE:
        return _cmp(left._path, right._path)
    if left_rank == TYPE_GEO_POINT:
        return _cmp((left.latitude, left.longitude), (right.latitude, right.longitude))
    if left_rank == TYPE_ARRAY:
        for left_item, right_item in zip(left, right):
            result = compare_values(left_item, right_item)
            if result != 0:
                return result
        return _cmp(len(left), len(right))
    if left_rank == TYPE_MAP:
        left_items = sorted(left.items())
        right_items = sorted(right.items())
        for (left_key, left_item), (right_key, right_item) in zip(left_items, right_items):
            if left_key != right_key:
                return _cmp(left_key, right_key)
            result = compare_values(left_item, right_item)
            if result != 0:
                return result
        return _cmp(len(left_items), len(right_items))
    if left_rank == TYPE_OTHER:
        if left == right:
            return 0
        return _cmp(repr(left), repr(right))
    return _cmp(left, right)


def values_equal(left: Any, right: Any) -> bool:
    return type_rank(left) == type_rank(right) and compare_values(left, right) == 0


def same_type(left: Any, right: Any) -> bool:
    return type_rank(left) == type_rank(right)


def _cmp(left: Any, right: Any) -> int:
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
