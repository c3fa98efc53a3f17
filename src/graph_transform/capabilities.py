# graph_transform/capabilities.py
from __future__ import annotations

import inspect
import types
from collections.abc import Mapping
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from graph_transform.contracts import ContainerKind

PRIMITIVE_TARGET_TYPES: tuple[type, ...] = (str, float, bool, int)

# Values of these types are scalars even though some of them carry a ``__dict__``.
_SCALAR_TYPES: tuple[type, ...] = (
    str,
    bytes,
    bytearray,
    memoryview,
    int,
    float,
    complex,
    bool,
    Decimal,
    date,
    time,
    timedelta,
    UUID,
    Enum,
)

_CALLABLE_TYPES: tuple[type, ...] = (
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.ModuleType,
)


def classify_container_kind(subject: Any) -> ContainerKind:
    """
    Classify either a declared constructor or a runtime value.

    Runtime checks use ``type()`` rather than ``isinstance`` so an object that
    forges ``__class__`` is never mistaken for a list.
    """
    if isinstance(subject, type):
        cls = subject
        if issubclass(cls, (list, tuple)):
            return ContainerKind.ARRAY
        if issubclass(cls, (set, frozenset)):
            return ContainerKind.SET
        if issubclass(cls, Mapping):
            return ContainerKind.MAP
        if cls is object:
            return ContainerKind.PLAIN_OBJECT
        return ContainerKind.NONE

    cls = type(subject)
    if issubclass(cls, (list, tuple)):
        return ContainerKind.ARRAY
    if issubclass(cls, (set, frozenset)):
        return ContainerKind.SET
    if cls is dict:
        return ContainerKind.PLAIN_OBJECT
    if issubclass(cls, Mapping):
        return ContainerKind.MAP
    return ContainerKind.NONE


def is_array_like(value: Any) -> bool:
    return not isinstance(value, type) and classify_container_kind(value) in (ContainerKind.ARRAY, ContainerKind.SET)


def is_map_value(value: Any) -> bool:
    return not isinstance(value, type) and classify_container_kind(value) is ContainerKind.MAP


def is_primitive_target_type(target: Any) -> bool:
    return any(target is t for t in PRIMITIVE_TARGET_TYPES)


def is_pending_async_value(value: Any) -> bool:
    return inspect.isawaitable(value)


def has_buffer_support() -> bool:
    return True


def is_buffer_type(target: Any) -> bool:
    return isinstance(target, type) and issubclass(target, (bytes, bytearray))


def is_buffer_value(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray, memoryview))


def is_date_type(target: Any) -> bool:
    return target is datetime


def is_disguised_array(value: Any) -> bool:
    claimed = getattr(value, "__class__", None)
    if not isinstance(claimed, type) or claimed is type(value):
        return False
    return issubclass(claimed, (list, tuple, set, frozenset)) and not is_array_like(value)


def is_object_like(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, Mapping):
        return True
    if isinstance(value, _SCALAR_TYPES) or isinstance(value, type) or isinstance(value, _CALLABLE_TYPES):
        return False
    return hasattr(value, "__dict__") or bool(getattr(type(value), "__slots__", ()))


__all__ = [
    "PRIMITIVE_TARGET_TYPES",
    "classify_container_kind",
    "has_buffer_support",
    "is_array_like",
    "is_buffer_type",
    "is_buffer_value",
    "is_date_type",
    "is_disguised_array",
    "is_map_value",
    "is_object_like",
    "is_pending_async_value",
    "is_primitive_target_type",
]
