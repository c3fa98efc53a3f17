# graph_transform/resolution.py
from __future__ import annotations

import inspect
import logging
import types
import weakref
from collections import abc
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Annotated, Any, Optional, Union, get_args, get_origin

from graph_transform.capabilities import classify_container_kind
from graph_transform.contracts import (
    ContainerKind,
    Discriminator,
    ExposeRule,
    Strategy,
    TransformDirection,
    TransformOptions,
    TransformRule,
)
from graph_transform.metadata import MetadataRegistry

logger = logging.getLogger(__name__)

_ABSTRACT_CONTAINERS: dict[Any, type] = {
    abc.Iterable: list,
    abc.Collection: list,
    abc.Sequence: list,
    abc.MutableSequence: list,
    abc.Set: set,
    abc.MutableSet: set,
    abc.Mapping: dict,
    abc.MutableMapping: dict,
}

_CONTAINER_KINDS = (ContainerKind.ARRAY, ContainerKind.SET, ContainerKind.MAP)

# Annotations evaluated at registration, when the defining scope was still visible.
_resolved_annotations: weakref.WeakKeyDictionary[type, dict[str, Any]] = weakref.WeakKeyDictionary()


@dataclass(frozen=True)
class FieldKeys:
    internal: str
    external: str


@dataclass(frozen=True)
class ReflectedType:
    """Runtime reading of an annotation: the class, its container kind, its element type."""

    type: Any = None
    container: Optional[type] = None
    element: Any = None


def as_model(target: Any) -> Optional[type]:
    return target if isinstance(target, type) else None


# ------------------------------------------------------------------------------
# Annotations
# ------------------------------------------------------------------------------


def unwrap_annotation(annotation: Any) -> ReflectedType:
    tp = annotation
    if get_origin(tp) is Annotated:
        tp = get_args(tp)[0]
    if tp is Any or tp is object:
        return ReflectedType()

    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in get_args(tp) if arg is not type(None)]
        if len(args) == 1:
            return unwrap_annotation(args[0])
        return ReflectedType()

    if origin is not None:
        origin = _ABSTRACT_CONTAINERS.get(origin, origin)
        if not isinstance(origin, type):
            return ReflectedType()
        kind = classify_container_kind(origin)
        if kind not in _CONTAINER_KINDS:
            return ReflectedType(type=origin)
        args = [arg for arg in get_args(tp) if arg is not Ellipsis]
        element_annotation = None
        if args:
            element_annotation = args[-1] if kind is ContainerKind.MAP else args[0]
        element = unwrap_annotation(element_annotation).type if element_annotation is not None else None
        return ReflectedType(type=origin, container=origin, element=element)

    tp = _ABSTRACT_CONTAINERS.get(tp, tp)
    if isinstance(tp, type):
        if classify_container_kind(tp) in _CONTAINER_KINDS:
            return ReflectedType(type=tp, container=tp)
        return ReflectedType(type=tp)
    return ReflectedType()


def reflect_field_type(model: Optional[type], field_name: str) -> ReflectedType:
    """Best-effort type of ``model.field_name`` from the class annotations along the MRO."""
    if model is None:
        return ReflectedType()
    for owner in model.__mro__:
        annotations = _resolved_annotations.get(owner)
        if annotations is None:
            try:
                annotations = inspect.get_annotations(
                    owner, eval_str=True, locals={**vars(owner), owner.__name__: owner}
                )
            except (NameError, AttributeError, SyntaxError, TypeError) as exc:
                logger.debug("cannot evaluate annotations of %s: %s", owner.__name__, exc)
                continue
        if field_name in annotations:
            return unwrap_annotation(annotations[field_name])
    return ReflectedType()


def remember_annotations(model: type, annotations: Mapping[str, Any]) -> None:
    _resolved_annotations[model] = dict(annotations)


# ------------------------------------------------------------------------------
# Keys
# ------------------------------------------------------------------------------


def own_keys(value: Any) -> list[Any]:
    if isinstance(value, Mapping):
        return list(value.keys())
    keys: list[str] = list(vars(value)) if hasattr(value, "__dict__") else []
    for klass in type(value).__mro__:
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for slot in slots:
            if not slot.startswith("__") and slot not in keys and hasattr(value, slot):
                keys.append(slot)
    return keys


def resolve_field_key_mapping(
    registry: MetadataRegistry,
    raw_key: str,
    target_type: Any,
    ignore_decorators: bool,
    direction: TransformDirection,
) -> FieldKeys:
    model = as_model(target_type)
    internal = raw_key
    external = raw_key
    if ignore_decorators or model is None:
        return FieldKeys(internal, external)

    if direction is TransformDirection.PLAIN_TO_INSTANCE:
        rule = registry.find_expose_rule_by_renamed_name(model, raw_key)
        if rule is not None and rule.field_name is not None:
            internal = rule.field_name
            external = rule.field_name
    else:
        rule = registry.find_expose_rule(model, raw_key)
        if rule is not None and rule.options.name:
            external = rule.options.name
    return FieldKeys(internal, external)


def check_version(since: Optional[float], until: Optional[float], version: float) -> bool:
    if since and version < since:
        return False
    if until and version >= until:
        return False
    return True


def check_groups(declared: Optional[Sequence[str]], requested: Sequence[str]) -> bool:
    if not declared:
        return True
    return any(group in requested for group in declared)


def _expose_rule_for_key(
    registry: MetadataRegistry, model: type, key: str, direction: TransformDirection
) -> Optional[ExposeRule]:
    rule = registry.find_expose_rule(model, key)
    if rule is None and direction is TransformDirection.PLAIN_TO_INSTANCE:
        rule = registry.find_expose_rule_by_renamed_name(model, key)
    return rule


def filter_keys_by_version(
    registry: MetadataRegistry,
    keys: list[Any],
    model: type,
    version: Optional[float],
    direction: TransformDirection,
) -> list[Any]:
    if version is None:
        return keys
    kept = []
    for key in keys:
        rule = _expose_rule_for_key(registry, model, key, direction)
        if rule is None or check_version(rule.options.since, rule.options.until, version):
            kept.append(key)
    return kept


def filter_keys_by_group(
    registry: MetadataRegistry,
    keys: list[Any],
    model: type,
    groups: Optional[Sequence[str]],
    direction: TransformDirection,
) -> list[Any]:
    kept = []
    for key in keys:
        rule = _expose_rule_for_key(registry, model, key, direction)
        declared = rule.options.groups if rule is not None else None
        if groups:
            if check_groups(declared, groups):
                kept.append(key)
        elif not declared:
            kept.append(key)
    return kept


def filter_excluded_prefixes(keys: list[Any], prefixes: Optional[Sequence[str]]) -> list[Any]:
    if not prefixes:
        return keys
    return [key for key in keys if not (isinstance(key, str) and key.startswith(tuple(prefixes)))]


def unique_keys(keys: Iterable[Any]) -> list[Any]:
    return list(dict.fromkeys(keys))


def effective_strategy(registry: MetadataRegistry, model: Optional[type], options: TransformOptions, depth: int) -> Strategy:
    strategy = registry.get_strategy(model)
    if strategy is not Strategy.NONE:
        return strategy
    if depth > 0:
        return options.nested_strategy or options.strategy or Strategy.EXPOSE_ALL
    return options.strategy or Strategy.EXPOSE_ALL


def select_field_keys(
    registry: MetadataRegistry,
    target_type: Any,
    value: Any,
    direction: TransformDirection,
    options: TransformOptions,
    *,
    is_map: bool = False,
    depth: int = 0,
) -> list[Any]:
    """Ordered, de-duplicated keys to process for one object-like value."""
    model = as_model(target_type)
    strategy = effective_strategy(registry, model, options, depth)

    keys: list[Any] = []
    if strategy is Strategy.EXPOSE_ALL or is_map:
        keys = own_keys(value)

    if is_map:
        return keys

    if options.ignore_decorators and options.exclude_extraneous_values and model is not None:
        keys = registry.get_exposed_fields(model, direction) + registry.get_excluded_fields(model, direction)

    if not options.ignore_decorators and model is not None:
        exposed = registry.get_exposed_fields(model, direction)
        # instances fed back in already carry internal names
        if direction is TransformDirection.PLAIN_TO_INSTANCE and isinstance(value, Mapping):
            exposed = [_renamed(registry, model, key) for key in exposed]
        keys = list(exposed) if options.exclude_extraneous_values else keys + exposed

        excluded = set(registry.get_excluded_fields(model, direction))
        if excluded:
            keys = [key for key in keys if key not in excluded]

        keys = filter_keys_by_version(registry, keys, model, options.version, direction)
        keys = filter_keys_by_group(registry, keys, model, options.groups, direction)

    keys = filter_excluded_prefixes(keys, options.exclude_prefixes)
    return unique_keys(keys)


def _renamed(registry: MetadataRegistry, model: type, key: str) -> str:
    rule = registry.find_expose_rule(model, key)
    if rule is not None and rule.options.name:
        return rule.options.name
    return key


def filter_transform_rules(rules: list[TransformRule], options: TransformOptions) -> list[TransformRule]:
    if options.version is not None:
        version = options.version
        rules = [rule for rule in rules if check_version(rule.options.since, rule.options.until, version)]
    if options.groups:
        groups = options.groups
        return [rule for rule in rules if check_groups(rule.options.groups, groups)]
    return [rule for rule in rules if not rule.options.groups]


# ------------------------------------------------------------------------------
# Discriminators
# ------------------------------------------------------------------------------


def _has_property(candidate: Any, name: str) -> bool:
    if isinstance(candidate, Mapping):
        return name in candidate
    return candidate is not None and hasattr(candidate, name)


def _read_property(candidate: Any, name: str) -> Any:
    if isinstance(candidate, Mapping):
        return candidate.get(name)
    return getattr(candidate, name, None)


def resolve_discriminated_type(
    discriminator: Discriminator,
    candidate: Any,
    direction: TransformDirection,
    fallback: Any = None,
    *,
    keep_property: bool = False,
) -> Any:
    """
    Pick the concrete type for a polymorphic position.

    plain -> instance removes the tag from ``candidate`` unless ``keep_property``;
    instance -> plain stamps the tag onto ``candidate``. Both mutate the input.
    """
    tag = discriminator.property
    if direction is TransformDirection.PLAIN_TO_INSTANCE:
        if not _has_property(candidate, tag):
            return fallback
        resolved = discriminator.type_for_name(_read_property(candidate, tag))
        if not keep_property:
            if isinstance(candidate, Mapping):
                if isinstance(candidate, abc.MutableMapping):
                    del candidate[tag]
            elif tag in getattr(candidate, "__dict__", {}):
                delattr(candidate, tag)
        return fallback if resolved is None else resolved

    if candidate is None:
        return fallback

    if direction is TransformDirection.INSTANCE_TO_INSTANCE:
        return type(candidate)

    name = discriminator.name_for_type(type(candidate))
    if isinstance(candidate, abc.MutableMapping):
        candidate[tag] = name
    elif not isinstance(candidate, Mapping):
        setattr(candidate, tag, name)
    return None


__all__ = [
    "FieldKeys",
    "ReflectedType",
    "as_model",
    "check_groups",
    "check_version",
    "effective_strategy",
    "filter_excluded_prefixes",
    "filter_keys_by_group",
    "filter_keys_by_version",
    "filter_transform_rules",
    "own_keys",
    "reflect_field_type",
    "remember_annotations",
    "resolve_discriminated_type",
    "resolve_field_key_mapping",
    "select_field_keys",
    "unique_keys",
    "unwrap_annotation",
]
