# graph_transform/engine.py
from __future__ import annotations

import inspect
import logging
import math
from collections import abc
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel

from graph_transform.adapters.handlers import TransformationHandler
from graph_transform.capabilities import (
    classify_container_kind,
    has_buffer_support,
    is_array_like,
    is_buffer_type,
    is_buffer_value,
    is_date_type,
    is_disguised_array,
    is_map_value,
    is_object_like,
    is_pending_async_value,
    is_primitive_target_type,
)
from graph_transform.contracts import (
    MISSING,
    ContainerKind,
    TransformContext,
    TransformDirection,
    TransformFnParams,
    TransformOptions,
    TypeHelpContext,
    TypeRule,
)
from graph_transform.metadata import MetadataRegistry, default_registry
from graph_transform.recursion import RecursionGuard
from graph_transform.resolution import (
    ReflectedType,
    as_model,
    filter_transform_rules,
    reflect_field_type,
    resolve_discriminated_type,
    resolve_field_key_mapping,
    select_field_keys,
    unwrap_annotation,
)

logger = logging.getLogger(__name__)

# Keys that would rebind class machinery on the destination.
UNSAFE_KEYS = frozenset({"__class__", "__dict__"})


# ------------------------------------------------------------------------------
# Scalar coercion
# ------------------------------------------------------------------------------


def _coerce_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _coerce_integer(value: Any) -> int | float:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return math.nan


def coerce_primitive(value: Any, target: type) -> Any:
    if target is str:
        return str(value)
    if target is bool:
        return bool(value)
    if target is int:
        return _coerce_integer(value)
    return _coerce_number(value)


def _parse_iso8601(value: str) -> Optional[datetime]:
    txt = (value or "").strip()
    if not txt:
        return None
    if txt.endswith("Z"):
        txt = txt[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(txt)
    except ValueError:
        return None


def coerce_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value.replace()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        return _parse_iso8601(value)
    return None


def coerce_buffer(value: Any, target: Any = None) -> Any:
    factory = bytearray if target is bytearray else bytes
    if isinstance(value, str):
        return factory(value.encode("utf-8"))
    if isinstance(value, (int, float)):
        return value
    try:
        return factory(value)
    except (TypeError, ValueError):
        logger.debug("cannot build %s from %s", factory.__name__, type(value).__name__)
        return value


# ------------------------------------------------------------------------------
# Structure access
# ------------------------------------------------------------------------------


def read_raw(structure: Any, key: Any) -> Any:
    if structure is None:
        return MISSING
    if isinstance(structure, Mapping):
        return structure[key] if key in structure else MISSING
    if not isinstance(key, str):
        return MISSING
    return getattr(structure, key, MISSING)


def _read_existing_child(existing: Any, key: Any) -> Any:
    child = read_raw(existing, key)
    return None if child is MISSING else child


def _read_existing_item(existing: Any, index: int) -> Any:
    if isinstance(existing, abc.Sequence) and not isinstance(existing, str) and index < len(existing):
        return existing[index]
    return None


def _instantiate(cls: type) -> Any:
    if hasattr(cls, "model_construct"):
        return cls.model_construct()
    try:
        return cls()
    except TypeError:
        logger.debug("%s needs constructor arguments; allocating without __init__", cls.__name__)
        return cls.__new__(cls)


def _append(collection: Any, item: Any) -> Any:
    if isinstance(collection, abc.MutableSet):
        try:
            collection.add(item)
        except TypeError:
            logger.debug("unhashable %s in a set; collecting into a list", type(item).__name__)
            return [*collection, item]
        return collection
    collection.append(item)
    return collection


def _accepts_attribute(structure: Any, key: str) -> bool:
    if not isinstance(structure, BaseModel):
        return True
    model_type = type(structure)
    if key in model_type.model_fields or key in model_type.__private_attributes__:
        return True
    return model_type.model_config.get("extra") == "allow"


@dataclass(frozen=True)
class PropertyPlan:
    type: Any = None
    container: Optional[type] = None
    is_map: bool = False
    type_rule: Optional[TypeRule] = None


class TransformExecutor:
    """
    Recursive transform over one input graph.

    One executor serves one top-level call: it owns the recursion guard for
    that call and reads the registry without modifying it.
    """

    def __init__(
        self,
        direction: TransformDirection,
        options: TransformOptions | Mapping[str, Any] | None = None,
        *,
        registry: Optional[MetadataRegistry] = None,
    ) -> None:
        self.direction = direction
        self.options = TransformOptions.coerce(options)
        self.registry = registry if registry is not None else default_registry
        self.dependencies = self.options.dependencies
        self.recursion_guard = RecursionGuard(self.options.enable_circular_check)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def transform(
        self,
        value: Any,
        target_type: Any = None,
        *,
        existing: Any = None,
        container_type: Optional[type] = None,
        is_map: bool = False,
        depth: int = 0,
    ) -> Any:
        return self.execute(
            TransformContext(
                value=value,
                target_type=target_type,
                container_type=container_type,
                is_map=is_map,
                depth=depth,
                existing=existing,
            )
        )

    def execute(self, context: TransformContext) -> Any:
        handler: Optional[TransformationHandler] = self.options.transformation_handler
        if handler is not None:
            logger.debug("delegating depth %d to transformation handler", context.depth)
            return handler(context, self)
        return self.do_transform(context)

    def do_transform(self, context: TransformContext) -> Any:
        value = context.value
        target = context.target_type
        plain_position = not context.is_map and context.container_type is None

        if value is None or value is MISSING:
            return value
        if plain_position and is_primitive_target_type(target):
            return coerce_primitive(value, target)
        if is_array_like(value):
            return self._transform_array_like(context)
        if not context.is_map and self._declares_sequence(context.container_type):
            logger.debug("%s declared as %s; yielding empty container", type(value).__name__, context.container_type)
            return self._create_array_like(context)
        if plain_position and is_pending_async_value(value):
            return self._transform_pending(context)
        if plain_position and (is_date_type(target) or isinstance(value, datetime)):
            return coerce_datetime(value)
        if plain_position and has_buffer_support() and (is_buffer_type(target) or is_buffer_value(value)):
            return coerce_buffer(value, target)
        if is_object_like(value):
            return self._transform_object(context)
        return value

    # ------------------------------------------------------------------
    # Pending values
    # ------------------------------------------------------------------

    def _transform_pending(self, context: TransformContext) -> Any:
        return self._resolve_pending(context)

    async def _resolve_pending(self, context: TransformContext) -> Any:
        data = await context.value
        return self.execute(context.child(data, target_type=context.target_type))

    # ------------------------------------------------------------------
    # Arrays and sets
    # ------------------------------------------------------------------

    @staticmethod
    def _declares_sequence(container_type: Optional[type]) -> bool:
        if container_type is None:
            return False
        return classify_container_kind(container_type) in (ContainerKind.ARRAY, ContainerKind.SET)

    def _create_array_like(self, context: TransformContext) -> Any:
        container_type = context.container_type
        if container_type is not None and self.direction is TransformDirection.PLAIN_TO_INSTANCE:
            try:
                collection = container_type()
            except TypeError:
                collection = None
            if isinstance(collection, (abc.MutableSequence, abc.MutableSet)):
                return collection
            logger.debug("%r does not build a list or set; using list", container_type)
        return []

    def _transform_array_like(self, context: TransformContext) -> Any:
        collection = self._create_array_like(context)
        rule = context.type_rule
        for index, item in enumerate(context.value):
            if self.recursion_guard.has(item):
                if self.direction is TransformDirection.INSTANCE_TO_INSTANCE:
                    collection = _append(collection, self.recursion_guard.built_for(item))
                continue

            if rule is not None and rule.discriminator is not None:
                item_type = self._discriminated_item_type(rule, item, collection)
            else:
                item_type = context.target_type

            transformed = self.execute(
                context.child(
                    item,
                    target_type=item_type,
                    container_type=type(item) if is_array_like(item) else None,
                    is_map=is_map_value(item),
                    existing=_read_existing_item(context.existing, index),
                    type_rule=rule if is_array_like(item) else None,
                )
            )
            collection = _append(collection, transformed)
        return collection

    def _discriminated_item_type(self, rule: TypeRule, item: Any, collection: Any) -> Any:
        discriminator = rule.discriminator
        assert discriminator is not None
        fallback = None
        if self.direction is TransformDirection.PLAIN_TO_INSTANCE:
            fallback = rule.resolve_type(self._type_help_context(collection, item, None))
        return resolve_discriminated_type(
            discriminator,
            item,
            self.direction,
            fallback,
            keep_property=rule.options.keep_discriminator_property,
        )

    # ------------------------------------------------------------------
    # Objects and maps
    # ------------------------------------------------------------------

    def _resolve_object_type(self, context: TransformContext) -> Any:
        target_type = context.target_type
        value = context.value
        if target_type is None:
            if is_disguised_array(value):
                logger.debug("ignoring forged sequence class on %s input", type(value).__name__)
            elif not isinstance(value, Mapping):
                target_type = value.__class__
        if target_type is None and context.existing is not None:
            target_type = type(context.existing)
        return target_type

    def _create_structure(self, context: TransformContext, target_type: Any) -> Any:
        if context.existing is not None:
            return context.existing
        if self.direction is TransformDirection.INSTANCE_TO_PLAIN or context.is_map:
            return {}
        if not isinstance(target_type, type) or target_type is object:
            return {}
        if classify_container_kind(target_type) is ContainerKind.MAP and not issubclass(
            target_type, abc.MutableMapping
        ):
            return {}
        return _instantiate(target_type)

    def _transform_object(self, context: TransformContext) -> Any:
        value = context.value
        target_type = self._resolve_object_type(context)
        model = as_model(target_type)

        keys = select_field_keys(
            self.registry,
            target_type,
            value,
            self.direction,
            self.options,
            is_map=context.is_map,
            depth=context.depth,
        )
        structure = self._create_structure(context, target_type)
        self.recursion_guard.add(value, structure)
        try:
            for key in keys:
                if key in UNSAFE_KEYS:
                    continue
                self._transform_property(context, model, target_type, structure, key)
        finally:
            self.recursion_guard.delete(value)
        return structure

    def _transform_property(
        self,
        context: TransformContext,
        model: Optional[type],
        target_type: Any,
        structure: Any,
        key: Any,
    ) -> None:
        value = context.value
        names = resolve_field_key_mapping(
            self.registry, key, target_type, self.options.ignore_decorators, self.direction
        )
        sub_value = self._read_sub_value(value, key)
        plan = self._plan_property(
            sub_value,
            target_type,
            context.is_map,
            names.internal,
            self._type_help_context(structure, value, names.internal),
        )

        if self._is_conflicting_property(structure, names.external):
            return

        if self.recursion_guard.has(sub_value):
            if self.direction is TransformDirection.INSTANCE_TO_INSTANCE:
                reused = self.recursion_guard.built_for(sub_value)
                reused = self.apply_custom_transformations(reused, model, key, value)
                self._write(structure, names.external, reused)
            else:
                logger.debug("omitting circular reference under %r", key)
            return

        transform_key = names.external if self.direction is TransformDirection.PLAIN_TO_INSTANCE else key
        child = dict(
            target_type=plan.type,
            container_type=plan.container,
            is_map=plan.is_map,
            existing=_read_existing_child(context.existing, key),
            type_rule=plan.type_rule,
        )

        if self.direction is TransformDirection.INSTANCE_TO_PLAIN:
            natural = read_raw(value, transform_key)
            new_value = self.apply_custom_transformations(natural, model, transform_key, value)
            if new_value is natural:
                new_value = sub_value
            new_value = self.execute(context.child(new_value, **child))
        elif sub_value is MISSING and self.options.expose_default_values:
            new_value = read_raw(structure, names.external)
        else:
            new_value = self.execute(context.child(sub_value, **child))
            new_value = self.apply_custom_transformations(new_value, model, transform_key, value)

        self._write(structure, names.external, new_value)

    def _read_sub_value(self, value: Any, key: Any) -> Any:
        raw = read_raw(value, key)
        # Never call into untrusted plain input.
        if self.direction is TransformDirection.PLAIN_TO_INSTANCE:
            return raw
        if inspect.isroutine(raw):
            return raw()
        return raw

    def _plan_property(
        self,
        sub_value: Any,
        target_type: Any,
        is_map: bool,
        property_name: Any,
        help_context: TypeHelpContext,
    ) -> PropertyPlan:
        runtime_container = type(sub_value) if is_array_like(sub_value) else None
        sub_is_map = is_map_value(sub_value)

        if target_type is not None and is_map:
            return PropertyPlan(type=target_type, container=runtime_container, is_map=sub_is_map)

        model = as_model(target_type)
        if model is None or not isinstance(property_name, str):
            return PropertyPlan(container=runtime_container, is_map=sub_is_map)

        rule = self.registry.find_type_rule(model, property_name)
        if rule is not None:
            return self._plan_from_rule(rule, sub_value, runtime_container, sub_is_map, help_context)

        if self.options.target_maps:
            mapped = MISSING
            for target_map in self.options.target_maps:
                if target_map.target is model and property_name in target_map.properties:
                    mapped = target_map.properties[property_name]
            if mapped is MISSING:
                return PropertyPlan(container=runtime_container, is_map=sub_is_map)
            return self._plan_from_reflection(unwrap_annotation(mapped), runtime_container, sub_is_map)

        if self.options.enable_implicit_conversion and self.direction is TransformDirection.PLAIN_TO_INSTANCE:
            reflected = reflect_field_type(model, property_name)
            return self._plan_from_reflection(reflected, runtime_container, sub_is_map)

        return PropertyPlan(container=runtime_container, is_map=sub_is_map)

    def _plan_from_rule(
        self,
        rule: TypeRule,
        sub_value: Any,
        runtime_container: Optional[type],
        sub_is_map: bool,
        help_context: TypeHelpContext,
    ) -> PropertyPlan:
        container = runtime_container
        explicit = classify_container_kind(rule.container_type) if rule.container_type is not None else ContainerKind.NONE
        if explicit is not ContainerKind.NONE:
            sub_is_map = explicit is ContainerKind.MAP
            container = rule.container_type if not sub_is_map else None
        else:
            reflected = (
                classify_container_kind(rule.reflected_type)
                if isinstance(rule.reflected_type, type)
                else ContainerKind.NONE
            )
            if container is not None and reflected in (ContainerKind.ARRAY, ContainerKind.SET):
                container = rule.reflected_type
            sub_is_map = sub_is_map or reflected is ContainerKind.MAP

        discriminator = rule.discriminator
        if discriminator is None:
            return PropertyPlan(
                type=rule.resolve_type(help_context), container=container, is_map=sub_is_map
            )
        if is_array_like(sub_value):
            return PropertyPlan(container=container, is_map=sub_is_map, type_rule=rule)

        fallback = rule.resolve_type(help_context)
        resolved = resolve_discriminated_type(
            discriminator,
            sub_value,
            self.direction,
            fallback,
            keep_property=rule.options.keep_discriminator_property,
        )
        return PropertyPlan(type=resolved, container=container, is_map=sub_is_map)

    @staticmethod
    def _plan_from_reflection(
        reflected: ReflectedType, runtime_container: Optional[type], sub_is_map: bool
    ) -> PropertyPlan:
        if reflected.container is None:
            return PropertyPlan(type=reflected.type, container=runtime_container, is_map=sub_is_map)
        if classify_container_kind(reflected.container) is ContainerKind.MAP:
            return PropertyPlan(type=reflected.element, container=None, is_map=True)
        container = reflected.container if runtime_container is not None else None
        return PropertyPlan(type=reflected.element, container=container, is_map=sub_is_map)

    def _is_conflicting_property(self, structure: Any, key: Any) -> bool:
        if self.direction is TransformDirection.INSTANCE_TO_PLAIN:
            return False
        if isinstance(structure, Mapping) or not isinstance(key, str):
            return False
        descriptor = inspect.getattr_static(structure, key, None)
        if isinstance(descriptor, property):
            return descriptor.fset is None
        return inspect.isroutine(descriptor)

    def _write(self, structure: Any, key: Any, new_value: Any) -> None:
        if new_value is MISSING:
            if not self.options.expose_unset_fields:
                return
            new_value = None
        if isinstance(structure, abc.MutableMapping):
            structure[key] = new_value
        elif isinstance(key, str):
            if not _accepts_attribute(structure, key):
                logger.debug("%s declares no field %r; skipping", type(structure).__name__, key)
                return
            setattr(structure, key, new_value)

    # ------------------------------------------------------------------
    # Custom field transforms
    # ------------------------------------------------------------------

    def _type_help_context(self, new_object: Any, obj: Any, property_name: Any) -> TypeHelpContext:
        return TypeHelpContext(
            new_object=new_object,
            object=obj,
            property=property_name,
            dependencies=self.dependencies,
            executor=self,
        )

    def apply_custom_transformations(self, value: Any, model: Optional[type], key: Any, obj: Any) -> Any:
        if model is None or not isinstance(key, str):
            return value
        rules = self.registry.find_transform_rules(model, key, self.direction)
        for rule in filter_transform_rules(rules, self.options):
            value = rule.transform_fn(
                TransformFnParams(
                    value=value,
                    key=key,
                    obj=obj,
                    direction=self.direction,
                    options=self.options,
                    dependencies=self.dependencies,
                    executor=self,
                )
            )
        return value


__all__ = [
    "PropertyPlan",
    "TransformExecutor",
    "UNSAFE_KEYS",
    "coerce_buffer",
    "coerce_datetime",
    "coerce_primitive",
    "read_raw",
]
