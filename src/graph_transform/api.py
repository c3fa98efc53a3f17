# graph_transform/api.py
from __future__ import annotations

import warnings
from collections.abc import Mapping
from typing import Any, Optional, TypeVar

from graph_transform.adapters.json_codec import JsonText, decode_json, encode_json
from graph_transform.capabilities import is_array_like
from graph_transform.contracts import TransformDirection, TransformOptions
from graph_transform.engine import TransformExecutor
from graph_transform.metadata import MetadataRegistry, default_registry

T = TypeVar("T")

OptionsLike = TransformOptions | Mapping[str, Any] | None


class ModelTransformer:
    """
    Entry points over one registry.

    The ``*_existing_*`` operations populate the structure they are given and
    return it; every other operation builds new output.
    """

    def __init__(self, registry: Optional[MetadataRegistry] = None, options: OptionsLike = None) -> None:
        self.registry = registry if registry is not None else default_registry
        self.default_options = TransformOptions.coerce(options)

    def resolve_options(
        self,
        options: OptionsLike = None,
        dependencies: Optional[Mapping[str, Any]] = None,
        **overrides: Any,
    ) -> TransformOptions:
        resolved = self.default_options
        if options is not None:
            explicit = TransformOptions.coerce(options)
            resolved = resolved.merged({name: getattr(explicit, name) for name in explicit.model_fields_set})
        if overrides:
            resolved = resolved.merged(overrides)
        if dependencies is not None:
            resolved = resolved.merged(dependencies=dict(dependencies))
        return resolved

    def _run(
        self,
        direction: TransformDirection,
        value: Any,
        target_type: Any,
        existing: Any,
        options: OptionsLike,
        dependencies: Optional[Mapping[str, Any]],
        overrides: dict[str, Any],
    ) -> Any:
        executor = TransformExecutor(
            direction,
            self.resolve_options(options, dependencies, **overrides),
            registry=self.registry,
        )
        container_type = type(value) if is_array_like(value) else None
        return executor.transform(value, target_type, existing=existing, container_type=container_type)

    # ------------------------------------------------------------------
    # instance -> plain
    # ------------------------------------------------------------------

    def instance_to_plain(
        self, obj: Any, options: OptionsLike = None, *, dependencies: Optional[Mapping[str, Any]] = None, **overrides: Any
    ) -> Any:
        """Convert an instance (or list of instances) to plain dicts and lists."""
        return self._run(TransformDirection.INSTANCE_TO_PLAIN, obj, None, None, options, dependencies, overrides)

    def instance_to_existing_plain(
        self,
        obj: Any,
        plain: Any,
        options: OptionsLike = None,
        *,
        dependencies: Optional[Mapping[str, Any]] = None,
        **overrides: Any,
    ) -> Any:
        """Write the plain form of ``obj`` into ``plain``, mutating and returning it."""
        return self._run(TransformDirection.INSTANCE_TO_PLAIN, obj, None, plain, options, dependencies, overrides)

    # ------------------------------------------------------------------
    # plain -> instance
    # ------------------------------------------------------------------

    def plain_to_instance(
        self,
        cls: type[T],
        plain: Any,
        options: OptionsLike = None,
        *,
        dependencies: Optional[Mapping[str, Any]] = None,
        **overrides: Any,
    ) -> Any:
        """Build ``cls`` instances from a plain dict, or a list of them from a list."""
        return self._run(TransformDirection.PLAIN_TO_INSTANCE, plain, cls, None, options, dependencies, overrides)

    def plain_to_existing_instance(
        self,
        instance: T,
        plain: Any,
        options: OptionsLike = None,
        *,
        dependencies: Optional[Mapping[str, Any]] = None,
        **overrides: Any,
    ) -> T:
        """Populate ``instance`` from ``plain``, mutating and returning it."""
        return self._run(TransformDirection.PLAIN_TO_INSTANCE, plain, None, instance, options, dependencies, overrides)

    # ------------------------------------------------------------------
    # instance -> instance
    # ------------------------------------------------------------------

    def instance_to_instance(
        self, obj: T, options: OptionsLike = None, *, dependencies: Optional[Mapping[str, Any]] = None, **overrides: Any
    ) -> T:
        """Clone ``obj`` through the same rules used for plain conversion."""
        return self._run(TransformDirection.INSTANCE_TO_INSTANCE, obj, None, None, options, dependencies, overrides)

    def instance_to_existing_instance(
        self,
        obj: Any,
        existing: T,
        options: OptionsLike = None,
        *,
        dependencies: Optional[Mapping[str, Any]] = None,
        **overrides: Any,
    ) -> T:
        """Copy ``obj`` into ``existing``, mutating and returning it."""
        return self._run(
            TransformDirection.INSTANCE_TO_INSTANCE, obj, None, existing, options, dependencies, overrides
        )

    # ------------------------------------------------------------------
    # JSON strings
    # ------------------------------------------------------------------

    def serialize(self, obj: Any, options: OptionsLike = None, **overrides: Any) -> str:
        return encode_json(self.instance_to_plain(obj, options, **overrides))

    def deserialize(self, cls: type[T], text: JsonText, options: OptionsLike = None, **overrides: Any) -> T:
        return self.plain_to_instance(cls, decode_json(text), options, **overrides)

    def deserialize_array(self, cls: type[T], text: JsonText, options: OptionsLike = None, **overrides: Any) -> list[T]:
        payload = decode_json(text)
        if not isinstance(payload, list):
            payload = [payload]
        return self.plain_to_instance(cls, payload, options, **overrides)


default_transformer = ModelTransformer()


def instance_to_plain(obj: Any, options: OptionsLike = None, **kwargs: Any) -> Any:
    return default_transformer.instance_to_plain(obj, options, **kwargs)


def instance_to_existing_plain(obj: Any, plain: Any, options: OptionsLike = None, **kwargs: Any) -> Any:
    return default_transformer.instance_to_existing_plain(obj, plain, options, **kwargs)


def plain_to_instance(cls: type[T], plain: Any, options: OptionsLike = None, **kwargs: Any) -> Any:
    return default_transformer.plain_to_instance(cls, plain, options, **kwargs)


def plain_to_existing_instance(instance: T, plain: Any, options: OptionsLike = None, **kwargs: Any) -> T:
    return default_transformer.plain_to_existing_instance(instance, plain, options, **kwargs)


def instance_to_instance(obj: T, options: OptionsLike = None, **kwargs: Any) -> T:
    return default_transformer.instance_to_instance(obj, options, **kwargs)


def instance_to_existing_instance(obj: Any, existing: T, options: OptionsLike = None, **kwargs: Any) -> T:
    return default_transformer.instance_to_existing_instance(obj, existing, options, **kwargs)


def serialize(obj: Any, options: OptionsLike = None, **kwargs: Any) -> str:
    return default_transformer.serialize(obj, options, **kwargs)


def deserialize(cls: type[T], text: JsonText, options: OptionsLike = None, **kwargs: Any) -> T:
    return default_transformer.deserialize(cls, text, options, **kwargs)


def deserialize_array(cls: type[T], text: JsonText, options: OptionsLike = None, **kwargs: Any) -> list[T]:
    return default_transformer.deserialize_array(cls, text, options, **kwargs)


# ------------------------------------------------------------------------------
# Deprecated names
# ------------------------------------------------------------------------------


def _deprecated(old: str, new: str) -> None:
    warnings.warn(f"{old}() is deprecated, use {new}() instead", DeprecationWarning, stacklevel=3)


def class_to_plain(obj: Any, options: OptionsLike = None, **kwargs: Any) -> Any:
    _deprecated("class_to_plain", "instance_to_plain")
    return instance_to_plain(obj, options, **kwargs)


def class_to_plain_from_exist(obj: Any, plain: Any, options: OptionsLike = None, **kwargs: Any) -> Any:
    _deprecated("class_to_plain_from_exist", "instance_to_existing_plain")
    return instance_to_existing_plain(obj, plain, options, **kwargs)


def plain_to_class(cls: type[T], plain: Any, options: OptionsLike = None, **kwargs: Any) -> Any:
    _deprecated("plain_to_class", "plain_to_instance")
    return plain_to_instance(cls, plain, options, **kwargs)


def plain_to_class_from_exist(instance: T, plain: Any, options: OptionsLike = None, **kwargs: Any) -> T:
    _deprecated("plain_to_class_from_exist", "plain_to_existing_instance")
    return plain_to_existing_instance(instance, plain, options, **kwargs)


def class_to_class(obj: T, options: OptionsLike = None, **kwargs: Any) -> T:
    _deprecated("class_to_class", "instance_to_instance")
    return instance_to_instance(obj, options, **kwargs)


def class_to_class_from_exist(obj: Any, existing: T, options: OptionsLike = None, **kwargs: Any) -> T:
    _deprecated("class_to_class_from_exist", "instance_to_existing_instance")
    return instance_to_existing_instance(obj, existing, options, **kwargs)
