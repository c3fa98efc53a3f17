# graph_transform/declarations.py
"""
Declaration layer: ``typing.Annotated`` markers read by the ``@model`` decorator.

    @model(exclude_all=True)
    class User:
        name: Annotated[str, Expose()]
        photos: Annotated[list[Photo], Expose(groups=["owner"]), Type(Photo)]
        password: Annotated[str, Exclude()]

Markers are only collected from the decorated class's own annotations; base
classes contribute through the registry's ancestor lookup.
"""

from __future__ import annotations

import inspect
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Annotated, Any, Optional, TypeVar, get_args, get_origin, overload

from graph_transform.adapters.handlers import FieldTransform, TypeResolver
from graph_transform.capabilities import classify_container_kind
from graph_transform.contracts import (
    ContainerKind,
    Discriminator,
    ExcludeOptions,
    ExcludeRule,
    ExposeOptions,
    ExposeRule,
    MetadataRegistrationError,
    TransformRule,
    TransformRuleOptions,
    TypeHelpContext,
    TypeOptions,
    TypeRule,
)
from graph_transform.metadata import MetadataRegistry, default_registry
from graph_transform.resolution import ReflectedType, remember_annotations, unwrap_annotation

ModelT = TypeVar("ModelT", bound=type)
FuncT = TypeVar("FuncT", bound=Callable[..., Any])

MEMBER_MARKERS_ATTR = "__graph_transform_markers__"

TypeTarget = type | TypeResolver


def _as_resolver(target: TypeTarget) -> TypeResolver:
    if isinstance(target, type):
        fixed = target

        def _fixed(_: TypeHelpContext) -> Any:
            return fixed

        return _fixed
    if not callable(target):
        raise MetadataRegistrationError(f"type target must be a class or a callable, got {target!r}")
    return target


class Marker:
    def register(self, registry: MetadataRegistry, owner: type, field_name: str, reflected: ReflectedType) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class Expose(Marker):
    name: Optional[str] = None
    groups: Optional[Sequence[str]] = None
    since: Optional[float] = None
    until: Optional[float] = None
    to_class_only: bool = False
    to_plain_only: bool = False

    def register(self, registry: MetadataRegistry, owner: type, field_name: str, reflected: ReflectedType) -> None:
        registry.add_expose_rule(
            ExposeRule(
                owner=owner,
                field_name=field_name,
                options=ExposeOptions(
                    name=self.name,
                    groups=tuple(self.groups) if self.groups is not None else None,
                    since=self.since,
                    until=self.until,
                    to_class_only=self.to_class_only,
                    to_plain_only=self.to_plain_only,
                ),
            )
        )


@dataclass(frozen=True)
class Exclude(Marker):
    to_class_only: bool = False
    to_plain_only: bool = False

    def register(self, registry: MetadataRegistry, owner: type, field_name: str, reflected: ReflectedType) -> None:
        registry.add_exclude_rule(
            ExcludeRule(
                owner=owner,
                field_name=field_name,
                options=ExcludeOptions(to_class_only=self.to_class_only, to_plain_only=self.to_plain_only),
            )
        )


@dataclass(frozen=True, init=False)
class Type(Marker):
    """Target type of a field: a class, or a resolver called with a ``TypeHelpContext``."""

    target: TypeTarget
    discriminator: Optional[Discriminator] = None
    keep_discriminator_property: bool = False

    def __init__(
        self,
        target: TypeTarget,
        *,
        discriminator: Optional[Discriminator] = None,
        keep_discriminator_property: bool = False,
    ) -> None:
        object.__setattr__(self, "target", target)
        object.__setattr__(self, "discriminator", discriminator)
        object.__setattr__(self, "keep_discriminator_property", keep_discriminator_property)

    def _options(self) -> TypeOptions:
        return TypeOptions(
            discriminator=self.discriminator,
            keep_discriminator_property=self.keep_discriminator_property,
        )

    def register(self, registry: MetadataRegistry, owner: type, field_name: str, reflected: ReflectedType) -> None:
        registry.add_type_rule(
            TypeRule(
                owner=owner,
                field_name=field_name,
                reflected_type=reflected.type,
                type_resolver=_as_resolver(self.target),
                options=self._options(),
            )
        )


@dataclass(frozen=True, init=False)
class TypedStructure(Type):
    """Like ``Type`` with an explicit list/set/dict container, ignoring the annotation."""

    container: type = list

    def __init__(
        self,
        container: type,
        target: TypeTarget,
        *,
        discriminator: Optional[Discriminator] = None,
        keep_discriminator_property: bool = False,
    ) -> None:
        kind = classify_container_kind(container) if isinstance(container, type) else ContainerKind.NONE
        if kind not in (ContainerKind.ARRAY, ContainerKind.SET, ContainerKind.MAP):
            raise MetadataRegistrationError(f"{container!r} is not a list, set or dict type")
        super().__init__(target, discriminator=discriminator, keep_discriminator_property=keep_discriminator_property)
        object.__setattr__(self, "container", container)

    def register(self, registry: MetadataRegistry, owner: type, field_name: str, reflected: ReflectedType) -> None:
        registry.add_type_rule(
            TypeRule(
                owner=owner,
                field_name=field_name,
                reflected_type=None,
                container_type=self.container,
                type_resolver=_as_resolver(self.target),
                options=self._options(),
            )
        )


@dataclass(frozen=True)
class Transform(Marker):
    fn: FieldTransform
    groups: Optional[Sequence[str]] = None
    since: Optional[float] = None
    until: Optional[float] = None
    to_class_only: bool = False
    to_plain_only: bool = False

    def register(self, registry: MetadataRegistry, owner: type, field_name: str, reflected: ReflectedType) -> None:
        registry.add_transform_rule(
            TransformRule(
                owner=owner,
                field_name=field_name,
                transform_fn=self.fn,
                options=TransformRuleOptions(
                    groups=tuple(self.groups) if self.groups is not None else None,
                    since=self.since,
                    until=self.until,
                    to_class_only=self.to_class_only,
                    to_plain_only=self.to_plain_only,
                ),
            )
        )


# ------------------------------------------------------------------------------
# Methods and properties
# ------------------------------------------------------------------------------


def _mark(function: FuncT, marker: Marker) -> FuncT:
    markers = list(getattr(function, MEMBER_MARKERS_ATTR, ()))
    markers.append(marker)
    setattr(function, MEMBER_MARKERS_ATTR, tuple(markers))
    return function


def expose_member(
    name: Optional[str] = None,
    *,
    groups: Optional[Sequence[str]] = None,
    since: Optional[float] = None,
    until: Optional[float] = None,
    to_class_only: bool = False,
    to_plain_only: bool = False,
) -> Callable[[FuncT], FuncT]:
    """Expose a method or (placed beneath ``@property``) a computed property."""
    marker = Expose(
        name=name,
        groups=groups,
        since=since,
        until=until,
        to_class_only=to_class_only,
        to_plain_only=to_plain_only,
    )
    return lambda function: _mark(function, marker)


def exclude_member(*, to_class_only: bool = False, to_plain_only: bool = False) -> Callable[[FuncT], FuncT]:
    marker = Exclude(to_class_only=to_class_only, to_plain_only=to_plain_only)
    return lambda function: _mark(function, marker)


# ------------------------------------------------------------------------------
# Class decorator
# ------------------------------------------------------------------------------


def _definition_namespace(depth: int) -> dict[str, Any]:
    """Locals of the scope applying the decorator; empty at module level."""
    frame = sys._getframe(depth + 1)
    if frame.f_locals is frame.f_globals:
        return {}
    return dict(frame.f_locals)


def _own_annotations(cls: type, namespace: Mapping[str, Any]) -> dict[str, Any]:
    # the class name is not bound yet while its decorator runs
    localns = {**namespace, **vars(cls), cls.__name__: cls}
    try:
        annotations = inspect.get_annotations(cls, eval_str=True, locals=localns)
    except NameError as exc:
        raise MetadataRegistrationError(f"cannot resolve annotations of {cls.__qualname__}: {exc}") from exc
    remember_annotations(cls, annotations)
    return annotations


def register_model(
    cls: ModelT,
    *,
    expose_all: bool = False,
    exclude_all: bool = False,
    registry: Optional[MetadataRegistry] = None,
    namespace: Optional[Mapping[str, Any]] = None,
) -> ModelT:
    if namespace is None:
        namespace = _definition_namespace(1)
    target_registry = registry if registry is not None else default_registry
    if expose_all:
        target_registry.add_expose_rule(ExposeRule(owner=cls, field_name=None))
    if exclude_all:
        target_registry.add_exclude_rule(ExcludeRule(owner=cls, field_name=None))

    for field_name, annotation in _own_annotations(cls, namespace).items():
        if get_origin(annotation) is not Annotated:
            continue
        base, *extras = get_args(annotation)
        reflected = unwrap_annotation(base)
        for marker in extras:
            if isinstance(marker, Marker):
                marker.register(target_registry, cls, field_name, reflected)

    for member_name, member in vars(cls).items():
        function = member.fget if isinstance(member, property) else member
        for marker in getattr(function, MEMBER_MARKERS_ATTR, ()):
            marker.register(target_registry, cls, member_name, ReflectedType())
    return cls


@overload
def model(cls: ModelT) -> ModelT: ...


@overload
def model(
    cls: None = None,
    *,
    expose_all: bool = False,
    exclude_all: bool = False,
    registry: Optional[MetadataRegistry] = None,
) -> Callable[[ModelT], ModelT]: ...


def model(
    cls: Optional[ModelT] = None,
    *,
    expose_all: bool = False,
    exclude_all: bool = False,
    registry: Optional[MetadataRegistry] = None,
) -> Any:
    """Class decorator registering ``Annotated`` field markers; usable bare or with options."""

    def _decorate(target: ModelT, namespace: Mapping[str, Any]) -> ModelT:
        return register_model(
            target, expose_all=expose_all, exclude_all=exclude_all, registry=registry, namespace=namespace
        )

    if cls is not None:
        return _decorate(cls, _definition_namespace(1))
    return lambda target: _decorate(target, _definition_namespace(1))


__all__ = [
    "Exclude",
    "Expose",
    "Marker",
    "Transform",
    "Type",
    "TypedStructure",
    "exclude_member",
    "expose_member",
    "model",
    "register_model",
]
