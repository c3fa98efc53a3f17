# graph_transform/contracts.py
from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from graph_transform._compat import Self, StrEnum

if TYPE_CHECKING:
    from graph_transform.adapters.handlers import TransformRunner


class GraphTransformError(Exception):
    """Base class for errors raised by graph_transform."""


class MetadataRegistrationError(GraphTransformError, ValueError):
    """Raised when a declaration cannot be turned into a registry rule."""


class _Missing(Enum):
    MISSING = "MISSING"

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


# Absent attribute / absent key. ``None`` is a real value, this is not.
MISSING = _Missing.MISSING
Missing = Literal[_Missing.MISSING]


# ------------------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------------------


class TransformDirection(StrEnum):
    PLAIN_TO_INSTANCE = "plain_to_instance"
    INSTANCE_TO_PLAIN = "instance_to_plain"
    INSTANCE_TO_INSTANCE = "instance_to_instance"

    @property
    def builds_instance(self) -> bool:
        return self is not TransformDirection.INSTANCE_TO_PLAIN


class Strategy(StrEnum):
    EXPOSE_ALL = "expose_all"
    EXCLUDE_ALL = "exclude_all"
    NONE = "none"


class ContainerKind(StrEnum):
    ARRAY = "array"
    SET = "set"
    MAP = "map"
    PLAIN_OBJECT = "plain_object"
    NONE = "none"


_STRATEGY_ALIASES = {
    "exposeAll": Strategy.EXPOSE_ALL,
    "excludeAll": Strategy.EXCLUDE_ALL,
}


# ------------------------------------------------------------------------------
# Rule records
# ------------------------------------------------------------------------------


@dataclass(frozen=True)
class SubType:
    name: str
    value: type


@dataclass(frozen=True)
class Discriminator:
    property: str
    sub_types: Sequence[SubType] = field(default_factory=tuple)

    def type_for_name(self, name: Any) -> Optional[type]:
        for sub_type in self.sub_types:
            if sub_type.name == name:
                return sub_type.value
        return None

    def name_for_type(self, cls: type) -> Optional[str]:
        for sub_type in self.sub_types:
            if sub_type.value is cls:
                return sub_type.name
        return None


@dataclass(frozen=True)
class TypeOptions:
    discriminator: Optional[Discriminator] = None
    keep_discriminator_property: bool = False


@dataclass(frozen=True)
class ExposeOptions:
    name: Optional[str] = None
    groups: Optional[Sequence[str]] = None
    since: Optional[float] = None
    until: Optional[float] = None
    to_class_only: bool = False
    to_plain_only: bool = False


@dataclass(frozen=True)
class ExcludeOptions:
    to_class_only: bool = False
    to_plain_only: bool = False


@dataclass(frozen=True)
class TransformRuleOptions:
    groups: Optional[Sequence[str]] = None
    since: Optional[float] = None
    until: Optional[float] = None
    to_class_only: bool = False
    to_plain_only: bool = False


@dataclass(frozen=True)
class TypeRule:
    owner: type
    field_name: str
    reflected_type: Any = None
    container_type: Optional[type] = None
    type_resolver: Optional[Callable[[TypeHelpContext], Any]] = None
    options: TypeOptions = field(default_factory=TypeOptions)

    @property
    def discriminator(self) -> Optional[Discriminator]:
        discriminator = self.options.discriminator
        if discriminator is None or not discriminator.property or not discriminator.sub_types:
            return None
        return discriminator

    def resolve_type(self, context: TypeHelpContext) -> Any:
        if self.type_resolver is not None:
            return self.type_resolver(context)
        return self.reflected_type


@dataclass(frozen=True)
class ExposeRule:
    owner: type
    field_name: Optional[str]
    options: ExposeOptions = field(default_factory=ExposeOptions)


@dataclass(frozen=True)
class ExcludeRule:
    owner: type
    field_name: Optional[str]
    options: ExcludeOptions = field(default_factory=ExcludeOptions)


@dataclass(frozen=True)
class TransformRule:
    owner: type
    field_name: str
    transform_fn: Callable[[TransformFnParams], Any]
    options: TransformRuleOptions = field(default_factory=TransformRuleOptions)


DirectionScoped = ExposeRule | ExcludeRule | TransformRule


# ------------------------------------------------------------------------------
# Callback parameters / per-step context
# ------------------------------------------------------------------------------


@dataclass(frozen=True)
class TypeHelpContext:
    new_object: Any
    object: Any
    property: Optional[str]
    dependencies: Mapping[str, Any]
    executor: TransformRunner


@dataclass(frozen=True)
class TransformFnParams:
    value: Any
    key: str
    obj: Any
    direction: TransformDirection
    options: TransformOptions
    dependencies: Mapping[str, Any]
    executor: TransformRunner


@dataclass(frozen=True)
class TransformContext:
    """One recursive step: the value to transform and what it should become."""

    value: Any
    target_type: Any = None
    container_type: Optional[type] = None
    is_map: bool = False
    depth: int = 0
    existing: Any = None
    # set when an array position carries a discriminated TypeRule
    type_rule: Optional[TypeRule] = None

    def child(self, value: Any, **changes: Any) -> TransformContext:
        params: dict[str, Any] = {
            "target_type": None,
            "container_type": None,
            "is_map": False,
            "existing": None,
            "type_rule": None,
        }
        params.update(changes)
        return TransformContext(value=value, depth=self.depth + 1, **params)


# ------------------------------------------------------------------------------
# Options
# ------------------------------------------------------------------------------


_OPTIONS_CONFIG = ConfigDict(
    extra="forbid",
    frozen=True,
    arbitrary_types_allowed=True,
)


class TargetMap(BaseModel):
    model_config = _OPTIONS_CONFIG
    target: type[Any]
    properties: dict[str, Any] = Field(default_factory=dict)


class TransformOptions(BaseModel):
    model_config = _OPTIONS_CONFIG

    strategy: Optional[Strategy] = None
    nested_strategy: Optional[Strategy] = Field(
        default=None, validation_alias=AliasChoices("nested_strategy", "nestedStrategy")
    )
    exclude_extraneous_values: bool = Field(
        default=False,
        validation_alias=AliasChoices("exclude_extraneous_values", "excludeExtraneousValues"),
    )
    exclude_prefixes: Optional[list[str]] = Field(
        default=None, validation_alias=AliasChoices("exclude_prefixes", "excludePrefixes")
    )
    ignore_decorators: bool = Field(
        default=False, validation_alias=AliasChoices("ignore_decorators", "ignoreDecorators")
    )
    enable_circular_check: bool = Field(
        default=False,
        validation_alias=AliasChoices("enable_circular_check", "enableCircularCheck"),
    )
    enable_implicit_conversion: bool = Field(
        default=False,
        validation_alias=AliasChoices("enable_implicit_conversion", "enableImplicitConversion"),
    )
    expose_default_values: bool = Field(
        default=False,
        validation_alias=AliasChoices("expose_default_values", "exposeDefaultValues"),
    )
    expose_unset_fields: bool = Field(
        default=True,
        validation_alias=AliasChoices("expose_unset_fields", "exposeUnsetFields"),
    )
    groups: Optional[list[str]] = None
    version: Optional[float] = None
    target_maps: Optional[list[TargetMap]] = Field(
        default=None, validation_alias=AliasChoices("target_maps", "targetMaps")
    )
    transformation_handler: Optional[Callable[..., Any]] = Field(
        default=None,
        validation_alias=AliasChoices("transformation_handler", "transformationHandler"),
    )
    dependencies: dict[str, Any] = Field(default_factory=dict)

    @field_validator("strategy", "nested_strategy", mode="before")
    @classmethod
    def _normalize_strategy(cls, value: Any) -> Any:
        if isinstance(value, str) and value in _STRATEGY_ALIASES:
            return _STRATEGY_ALIASES[value]
        return value

    @field_validator("exclude_prefixes", "groups", mode="before")
    @classmethod
    def _normalize_string_lists(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        if isinstance(value, (tuple, set, frozenset)):
            return list(value)
        return value

    @classmethod
    def coerce(cls, options: TransformOptions | Mapping[str, Any] | None = None) -> TransformOptions:
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        return cls.model_validate(dict(options))

    def merged(self, overrides: Mapping[str, Any] | None = None, **kwargs: Any) -> Self:
        """Return a copy with ``overrides`` layered over the explicitly-set fields."""
        update = type(self).model_validate({**dict(overrides or {}), **kwargs})
        payload: dict[str, Any] = {name: getattr(self, name) for name in self.model_fields_set}
        payload.update({name: getattr(update, name) for name in update.model_fields_set})
        return type(self).model_validate(payload)


__all__ = [
    "ContainerKind",
    "Discriminator",
    "DirectionScoped",
    "ExcludeOptions",
    "ExcludeRule",
    "ExposeOptions",
    "ExposeRule",
    "GraphTransformError",
    "MISSING",
    "MetadataRegistrationError",
    "Missing",
    "Strategy",
    "SubType",
    "TargetMap",
    "TransformContext",
    "TransformDirection",
    "TransformFnParams",
    "TransformOptions",
    "TransformRule",
    "TransformRuleOptions",
    "TypeHelpContext",
    "TypeOptions",
    "TypeRule",
]
