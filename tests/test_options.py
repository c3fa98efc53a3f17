from __future__ import annotations

import pytest
from pydantic import ValidationError

from graph_transform.contracts import (
    MISSING,
    Discriminator,
    Strategy,
    SubType,
    TargetMap,
    TransformContext,
    TransformDirection,
    TransformOptions,
    TypeOptions,
    TypeRule,
)


class Cat:
    pass


def test_options_defaults() -> None:
    options = TransformOptions()

    assert options.strategy is None
    assert options.expose_unset_fields is True
    assert options.enable_circular_check is False
    assert options.dependencies == {}


def test_options_accept_camel_case_names_and_strategy_aliases() -> None:
    options = TransformOptions.coerce(
        {
            "strategy": "excludeAll",
            "nestedStrategy": "exposeAll",
            "excludeExtraneousValues": True,
            "excludePrefixes": "_",
            "enableImplicitConversion": True,
            "groups": ("admin",),
            "version": "2",
        }
    )

    assert options.strategy is Strategy.EXCLUDE_ALL
    assert options.nested_strategy is Strategy.EXPOSE_ALL
    assert options.exclude_extraneous_values is True
    assert options.exclude_prefixes == ["_"]
    assert options.enable_implicit_conversion is True
    assert options.groups == ["admin"]
    assert options.version == 2.0


def test_options_reject_unknown_keys_and_bad_values() -> None:
    with pytest.raises(ValidationError):
        TransformOptions.coerce({"exposeEverything": True})
    with pytest.raises(ValidationError):
        TransformOptions(strategy="sometimes")
    with pytest.raises(ValidationError):
        TransformOptions(transformation_handler="not callable")


def test_options_are_immutable_and_merge_by_explicit_fields() -> None:
    base = TransformOptions(strategy="expose_all", groups=["a"])

    with pytest.raises(ValidationError):
        base.groups = ["b"]

    merged = base.merged({"excludePrefixes": ["_"]}, version=3)
    assert merged.strategy is Strategy.EXPOSE_ALL
    assert merged.groups == ["a"]
    assert merged.exclude_prefixes == ["_"]
    assert merged.version == 3.0
    assert base.exclude_prefixes is None

    assert TransformOptions.coerce(base) is base
    assert TransformOptions.coerce(None) == TransformOptions()


def test_target_map_validation() -> None:
    target_map = TargetMap(target=Cat, properties={"age": int})

    assert target_map.target is Cat
    with pytest.raises(ValidationError):
        TargetMap(target="Cat")


def test_direction_and_missing_sentinel() -> None:
    assert TransformDirection.PLAIN_TO_INSTANCE.builds_instance
    assert TransformDirection.INSTANCE_TO_INSTANCE.builds_instance
    assert not TransformDirection.INSTANCE_TO_PLAIN.builds_instance
    assert str(TransformDirection.INSTANCE_TO_PLAIN) == "instance_to_plain"

    assert not MISSING
    assert repr(MISSING) == "MISSING"
    assert MISSING is not None


def test_type_rule_discriminator_requires_property_and_subtypes() -> None:
    empty = TypeRule(owner=Cat, field_name="pet", options=TypeOptions(discriminator=Discriminator("kind")))
    usable = TypeRule(
        owner=Cat,
        field_name="pet",
        reflected_type=Cat,
        options=TypeOptions(discriminator=Discriminator("kind", (SubType("cat", Cat),))),
    )

    assert empty.discriminator is None
    assert usable.discriminator is not None
    assert usable.discriminator.type_for_name("cat") is Cat
    assert usable.discriminator.name_for_type(Cat) == "cat"
    assert usable.discriminator.type_for_name("dog") is None


def test_context_child_resets_position_and_increments_depth() -> None:
    parent = TransformContext(value={"a": 1}, target_type=Cat, container_type=list, is_map=True, depth=2)

    child = parent.child(1, target_type=int)

    assert child.depth == 3
    assert child.target_type is int
    assert child.container_type is None
    assert child.is_map is False
    assert child.existing is None
