from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import pytest

from graph_transform.api import instance_to_instance, instance_to_plain, plain_to_instance
from graph_transform.contracts import Discriminator, SubType, TransformContext, TransformDirection
from graph_transform.declarations import Expose, Type, model
from graph_transform.engine import TransformExecutor


class Node:
    pass


def _pet_models():
    @model
    class Animal:
        name: Annotated[str, Expose()]

    @model
    class Cat(Animal):
        lives: Annotated[int, Expose()]

    @model
    class Dog(Animal):
        good: Annotated[bool, Expose()]

    pets = Discriminator("kind", [SubType("cat", Cat), SubType("dog", Dog)])
    return Animal, Cat, Dog, pets


def test_circular_references_are_omitted_from_plain_output() -> None:
    node = Node()
    node.name = "a"
    node.me = node
    node.peers = [node]

    assert instance_to_plain(node, enable_circular_check=True) == {"name": "a", "peers": []}


def test_circular_references_point_at_the_clone() -> None:
    node = Node()
    node.name = "a"
    node.me = node
    node.peers = [node]

    clone = instance_to_instance(node, enable_circular_check=True)

    assert clone is not node
    assert clone.me is clone
    assert clone.peers == [clone]


def test_shared_but_acyclic_references_are_transformed_each_time() -> None:
    shared = Node()
    shared.value = 1
    parent = Node()
    parent.left = shared
    parent.right = shared

    plain = instance_to_plain(parent, enable_circular_check=True)

    assert plain == {"left": {"value": 1}, "right": {"value": 1}}


def test_discriminated_property_builds_the_named_subtype() -> None:
    Animal, Cat, Dog, pets = _pet_models()

    @model
    class Owner:
        pet: Annotated[Animal, Type(Animal, discriminator=pets)]

    payload = {"pet": {"kind": "dog", "name": "rex", "good": True}}
    owner = plain_to_instance(Owner, payload)

    assert type(owner.pet) is Dog
    assert (owner.pet.name, owner.pet.good) == ("rex", True)
    assert not hasattr(owner.pet, "kind")

    plain = instance_to_plain(owner)
    assert plain == {"pet": {"name": "rex", "good": True, "kind": "dog"}}


def test_discriminated_property_can_keep_the_tag() -> None:
    Animal, Cat, Dog, pets = _pet_models()

    @model
    class Owner:
        pet: Annotated[Animal, Type(Animal, discriminator=pets, keep_discriminator_property=True)]

    owner = plain_to_instance(Owner, {"pet": {"kind": "cat", "name": "tom", "lives": 9}})

    assert type(owner.pet) is Cat
    assert owner.pet.kind == "cat"


def test_discriminated_list_resolves_each_element() -> None:
    Animal, Cat, Dog, pets = _pet_models()

    @model
    class Shelter:
        animals: Annotated[list[Animal], Type(Animal, discriminator=pets)]

    shelter = plain_to_instance(
        Shelter,
        {"animals": [{"kind": "cat", "name": "tom", "lives": 9}, {"kind": "dog", "name": "rex"}, {"name": "?"}]},
    )

    assert [type(animal) for animal in shelter.animals] == [Cat, Dog, Animal]

    plain = instance_to_plain(shelter)
    assert [entry.get("kind") for entry in plain["animals"]] == ["cat", "dog", None]

    clone = instance_to_instance(shelter)
    assert [type(animal) for animal in clone.animals] == [Cat, Dog, Animal]


def test_forged_sequence_class_is_treated_as_a_plain_object() -> None:
    class Forged:
        __class__ = property(lambda self: list)  # type: ignore[assignment]

    evil = Forged()
    setattr(evil, "100000000", "x")

    plain = instance_to_plain(evil)

    assert type(plain) is dict
    assert plain == {"100000000": "x"}


def test_awaitable_values_resolve_to_transformed_results() -> None:
    async def fetch_profile():
        profile = Node()
        profile.handle = "ada"
        return profile

    holder = Node()
    holder.profile = fetch_profile()

    plain = instance_to_plain(holder)

    assert asyncio.iscoroutine(plain["profile"])
    assert asyncio.run(plain["profile"]) == {"handle": "ada"}


def test_rejected_awaitables_propagate_when_awaited() -> None:
    async def broken():
        raise ValueError("lookup failed")

    holder = Node()
    holder.profile = broken()

    plain = instance_to_plain(holder)

    with pytest.raises(ValueError, match="lookup failed"):
        asyncio.run(plain["profile"])


def test_transformation_handler_sees_every_step() -> None:
    seen: list[tuple[int, object]] = []

    def handler(context: TransformContext, executor: TransformExecutor):
        seen.append((context.depth, context.value))
        if context.value == "secret":
            return "***"
        return executor.do_transform(context)

    leaf = Node()
    leaf.word = "secret"
    root = Node()
    root.leaf = leaf
    root.tags = ["a"]

    plain = instance_to_plain(root, transformation_handler=handler)

    assert plain == {"leaf": {"word": "***"}, "tags": ["a"]}
    assert [depth for depth, _ in seen] == [0, 1, 2, 1, 2]


def test_executor_handles_nested_calls_from_custom_code() -> None:
    executor = TransformExecutor(TransformDirection.INSTANCE_TO_PLAIN)
    node = Node()
    node.value = 1

    assert executor.transform([node, node]) == [{"value": 1}, {"value": 1}]


def test_class_valued_attributes_are_passed_through() -> None:
    column = Node()
    column.python_type = tuple
    column.choices = [list, dict]

    assert instance_to_plain(column) == {"python_type": tuple, "choices": [list, dict]}

    clone = instance_to_instance(column)
    assert clone.python_type is tuple
    assert clone.choices == [list, dict]


def test_self_referencing_models_nest() -> None:
    @model
    class Category:
        name: Annotated[str, Expose()]
        parent: Annotated[Optional[Category], Type(Category)]

    built = plain_to_instance(Category, {"name": "leaf", "parent": {"name": "root", "parent": None}})

    assert type(built.parent) is Category
    assert built.parent.name == "root"
    assert built.parent.parent is None
    assert instance_to_plain(built) == {"name": "leaf", "parent": {"name": "root", "parent": None}}
