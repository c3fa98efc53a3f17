from __future__ import annotations

from typing import Annotated, Optional

import pytest

from graph_transform.contracts import Discriminator, MetadataRegistrationError, Strategy, SubType, TransformDirection
from graph_transform.declarations import (
    Exclude,
    Expose,
    Transform,
    Type,
    TypedStructure,
    exclude_member,
    expose_member,
    model,
    register_model,
)
from graph_transform.metadata import MetadataRegistry, default_registry


def test_model_registers_field_markers_into_the_chosen_registry(registry: MetadataRegistry) -> None:
    class Photo:
        pass

    def shout(params):
        return params.value.upper()

    @model(exclude_all=True, registry=registry)
    class Album:
        name: Annotated[str, Expose(name="title", groups=["public"], since=1, until=3)]
        cover: Annotated[Photo, Type(Photo)]
        photos: Annotated[list[Photo], TypedStructure(set, Photo)]
        owner_id: Annotated[int, Exclude(to_plain_only=True)]
        label: Annotated[str, Transform(shout, to_class_only=True)]
        plain_note: str

    expose = registry.find_expose_rule(Album, "name")
    assert expose is not None
    assert expose.options.name == "title"
    assert expose.options.groups == ("public",)
    assert (expose.options.since, expose.options.until) == (1, 3)

    cover = registry.find_type_rule(Album, "cover")
    assert cover is not None
    assert cover.reflected_type is Photo
    assert cover.container_type is None

    photos = registry.find_type_rule(Album, "photos")
    assert photos is not None
    assert photos.container_type is set
    assert photos.reflected_type is None

    assert registry.get_excluded_fields(Album, TransformDirection.INSTANCE_TO_PLAIN) == ["owner_id"]
    assert registry.get_excluded_fields(Album, TransformDirection.PLAIN_TO_INSTANCE) == []

    (transform,) = registry.find_transform_rules(Album, "label", TransformDirection.PLAIN_TO_INSTANCE)
    assert transform.transform_fn is shout
    assert registry.find_transform_rules(Album, "label", TransformDirection.INSTANCE_TO_PLAIN) == []

    assert registry.get_strategy(Album) is Strategy.EXCLUDE_ALL
    assert registry.find_expose_rule(Album, "plain_note") is None
    assert default_registry.find_expose_rule(Album, "name") is None


def test_bare_model_decorator_uses_the_default_registry() -> None:
    @model
    class Tag:
        label: Annotated[str, Expose()]

    assert default_registry.find_expose_rule(Tag, "label") is not None
    assert default_registry.get_strategy(Tag) is Strategy.NONE


def test_register_model_can_be_called_directly(registry: MetadataRegistry) -> None:
    class Legacy:
        code: Annotated[str, Expose()]

    assert register_model(Legacy, expose_all=True, registry=registry) is Legacy
    assert registry.get_strategy(Legacy) is Strategy.EXPOSE_ALL
    assert registry.get_exposed_fields(Legacy, TransformDirection.INSTANCE_TO_PLAIN) == ["code"]


def test_type_marker_with_resolver_and_discriminator(registry: MetadataRegistry) -> None:
    class Cat:
        pass

    def resolver(context):
        return Cat

    pets = Discriminator("kind", [SubType("cat", Cat)])

    @model(registry=registry)
    class Owner:
        pet: Annotated[object, Type(resolver, discriminator=pets, keep_discriminator_property=True)]

    rule = registry.find_type_rule(Owner, "pet")
    assert rule is not None
    assert rule.type_resolver is resolver
    assert rule.discriminator is pets
    assert rule.options.keep_discriminator_property is True


def test_member_decorators_register_methods_and_properties(registry: MetadataRegistry) -> None:
    @model(registry=registry)
    class Person:
        @expose_member(name="fullName", groups=["profile"])
        def full_name(self) -> str:
            return "Ada Lovelace"

        @property
        @exclude_member(to_plain_only=True)
        def password_hash(self) -> str:
            return "x"

        def helper(self) -> None:
            return None

    rule = registry.find_expose_rule(Person, "full_name")
    assert rule is not None
    assert rule.options.name == "fullName"
    assert rule.options.groups == ("profile",)
    assert registry.get_excluded_fields(Person, TransformDirection.INSTANCE_TO_PLAIN) == ["password_hash"]
    assert registry.find_expose_rule(Person, "helper") is None


def test_typed_structure_rejects_non_container_types() -> None:
    class Photo:
        pass

    with pytest.raises(MetadataRegistrationError):
        TypedStructure(str, Photo)
    with pytest.raises(ValueError):
        TypedStructure("list", Photo)  # type: ignore[arg-type]


def test_type_marker_rejects_non_callable_targets(registry: MetadataRegistry) -> None:
    with pytest.raises(MetadataRegistrationError):

        @model(registry=registry)
        class Broken:
            value: Annotated[int, Type(42)]  # type: ignore[arg-type]


def test_unresolvable_string_annotations_raise_registration_errors(registry: MetadataRegistry) -> None:
    with pytest.raises(MetadataRegistrationError, match="Dangling"):

        @model(registry=registry)
        class Dangling:
            value: "Annotated[int, NoSuchMarker()]"


def test_annotations_resolve_the_class_itself_and_names_local_to_its_scope(registry: MetadataRegistry) -> None:
    class Photo:
        pass

    @model(registry=registry)
    class Category:
        cover: Annotated[Photo, Type(Photo)]
        parent: Annotated[Optional[Category], Type(lambda _: Category)]

    cover = registry.find_type_rule(Category, "cover")
    parent = registry.find_type_rule(Category, "parent")
    assert cover is not None and cover.reflected_type is Photo
    assert parent is not None and parent.reflected_type is Category
    assert parent.resolve_type(None) is Category  # type: ignore[arg-type]
