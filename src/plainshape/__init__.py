"""
plainshape distribution import namespace.

Re-exports the public surface of the core `graph_transform` package so
callers can write ``from plainshape import plain_to_instance, model, Expose``.
"""

from importlib.metadata import PackageNotFoundError, version

# src/plainshape/__init__.py
from graph_transform.api import (
    ModelTransformer,
    class_to_class,
    class_to_class_from_exist,
    class_to_plain,
    class_to_plain_from_exist,
    default_transformer,
    deserialize,
    deserialize_array,
    instance_to_existing_instance,
    instance_to_existing_plain,
    instance_to_instance,
    instance_to_plain,
    plain_to_class,
    plain_to_class_from_exist,
    plain_to_existing_instance,
    plain_to_instance,
    serialize,
)
from graph_transform.contracts import (
    MISSING,
    Discriminator,
    GraphTransformError,
    MetadataRegistrationError,
    Strategy,
    SubType,
    TargetMap,
    TransformContext,
    TransformDirection,
    TransformFnParams,
    TransformOptions,
    TypeHelpContext,
)
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
from graph_transform.engine import TransformExecutor
from graph_transform.metadata import MetadataRegistry, default_registry

try:
    from ._version import __version__  # canonical
except ImportError:  # pragma: no cover - fallback for editable/local non-built environments
    try:
        __version__ = version("plainshape")
    except PackageNotFoundError:
        __version__ = "0+unknown"

__all__ = [
    "Discriminator",
    "Exclude",
    "Expose",
    "GraphTransformError",
    "MISSING",
    "MetadataRegistrationError",
    "MetadataRegistry",
    "ModelTransformer",
    "Strategy",
    "SubType",
    "TargetMap",
    "Transform",
    "TransformContext",
    "TransformDirection",
    "TransformExecutor",
    "TransformFnParams",
    "TransformOptions",
    "Type",
    "TypeHelpContext",
    "TypedStructure",
    "__version__",
    "class_to_class",
    "class_to_class_from_exist",
    "class_to_plain",
    "class_to_plain_from_exist",
    "default_registry",
    "default_transformer",
    "deserialize",
    "deserialize_array",
    "exclude_member",
    "expose_member",
    "instance_to_existing_instance",
    "instance_to_existing_plain",
    "instance_to_instance",
    "instance_to_plain",
    "model",
    "plain_to_class",
    "plain_to_class_from_exist",
    "plain_to_existing_instance",
    "plain_to_instance",
    "register_model",
    "serialize",
]
