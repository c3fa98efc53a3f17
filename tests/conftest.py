from __future__ import annotations

from collections.abc import Iterator

import pytest

from graph_transform.engine import TransformExecutor
from graph_transform.contracts import TransformDirection
from graph_transform.metadata import MetadataRegistry, default_registry


@pytest.fixture(autouse=True)
def clean_default_registry() -> Iterator[None]:
    default_registry.clear()
    yield
    default_registry.clear()


@pytest.fixture
def registry() -> MetadataRegistry:
    return MetadataRegistry()


@pytest.fixture
def to_plain_executor(registry: MetadataRegistry) -> TransformExecutor:
    return TransformExecutor(TransformDirection.INSTANCE_TO_PLAIN, registry=registry)
