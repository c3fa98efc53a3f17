from __future__ import annotations

from typing import Any, Optional, Protocol

from graph_transform.contracts import (
    TransformContext,
    TransformDirection,
    TransformFnParams,
    TransformOptions,
    TypeHelpContext,
)


class TransformRunner(Protocol):
    """Back-reference handed to callbacks so they can trigger nested transforms."""

    direction: TransformDirection
    options: TransformOptions

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
        """Transform ``value`` with the same direction, options and recursion guard."""
        ...

    def do_transform(self, context: TransformContext) -> Any:
        """Run the built-in algorithm for one step, bypassing any transformation handler."""
        ...


class TransformationHandler(Protocol):
    """Full override of the recursive dispatch; called for every step."""

    def __call__(self, context: TransformContext, executor: TransformRunner) -> Any:
        ...


class TypeResolver(Protocol):
    """Returns the concrete type for a field given the surrounding objects."""

    def __call__(self, context: TypeHelpContext) -> Any:
        ...


class FieldTransform(Protocol):
    """Custom per-field hook; returns the replacement value."""

    def __call__(self, params: TransformFnParams) -> Any:
        ...
