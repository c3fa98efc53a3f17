# graph_transform/recursion.py
from __future__ import annotations

from typing import Any


class RecursionGuard:
    """
    Objects currently on the transform path, by identity.

    Disabled guards accept every call and report nothing as visited. Each
    visited object may carry the structure being built for it so a cyclic
    reference can be pointed at the copy instead of the source.
    """

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self._stack: dict[int, tuple[Any, Any]] = {}

    def add(self, value: Any, built: Any = None) -> None:
        if self.enabled:
            self._stack[id(value)] = (value, built)

    def delete(self, value: Any) -> None:
        if self.enabled:
            self._stack.pop(id(value), None)

    def has(self, value: Any) -> bool:
        if not self.enabled:
            return False
        entry = self._stack.get(id(value))
        return entry is not None and entry[0] is value

    def built_for(self, value: Any) -> Any:
        """Structure being built for ``value``, or ``value`` itself when none was recorded."""
        entry = self._stack.get(id(value))
        if entry is None or entry[0] is not value or entry[1] is None:
            return value
        return entry[1]

    def __len__(self) -> int:
        return len(self._stack)
