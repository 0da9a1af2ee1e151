"""Script variable bindings.

A binding exclusively owns its grid: rebinding a name replaces the entry,
it never creates a second one.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from .expressions import ExpressionType
from .metadata import Metadata


class VariableBinding(BaseModel):
    """A named grid with its provenance and persistence state."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    grid: Any
    expression_type: ExpressionType = ExpressionType.UNDEFINED
    prefix: str | None = None
    metadata: Metadata | None = None
    is_persisted: bool = False


class VariableTable:
    """Case-insensitive name -> ``VariableBinding`` table."""

    def __init__(self) -> None:
        self._bindings: dict[str, VariableBinding] = {}

    def bind(self, binding: VariableBinding) -> VariableBinding:
        self._bindings[binding.name.upper()] = binding
        return binding

    def get(self, name: str) -> VariableBinding | None:
        return self._bindings.get(name.upper())

    def __contains__(self, name: str) -> bool:
        return name.upper() in self._bindings

    def __getitem__(self, name: str) -> VariableBinding:
        binding = self.get(name)
        if binding is None:
            raise KeyError(name)
        return binding

    def __len__(self) -> int:
        return len(self._bindings)

    def __iter__(self):
        return iter(self._bindings.values())

    def names_longest_first(self) -> list[str]:
        """Bound names ordered so no name is tried before a longer one."""
        return sorted((b.name for b in self._bindings.values()), key=len, reverse=True)

    def owns_grid(self, grid) -> bool:
        return any(b.grid is grid for b in self._bindings.values())

    def release_all(self) -> int:
        """Release in-memory values of every bound grid; returns the count released."""
        return sum(1 for b in self._bindings.values() if b.grid.release_memory())
