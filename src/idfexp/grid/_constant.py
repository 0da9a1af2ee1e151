"""Constant-valued grid.

A ``ConstantGrid`` has no extent: its single value broadcasts over any
grid it is combined with.  Constants never touch the filesystem.
"""

from __future__ import annotations

import math

import numpy as np

from ._grid import Grid, _same_float


def _scalar(op: str, left: float, right: float) -> float:
    with np.errstate(all="ignore"):
        a, b = np.float64(left), np.float64(right)
        if op == "+":
            return float(a + b)
        if op == "-":
            return float(a - b)
        if op == "*":
            return float(a * b)
        if op == "/":
            return float(a / b)
        if op == "^":
            return float(np.power(a, b))
        if op == "==":
            return float(a == b)
        if op == "!=":
            return float(a != b)
        if op == ">":
            return float(a > b)
        if op == ">=":
            return float(a >= b)
        if op == "<":
            return float(a < b)
        if op == "<=":
            return float(a <= b)
        if op == "&&":
            return float(a != 0 and b != 0)
        if op == "||":
            return float(a != 0 or b != 0)
    raise ValueError(f"Unknown grid operator: {op!r}")


class ConstantGrid:
    """Grid-like wrapper around a single value."""

    is_constant = True
    extent = None
    path = None
    top_level = None
    bot_level = None

    def __init__(self, value: float, nodata_value: float = math.nan, name: str | None = None) -> None:
        self.value = float(value)
        self.nodata_value = float(nodata_value)
        self.nodata_calculation_value: float | None = None
        self.name = name or f"{self.value:g}"

    @property
    def x_cellsize(self) -> float:
        return math.nan

    @property
    def y_cellsize(self) -> float:
        return math.nan

    @property
    def is_loaded(self) -> bool:
        return True

    @property
    def is_nodata(self) -> bool:
        return _same_float(self.value, self.nodata_value)

    def ensure_loaded(self) -> ConstantGrid:
        return self

    def release_memory(self) -> bool:
        return False

    def apply(self, op: str, other, reverse: bool = False):
        """Apply *op*; a grid operand broadcasts this value over its cells."""
        if not getattr(other, "is_constant", False):
            return other.apply(op, self, reverse=not reverse)
        left, right = (other.value, self.value) if reverse else (self.value, other.value)
        if self.is_nodata or other.is_nodata:
            source = self if self.is_nodata else other
            return ConstantGrid(source.nodata_value, source.nodata_value)
        result = _scalar(op, left, right)
        if not math.isfinite(result) and not math.isnan(self.nodata_value):
            result = self.nodata_value
        return ConstantGrid(result, self.nodata_value)

    def __add__(self, other):
        return self.apply("+", other)

    def __sub__(self, other):
        return self.apply("-", other)

    def __mul__(self, other):
        return self.apply("*", other)

    def __truediv__(self, other):
        return self.apply("/", other)

    def __pow__(self, other):
        return self.apply("^", other)

    def __neg__(self) -> ConstantGrid:
        return ConstantGrid(-self.value, self.nodata_value)

    def copy(self, name: str | None = None) -> ConstantGrid:
        duplicate = ConstantGrid(self.value, self.nodata_value, name or self.name)
        duplicate.nodata_calculation_value = self.nodata_calculation_value
        return duplicate

    def round_values(self, decimals: int) -> ConstantGrid:
        return ConstantGrid(round(self.value, int(decimals)), self.nodata_value)

    def with_nodata_value(self, nodata_value: float) -> ConstantGrid:
        if _same_float(nodata_value, self.nodata_value):
            return self
        value = nodata_value if self.is_nodata else self.value
        return ConstantGrid(value, nodata_value)

    def allocate(self, like: Grid) -> Grid:
        """Expand to a full grid with the geometry of *like*."""
        values = np.full((like.nrows, like.ncols), self.value, dtype=np.float32)
        return Grid(
            like.extent, like.x_cellsize, like.y_cellsize, like.nodata_value,
            values, name=self.name,
        )

    def __repr__(self) -> str:
        return f"ConstantGrid({self.value:g})"
