"""Rectangular spatial extents.

An ``Extent`` is the bounding box of a grid in model coordinates.  It is
immutable; every operation returns a new extent.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator

# Coordinates are compared with an absolute tolerance; IDF headers are
# single precision, so exact float equality is too strict.
TOLERANCE = 1e-4


class Extent(BaseModel):
    """Bounding box given by its lower-left and upper-right corners."""

    model_config = ConfigDict(frozen=True)

    xll: float
    yll: float
    xur: float
    yur: float

    @model_validator(mode="after")
    def _check_order(self) -> Extent:
        if self.xur < self.xll or self.yur < self.yll:
            raise ValueError(
                f"Extent upper-right corner ({self.xur}, {self.yur}) lies "
                f"below/left of lower-left corner ({self.xll}, {self.yll})"
            )
        return self

    @classmethod
    def from_string(cls, text: str) -> Extent:
        """Parse ``"xll,yll,xur,yur"`` (commas and/or whitespace)."""
        parts = text.replace(",", " ").split()
        if len(parts) != 4:
            raise ValueError(f"Expected 4 coordinates for extent, got: {text!r}")
        try:
            xll, yll, xur, yur = (float(p) for p in parts)
        except ValueError:
            raise ValueError(f"Invalid extent coordinates: {text!r}") from None
        return cls(xll=xll, yll=yll, xur=xur, yur=yur)

    @property
    def width(self) -> float:
        return self.xur - self.xll

    @property
    def height(self) -> float:
        return self.yur - self.yll

    def is_empty(self) -> bool:
        """True for a zero-area extent."""
        return self.width <= TOLERANCE or self.height <= TOLERANCE

    def matches(self, other: Extent | None, tolerance: float = TOLERANCE) -> bool:
        if other is None:
            return False
        return (
            abs(self.xll - other.xll) <= tolerance
            and abs(self.yll - other.yll) <= tolerance
            and abs(self.xur - other.xur) <= tolerance
            and abs(self.yur - other.yur) <= tolerance
        )

    def contains(self, other: Extent, tolerance: float = TOLERANCE) -> bool:
        """True if *other* lies completely within this extent."""
        return (
            other.xll >= self.xll - tolerance
            and other.yll >= self.yll - tolerance
            and other.xur <= self.xur + tolerance
            and other.yur <= self.yur + tolerance
        )

    def union(self, other: Extent | None) -> Extent:
        if other is None:
            return self
        return Extent(
            xll=min(self.xll, other.xll),
            yll=min(self.yll, other.yll),
            xur=max(self.xur, other.xur),
            yur=max(self.yur, other.yur),
        )

    def intersection(self, other: Extent) -> Extent | None:
        """Overlapping part of both extents, or None when they are disjoint."""
        xll = max(self.xll, other.xll)
        yll = max(self.yll, other.yll)
        xur = min(self.xur, other.xur)
        yur = min(self.yur, other.yur)
        if xur < xll or yur < yll:
            return None
        return Extent(xll=xll, yll=yll, xur=xur, yur=yur)

    def __str__(self) -> str:
        return f"({self.xll:g},{self.yll:g},{self.xur:g},{self.yur:g})"
