"""Numpy-backed raster grid.

A ``Grid`` holds its geometry (extent, cellsize, NoData value) eagerly and
its value matrix in an explicit ``_Unloaded | _Loaded`` state.  Values are
read from the backing file on first access and can be released again to
bound peak memory.

Row 0 of the value matrix is the top row (at ``extent.yur``).
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from idfexp.model.extent import TOLERANCE, Extent
from idfexp.model.metadata import Metadata

from . import _idf
from ._scale import downscale, upscale

logger = logging.getLogger(__name__)

DEFAULT_NODATA = -9999.0


# ---------------------------------------------------------------------------
# Value state
# ---------------------------------------------------------------------------

@dataclass
class _Unloaded:
    """Values live only in the backing file."""

    path: Path


@dataclass
class _Loaded:
    values: np.ndarray


# ---------------------------------------------------------------------------
# Elementwise operations
# ---------------------------------------------------------------------------

_ARITHMETIC: dict[str, Callable] = {
    "+": np.add,
    "-": np.subtract,
    "*": np.multiply,
    "/": np.divide,
    "^": np.power,
}

_COMPARISON: dict[str, Callable] = {
    "==": np.equal,
    "!=": np.not_equal,
    ">": np.greater,
    ">=": np.greater_equal,
    "<": np.less,
    "<=": np.less_equal,
}

_LOGICAL: dict[str, Callable] = {
    "&&": np.logical_and,
    "||": np.logical_or,
}


def _is_nodata(values: np.ndarray, nodata: float) -> np.ndarray:
    if math.isnan(nodata):
        return np.isnan(values)
    return values == np.float32(nodata)


def _same_float(a: float, b: float) -> bool:
    if math.isnan(a) or math.isnan(b):
        return math.isnan(a) and math.isnan(b)
    return a == b


class Grid:
    """Rectangular raster with equidistant cells.

    Parameters
    ----------
    extent : Extent
        Spatial bounding box.
    x_cellsize : float
        Cell width.
    y_cellsize : float | None
        Cell height; defaults to ``x_cellsize``.
    nodata_value : float
        Sentinel for missing cells.
    values : np.ndarray | None
        Value matrix.  When omitted and no *path* is given the grid is
        filled with NoData.
    path : Path | None
        Backing file.  A grid with a path and no values starts unloaded.
    name : str | None
        Display name, defaults to the file stem.
    shape : tuple[int, int] | None
        (nrow, ncol) for an unloaded grid; derived from extent otherwise.
    """

    is_constant = False

    def __init__(
        self,
        extent: Extent,
        x_cellsize: float,
        y_cellsize: float | None = None,
        nodata_value: float = DEFAULT_NODATA,
        values: np.ndarray | None = None,
        *,
        path: str | Path | None = None,
        name: str | None = None,
        shape: tuple[int, int] | None = None,
        top_level: float | None = None,
        bot_level: float | None = None,
    ) -> None:
        if x_cellsize <= 0:
            raise ValueError(f"Cellsize must be positive, got {x_cellsize}")
        self.extent = extent
        self.x_cellsize = float(x_cellsize)
        self.y_cellsize = float(y_cellsize if y_cellsize is not None else x_cellsize)
        self.nodata_value = float(nodata_value)
        self.nodata_calculation_value: float | None = None
        self.path = Path(path) if path is not None else None
        self.name = name or (self.path.stem if self.path is not None else "grid")
        self.top_level = top_level
        self.bot_level = bot_level

        if values is not None:
            values = np.asarray(values, dtype=np.float32)
            if values.ndim != 2:
                raise ValueError(f"Grid values must be 2-dimensional, got shape {values.shape}")
            self._shape = values.shape
            self._state: _Unloaded | _Loaded = _Loaded(values)
        else:
            self._shape = shape or (
                int(round(extent.height / self.y_cellsize)),
                int(round(extent.width / self.x_cellsize)),
            )
            if self.path is not None:
                self._state = _Unloaded(self.path)
            else:
                self._state = _Loaded(
                    np.full(self._shape, self.nodata_value, dtype=np.float32)
                )

    @classmethod
    def from_array(
        cls,
        values,
        xll: float = 0.0,
        yll: float = 0.0,
        cellsize: float = 1.0,
        nodata_value: float = DEFAULT_NODATA,
        name: str | None = None,
    ) -> Grid:
        """Build a grid from a nested list or array, top row first."""
        values = np.asarray(values, dtype=np.float32)
        if values.ndim == 1:
            values = values.reshape(1, -1)
        nrow, ncol = values.shape
        extent = Extent(xll=xll, yll=yll, xur=xll + ncol * cellsize, yur=yll + nrow * cellsize)
        return cls(extent, cellsize, cellsize, nodata_value, values, name=name)

    @classmethod
    def read(cls, path: str | Path) -> Grid:
        """Read the header of an IDF file; values are loaded on first use."""
        path = Path(path)
        header = _idf.read_header(path)
        if math.isnan(header.nodata):
            logger.warning("NoData value of %s is NaN, this may give unexpected results", path)
        if header.ncol == 0 or header.nrow == 0:
            logger.warning("Grid %s is empty", path)
        extent = Extent(xll=header.xmin, yll=header.ymin, xur=header.xmax, yur=header.ymax)
        return cls(
            extent,
            header.dx,
            header.dy,
            header.nodata,
            path=path,
            shape=(header.nrow, header.ncol),
            top_level=header.top,
            bot_level=header.bot,
        )

    def write(self, path: str | Path, metadata: Metadata | None = None) -> Path:
        """Write this grid as an IDF file, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        _idf.write_idf(
            path,
            self.values,
            self.extent.xll,
            self.extent.yll,
            self.x_cellsize,
            self.y_cellsize,
            self.nodata_value,
            top=self.top_level,
            bot=self.bot_level,
        )
        if metadata is not None:
            metadata.write(path)
        return path

    # -----------------------------------------------------------------------
    # Value state
    # -----------------------------------------------------------------------

    @property
    def values(self) -> np.ndarray:
        if isinstance(self._state, _Unloaded):
            header = _idf.read_header(self._state.path)
            self._state = _Loaded(_idf.read_values(self._state.path, header))
        return self._state.values

    @property
    def is_loaded(self) -> bool:
        return isinstance(self._state, _Loaded)

    def ensure_loaded(self) -> Grid:
        self.values
        return self

    def release_memory(self) -> bool:
        """Drop the value matrix if it can be re-read from the backing file."""
        if self.path is None or not self.path.exists():
            return False
        self._state = _Unloaded(self.path)
        return True

    # -----------------------------------------------------------------------
    # Geometry
    # -----------------------------------------------------------------------

    @property
    def nrows(self) -> int:
        return self._shape[0]

    @property
    def ncols(self) -> int:
        return self._shape[1]

    def same_geometry(self, other: Grid) -> bool:
        return (
            self._shape == other._shape
            and abs(self.x_cellsize - other.x_cellsize) <= TOLERANCE
            and abs(self.y_cellsize - other.y_cellsize) <= TOLERANCE
            and self.extent.matches(other.extent)
        )

    def nodata_mask(self) -> np.ndarray:
        return _is_nodata(self.values, self.nodata_value)

    def _derive(self, values: np.ndarray, name: str | None = None, nodata_value: float | None = None,
                extent: Extent | None = None) -> Grid:
        return Grid(
            extent or self.extent,
            self.x_cellsize,
            self.y_cellsize,
            self.nodata_value if nodata_value is None else nodata_value,
            values,
            name=name or self.name,
            top_level=self.top_level,
            bot_level=self.bot_level,
        )

    def _calc_values(self) -> tuple[np.ndarray, np.ndarray]:
        """Values used in calculations plus the mask of cells that stay NoData."""
        values = self.values.astype(np.float64)
        mask = _is_nodata(self.values, self.nodata_value)
        if self.nodata_calculation_value is not None:
            values = np.where(mask, self.nodata_calculation_value, values)
            mask = np.zeros_like(mask)
        return values, mask

    def _sample_onto(self, target: Grid) -> tuple[np.ndarray, np.ndarray]:
        """Look up this grid's values at the cell centres of *target*."""
        values, mask = self._calc_values()
        xs = target.extent.xll + (np.arange(target.ncols) + 0.5) * target.x_cellsize
        ys = target.extent.yur - (np.arange(target.nrows) + 0.5) * target.y_cellsize
        cols = np.floor((xs - self.extent.xll) / self.x_cellsize).astype(int)
        rows = np.floor((self.extent.yur - ys) / self.y_cellsize).astype(int)
        col_ok = (cols >= 0) & (cols < self.ncols)
        row_ok = (rows >= 0) & (rows < self.nrows)
        inside = row_ok[:, None] & col_ok[None, :]

        out = np.full((target.nrows, target.ncols), self.nodata_value, dtype=np.float64)
        out_mask = np.ones((target.nrows, target.ncols), dtype=bool)
        rr, cc = np.nonzero(inside)
        out[rr, cc] = values[rows[rr], cols[cc]]
        out_mask[rr, cc] = mask[rows[rr], cols[cc]]
        return out, out_mask

    def sample_to(self, target: Grid) -> Grid:
        """Resample this grid onto the geometry of *target*."""
        values, mask = self._sample_onto(target)
        values[mask] = self.nodata_value
        return Grid(
            target.extent, target.x_cellsize, target.y_cellsize,
            self.nodata_value, values, name=self.name,
        )

    def _operand(self, other) -> tuple[np.ndarray | float, np.ndarray | bool]:
        if getattr(other, "is_constant", False):
            value = float(other.value)
            return value, _same_float(value, other.nodata_value)
        if self.same_geometry(other):
            return other._calc_values()
        return other._sample_onto(self)

    # -----------------------------------------------------------------------
    # Operators
    # -----------------------------------------------------------------------

    def apply(self, op: str, other, reverse: bool = False) -> Grid:
        """Apply binary operator *op* with *other* (grid or constant grid).

        The result takes this grid's geometry and NoData value.  With
        *reverse* the operands are swapped (``other op self``).
        """
        left, left_mask = self._calc_values()
        right, right_mask = self._operand(other)
        if reverse:
            left, right = right, left

        with np.errstate(all="ignore"):
            if op in _ARITHMETIC:
                result = _ARITHMETIC[op](left, right)
                mask = left_mask | right_mask | ~np.isfinite(result)
                result = np.where(mask, self.nodata_value, result)
            elif op in _COMPARISON:
                result = _COMPARISON[op](left, right).astype(np.float64)
            elif op in _LOGICAL:
                result = _LOGICAL[op](left != 0, right != 0).astype(np.float64)
            else:
                raise ValueError(f"Unknown grid operator: {op!r}")
        result = np.broadcast_to(result, self._shape)
        return self._derive(np.array(result, dtype=np.float32))

    def __add__(self, other) -> Grid:
        return self.apply("+", other)

    def __sub__(self, other) -> Grid:
        return self.apply("-", other)

    def __mul__(self, other) -> Grid:
        return self.apply("*", other)

    def __truediv__(self, other) -> Grid:
        return self.apply("/", other)

    def __pow__(self, other) -> Grid:
        return self.apply("^", other)

    def __neg__(self) -> Grid:
        values, mask = self._calc_values()
        return self._derive(np.where(mask, self.nodata_value, -values).astype(np.float32))

    def is_equal(self, other) -> Grid:
        return self.apply("==", other)

    def is_not_equal(self, other) -> Grid:
        return self.apply("!=", other)

    def is_greater(self, other) -> Grid:
        return self.apply(">", other)

    def is_greater_equal(self, other) -> Grid:
        return self.apply(">=", other)

    def is_lesser(self, other) -> Grid:
        return self.apply("<", other)

    def is_lesser_equal(self, other) -> Grid:
        return self.apply("<=", other)

    def logical_and(self, other) -> Grid:
        return self.apply("&&", other)

    def logical_or(self, other) -> Grid:
        return self.apply("||", other)

    # -----------------------------------------------------------------------
    # Extent operations
    # -----------------------------------------------------------------------

    def clip(self, extent: Extent) -> Grid | None:
        """Cells overlapping *extent*, or None if nothing remains."""
        col0 = max(0, math.floor((extent.xll - self.extent.xll) / self.x_cellsize + TOLERANCE))
        col1 = min(self.ncols, math.ceil((extent.xur - self.extent.xll) / self.x_cellsize - TOLERANCE))
        row0 = max(0, math.floor((self.extent.yur - extent.yur) / self.y_cellsize + TOLERANCE))
        row1 = min(self.nrows, math.ceil((self.extent.yur - extent.yll) / self.y_cellsize - TOLERANCE))
        if col1 <= col0 or row1 <= row0:
            return None
        clipped = Extent(
            xll=self.extent.xll + col0 * self.x_cellsize,
            yll=self.extent.yur - row1 * self.y_cellsize,
            xur=self.extent.xll + col1 * self.x_cellsize,
            yur=self.extent.yur - row0 * self.y_cellsize,
        )
        return self._derive(self.values[row0:row1, col0:col1].copy(), extent=clipped)

    def enlarge(self, extent: Extent) -> Grid:
        """Grow outward in whole cells to cover *extent*, filling with NoData."""
        left = max(0, math.ceil((self.extent.xll - extent.xll) / self.x_cellsize - TOLERANCE))
        right = max(0, math.ceil((extent.xur - self.extent.xur) / self.x_cellsize - TOLERANCE))
        top = max(0, math.ceil((extent.yur - self.extent.yur) / self.y_cellsize - TOLERANCE))
        bottom = max(0, math.ceil((self.extent.yll - extent.yll) / self.y_cellsize - TOLERANCE))
        values = np.pad(
            self.values, ((top, bottom), (left, right)),
            mode="constant", constant_values=np.float32(self.nodata_value),
        )
        enlarged = Extent(
            xll=self.extent.xll - left * self.x_cellsize,
            yll=self.extent.yll - bottom * self.y_cellsize,
            xur=self.extent.xur + right * self.x_cellsize,
            yur=self.extent.yur + top * self.y_cellsize,
        )
        return self._derive(values, extent=enlarged)

    def bounding_box(self) -> Grid:
        """Trim to the smallest rectangle holding all non-NoData cells."""
        valid = ~self.nodata_mask()
        rows = np.flatnonzero(valid.any(axis=1))
        cols = np.flatnonzero(valid.any(axis=0))
        if rows.size == 0:
            return self.copy()
        box = Extent(
            xll=self.extent.xll + cols[0] * self.x_cellsize,
            yll=self.extent.yur - (rows[-1] + 1) * self.y_cellsize,
            xur=self.extent.xll + (cols[-1] + 1) * self.x_cellsize,
            yur=self.extent.yur - rows[0] * self.y_cellsize,
        )
        return self.clip(box)

    # -----------------------------------------------------------------------
    # Value operations
    # -----------------------------------------------------------------------

    def copy(self, name: str | None = None) -> Grid:
        duplicate = self._derive(self.values.copy(), name=name)
        duplicate.nodata_calculation_value = self.nodata_calculation_value
        return duplicate

    def round_values(self, decimals: int) -> Grid:
        values = self.values
        mask = self.nodata_mask()
        rounded = np.where(mask, values, np.round(values.astype(np.float64), int(decimals)))
        return self._derive(rounded.astype(np.float32))

    def replace_values(self, mask: Grid, replacement) -> Grid:
        """Copy with cells where *mask* is nonzero taken from *replacement*.

        *replacement* is a number, a constant grid or a grid; a grid is
        sampled onto this grid's geometry first.
        """
        if self.same_geometry(mask):
            selector = mask.values
        else:
            selector = mask.sample_to(self).values
        selector = (selector != 0) & ~_is_nodata(selector, mask.nodata_value)

        if isinstance(replacement, Grid):
            if self.same_geometry(replacement):
                source = replacement.values
            else:
                source = replacement.sample_to(self).values
            source_mask = _is_nodata(source, replacement.nodata_value)
            source = np.where(source_mask, np.float32(self.nodata_value), source)
        else:
            source = np.float32(getattr(replacement, "value", replacement))

        values = np.where(selector, source, self.values).astype(np.float32)
        return self._derive(values)

    def with_nodata_value(self, nodata_value: float) -> Grid:
        """Remap the NoData sentinel; returns self when it is unchanged."""
        if _same_float(nodata_value, self.nodata_value):
            return self
        values = self.values.copy()
        values[self.nodata_mask()] = np.float32(nodata_value)
        return self._derive(values, nodata_value=nodata_value)

    def scale_down(self, cellsize: float, method: int = 0) -> Grid:
        return downscale(self, cellsize, method)

    def scale_up(self, cellsize: float, method: int = 0) -> Grid:
        return upscale(self, cellsize, method)

    def __repr__(self) -> str:
        return (
            f"Grid(name={self.name!r}, extent={self.extent}, "
            f"cellsize={self.x_cellsize:g}, shape={self._shape}, loaded={self.is_loaded})"
        )
