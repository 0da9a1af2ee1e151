"""Spatial extent reconciliation of operands before binary operations.

Every non-constant operand of a binary operation or function is brought
to a common target extent: a fixed extent from the settings if one is
configured, otherwise an operation-specific default.  Constants are
exempt; their value broadcasts over any extent.
"""

from __future__ import annotations

import logging
from enum import Enum

import numpy as np

from idfexp.grid import Grid
from idfexp.model.extent import Extent
from idfexp.model.settings import ExpressionSettings

logger = logging.getLogger(__name__)


class ExtentPolicy(str, Enum):
    """Default target extent when no fixed extent is configured."""

    FIRST = "first"
    """Extent of the first non-constant operand (arithmetic, min, max)."""

    UNION = "union"
    """Union of all non-constant operand extents (if-then-else)."""


def target_extent(operands, policy: ExtentPolicy, settings: ExpressionSettings) -> Extent | None:
    if settings.extent is not None:
        return settings.extent
    extents = [grid.extent for grid in operands if not grid.is_constant]
    if not extents:
        return None
    if policy == ExtentPolicy.FIRST:
        return extents[0]
    result = extents[0]
    for extent in extents[1:]:
        result = result.union(extent)
    return result


def reconcile(grid, target: Extent | None, label: str = "grid"):
    """Enlarge and/or clip *grid* to *target*.

    A grid already at the target extent is returned unchanged.
    """
    if grid.is_constant or target is None:
        return grid
    if grid.extent.matches(target):
        return grid
    result = grid
    if not result.extent.contains(target):
        logger.debug("Enlarging %s to extent: %s", label, target)
        result = result.enlarge(target)
    if not target.contains(result.extent):
        logger.debug("Clipping %s to extent: %s", label, target)
        result = clip_or_dummy(result, target)
    return result


def clip_or_dummy(grid: Grid, extent: Extent) -> Grid:
    """Clip *grid*; an empty result is replaced by a 1x1 grid with value 1."""
    clipped = None if extent.is_empty() else grid.clip(extent)
    if clipped is not None:
        return clipped
    logger.warning(
        "Clipping %s to extent %s leaves no cells, a dummy grid with value 1 is used",
        grid.name, extent,
    )
    cellsize = grid.x_cellsize
    dummy_extent = Extent(
        xll=extent.xll, yll=extent.yll, xur=extent.xll + cellsize, yur=extent.yll + cellsize
    )
    return Grid(
        dummy_extent, cellsize, cellsize, grid.nodata_value,
        np.ones((1, 1), dtype=np.float32), name=grid.name,
    )
