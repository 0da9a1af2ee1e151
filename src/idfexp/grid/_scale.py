"""Changing the cellsize of a grid.

Downscaling (smaller cells) samples every new cell centre from the source.
Upscaling (larger cells) groups the source cells by the new cell their
centre falls in and aggregates each group with the chosen method.  The
upscaled grid keeps the upper-left corner of the source.
"""

from __future__ import annotations

import math
from enum import IntEnum

import numpy as np

from idfexp.model.extent import TOLERANCE, Extent


class DownscaleMethod(IntEnum):
    BLOCK = 0
    DIVIDE = 1


class UpscaleMethod(IntEnum):
    MEAN = 0
    MEDIAN = 1
    MINIMUM = 2
    MAXIMUM = 3
    MOST_OCCURRING = 4
    BOUNDARY = 5
    SUM = 6
    MOST_OCCURRING_NODATA = 7


def _most_occurring(values: np.ndarray) -> float:
    unique, counts = np.unique(values, return_counts=True)
    return float(unique[np.argmax(counts)])


def _boundary(values: np.ndarray) -> float:
    # Negative codes mark constant-head boundaries and win over active cells.
    negative = values[values < 0]
    if negative.size:
        return float(negative.min())
    return float(values.max())


_AGGREGATORS = {
    UpscaleMethod.MEAN: lambda v: float(v.mean()),
    UpscaleMethod.MEDIAN: lambda v: float(np.median(v)),
    UpscaleMethod.MINIMUM: lambda v: float(v.min()),
    UpscaleMethod.MAXIMUM: lambda v: float(v.max()),
    UpscaleMethod.MOST_OCCURRING: _most_occurring,
    UpscaleMethod.BOUNDARY: _boundary,
    UpscaleMethod.SUM: lambda v: float(v.sum()),
}


def downscale(grid, cellsize: float, method: int = DownscaleMethod.BLOCK):
    """Refine *grid* to *cellsize* over the same extent."""
    method = DownscaleMethod(method)
    ncols = max(1, int(round(grid.extent.width / cellsize)))
    nrows = max(1, int(round(grid.extent.height / cellsize)))
    template = type(grid)(
        grid.extent, cellsize, cellsize, grid.nodata_value,
        np.zeros((nrows, ncols), dtype=np.float32), name=grid.name,
    )
    result = grid.sample_to(template)
    if method == DownscaleMethod.DIVIDE:
        parts = (grid.x_cellsize * grid.y_cellsize) / (cellsize * cellsize)
        mask = result.nodata_mask()
        values = np.where(mask, result.values, result.values / parts)
        result = result._derive(values.astype(np.float32))
    result.top_level, result.bot_level = grid.top_level, grid.bot_level
    return result


def upscale(grid, cellsize: float, method: int = UpscaleMethod.MEAN):
    """Coarsen *grid* to *cellsize*, aggregating source cells per new cell."""
    method = UpscaleMethod(method)
    ncols = max(1, math.ceil(grid.extent.width / cellsize - TOLERANCE))
    nrows = max(1, math.ceil(grid.extent.height / cellsize - TOLERANCE))
    extent = Extent(
        xll=grid.extent.xll,
        yll=grid.extent.yur - nrows * cellsize,
        xur=grid.extent.xll + ncols * cellsize,
        yur=grid.extent.yur,
    )

    source = grid.values.astype(np.float64)
    nodata = grid.nodata_mask()
    xs = (np.arange(grid.ncols) + 0.5) * grid.x_cellsize
    ys = (np.arange(grid.nrows) + 0.5) * grid.y_cellsize
    target_cols = np.minimum((xs // cellsize).astype(int), ncols - 1)
    target_rows = np.minimum((ys // cellsize).astype(int), nrows - 1)
    cell_ids = (target_rows[:, None] * ncols + target_cols[None, :]).ravel()

    out = np.full(nrows * ncols, grid.nodata_value, dtype=np.float64)
    flat_values = source.ravel()
    flat_nodata = nodata.ravel()
    order = np.argsort(cell_ids, kind="stable")
    sorted_ids = cell_ids[order]
    boundaries = np.flatnonzero(np.diff(sorted_ids)) + 1
    for group in np.split(order, boundaries):
        if group.size == 0:
            continue
        cell = cell_ids[group[0]]
        if method == UpscaleMethod.MOST_OCCURRING_NODATA:
            # NoData competes like any other value
            out[cell] = _most_occurring(flat_values[group])
            continue
        valid = flat_values[group][~flat_nodata[group]]
        if valid.size:
            out[cell] = _AGGREGATORS[method](valid)

    return type(grid)(
        extent, cellsize, cellsize, grid.nodata_value,
        out.reshape(nrows, ncols).astype(np.float32),
        name=grid.name, top_level=grid.top_level, bot_level=grid.bot_level,
    )
