"""Raster grids consumed and produced by the expression engine.

Entry point::

    from idfexp.grid import Grid

    grid = Grid.read("heads.idf")      # header only, values load lazily
    doubled = grid * ConstantGrid(2)
    doubled.write("out/doubled.idf")
"""

from __future__ import annotations

from ._constant import ConstantGrid
from ._grid import DEFAULT_NODATA, Grid
from ._idf import IDFFormatError
from ._scale import DownscaleMethod, UpscaleMethod

__all__ = [
    "ConstantGrid",
    "DEFAULT_NODATA",
    "DownscaleMethod",
    "Grid",
    "IDFFormatError",
    "UpscaleMethod",
]
