"""iMOD IDF binary raster format.

Only single-precision, equidistant files are supported.  Layout (all
little-endian)::

    int32   1271                 record length marker
    int32   ncol, nrow
    float32 xmin, xmax, ymin, ymax
    float32 dmin, dmax, nodata
    uint8   ieq, itb, ivf, flag  ieq=0 equidistant, itb=1 levels follow
    float32 dx, dy
    float32 top, bot             only when itb=1
    float32 values[nrow * ncol]  row-major, top row first
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path

import numpy as np

SINGLE_PRECISION_MARKER = 1271
DOUBLE_PRECISION_MARKER = 2295

_HEAD = struct.Struct("<iii7f4B")
_CELLSIZE = struct.Struct("<2f")
_LEVELS = struct.Struct("<2f")


class IDFFormatError(ValueError):
    """Raised when a file is not a readable IDF file."""


@dataclass
class IDFHeader:
    """Header fields of an IDF file."""

    ncol: int
    nrow: int
    xmin: float
    xmax: float
    ymin: float
    ymax: float
    nodata: float
    dx: float
    dy: float
    dmin: float = 0.0
    dmax: float = 0.0
    top: float | None = None
    bot: float | None = None
    data_offset: int = 0


def read_header(path: str | Path) -> IDFHeader:
    path = Path(path)
    with path.open("rb") as f:
        raw = f.read(_HEAD.size)
        if len(raw) < _HEAD.size:
            raise IDFFormatError(f"File too short for an IDF header: {path}")
        (marker, ncol, nrow, xmin, xmax, ymin, ymax, dmin, dmax, nodata,
         ieq, itb, _ivf, _flag) = _HEAD.unpack(raw)
        if marker == DOUBLE_PRECISION_MARKER:
            raise IDFFormatError(f"Double precision IDF files are not supported: {path}")
        if marker != SINGLE_PRECISION_MARKER:
            raise IDFFormatError(f"Invalid IDF record marker {marker} in {path}")
        if ieq != 0:
            raise IDFFormatError(f"Non-equidistant IDF files are not supported: {path}")
        dx, dy = _CELLSIZE.unpack(f.read(_CELLSIZE.size))
        top = bot = None
        if itb:
            top, bot = _LEVELS.unpack(f.read(_LEVELS.size))
        offset = f.tell()
    return IDFHeader(
        ncol=ncol, nrow=nrow,
        xmin=xmin, xmax=xmax, ymin=ymin, ymax=ymax,
        nodata=nodata, dx=dx, dy=dy, dmin=dmin, dmax=dmax,
        top=top, bot=bot, data_offset=offset,
    )


def read_values(path: str | Path, header: IDFHeader | None = None) -> np.ndarray:
    """Read the value matrix of an IDF file as a (nrow, ncol) float32 array."""
    if header is None:
        header = read_header(path)
    count = header.nrow * header.ncol
    values = np.fromfile(path, dtype="<f4", count=count, offset=header.data_offset)
    if values.size != count:
        raise IDFFormatError(
            f"Expected {count} values in {path}, found {values.size}"
        )
    return values.reshape(header.nrow, header.ncol).astype(np.float32)


def write_idf(
    path: str | Path,
    values: np.ndarray,
    xmin: float,
    ymin: float,
    dx: float,
    dy: float,
    nodata: float,
    top: float | None = None,
    bot: float | None = None,
) -> None:
    path = Path(path)
    nrow, ncol = values.shape
    data = np.asarray(values, dtype="<f4")
    if np.isnan(nodata):
        valid = data[~np.isnan(data)]
    else:
        valid = data[data != nodata]
    if valid.size:
        dmin, dmax = float(valid.min()), float(valid.max())
    else:
        dmin = dmax = nodata
    itb = 1 if top is not None and bot is not None else 0
    with path.open("wb") as f:
        f.write(_HEAD.pack(
            SINGLE_PRECISION_MARKER, ncol, nrow,
            xmin, xmin + ncol * dx, ymin, ymin + nrow * dy,
            dmin, dmax, nodata,
            0, itb, 0, 0,
        ))
        f.write(_CELLSIZE.pack(dx, dy))
        if itb:
            f.write(_LEVELS.pack(top, bot))
        f.write(data.tobytes())
