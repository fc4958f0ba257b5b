# src/cogtiler/tiling/window.py

"""
Source window geometry for tile requests.

For a tile (x, y) at zoom z read from a pyramid level, the level's pixel
grid is divided evenly among the zoom's tiles, rounded to whole pixels and
expanded by an edge buffer on every side so bilinear sampling can look one
pixel past the tile edge. Windows may extend beyond the raster; decoders
fill those samples with no-data.

Decoded windows are always handed on north-up: for row-reversed rasters the
vertical bounds are mirrored here and the decoded rows are flipped with
`orient_north_up`.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from rasterio.windows import Window

from ..raster.io import PyramidLevel
from .levels import FULL_WINDOW
from .scheme import TilingScheme

log = logging.getLogger(__name__)

__all__ = [
    "TileWindow",
    "compute_window",
    "compute_projected_window",
    "window_bounds",
    "orient_north_up"
]

Bounds = Tuple[float, float, float, float]

@dataclass(frozen=True)
class TileWindow:
    """
    Args:
        source_window: Integer pixel window on the level, buffer included.
        sampling_window: Fraction (x0, y0, x1, y1) of the buffer-trimmed
            window that the output tile covers.
        buffer: Edge buffer in pixels.
    """
    source_window: Window
    sampling_window: Tuple[float, float, float, float] = FULL_WINDOW
    buffer: int = 1

    @property
    def width(self) -> int:
        return int(self.source_window.width)

    @property
    def height(self) -> int:
        return int(self.source_window.height)

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

def compute_window(
    level: PyramidLevel,
    scheme: TilingScheme,
    x: int,
    y: int,
    z: int,
    buffer: int = 1,
    row_reversed: bool = False,
    sub_window: Tuple[float, float, float, float] = FULL_WINDOW
) -> TileWindow:
    """
    Pixel window of tile (x, y, z) on a pyramid level whose grid is aligned
    with the tiling scheme.
    """
    nx, ny = scheme.x_tiles(z), scheme.y_tiles(z)
    span_x = level.width / nx
    span_y = level.height / ny

    col0, col1 = _round_half_up(x * span_x), _round_half_up((x + 1) * span_x)
    row0, row1 = _round_half_up(y * span_y), _round_half_up((y + 1) * span_y)
    if row_reversed:
        row0, row1 = level.height - row1, level.height - row0

    width = max(col1 - col0, 1)
    height = max(row1 - row0, 1)

    window = Window(col0 - buffer, row0 - buffer, width + 2 * buffer, height + 2 * buffer)
    return TileWindow(source_window=window, sampling_window=tuple(sub_window), buffer=buffer)

def compute_projected_window(
    level: PyramidLevel,
    native_bounds: Bounds,
    tile_bounds: Bounds,
    project,
    buffer: int = 1,
    row_reversed: bool = False,
    densify: int = 5
) -> Optional[Tuple[Window, Bounds]]:
    """
    Pixel window covering a geographic tile rectangle on a projected level.

    The tile rectangle (degrees) is sampled on a `densify` x `densify` grid,
    projected to native coordinates and enclosed in whole level pixels. The
    window is clipped to the level extent plus the buffer.

    Args:
        level: Pyramid level to read.
        native_bounds: Raster bounds in native coordinates.
        tile_bounds: (west, south, east, north) of the tile in degrees.
        project: Vectorized (lons, lats) -> (xs, ys) projection.
        buffer: Edge buffer in pixels.
        row_reversed: Whether the raster's first row is its southern edge.
        densify: Samples per rectangle edge.

    Returns:
        Optional[Tuple[Window, Bounds]]: The window and the native north-up
        bounds it covers, or None if the tile misses the raster.
    """
    t_west, t_south, t_east, t_north = tile_bounds
    lons, lats = np.meshgrid(
        np.linspace(t_west, t_east, densify),
        np.linspace(t_south, t_north, densify)
    )
    xs, ys = project(lons.ravel(), lats.ravel())
    xs, ys = np.asarray(xs, dtype=np.float64), np.asarray(ys, dtype=np.float64)
    finite = np.isfinite(xs) & np.isfinite(ys)
    if not finite.any():
        return None
    xs, ys = xs[finite], ys[finite]

    west, south, east, north = native_bounds
    px_w = (east - west) / level.width
    px_h = (north - south) / level.height

    col0 = int(math.floor((xs.min() - west) / px_w))
    col1 = int(math.ceil((xs.max() - west) / px_w))
    row0 = int(math.floor((north - ys.max()) / px_h))
    row1 = int(math.ceil((north - ys.min()) / px_h))

    if col1 <= 0 or row1 <= 0 or col0 >= level.width or row0 >= level.height:
        return None

    col0, row0 = max(col0, 0), max(row0, 0)
    col1, row1 = min(col1, level.width), min(row1, level.height)
    if row_reversed:
        row0, row1 = level.height - row1, level.height - row0

    window = Window(
        col0 - buffer,
        row0 - buffer,
        max(col1 - col0, 1) + 2 * buffer,
        max(row1 - row0, 1) + 2 * buffer
    )
    return window, window_bounds(level, native_bounds, window, row_reversed)

def window_bounds(level: PyramidLevel, native_bounds: Bounds, window: Window, row_reversed: bool = False) -> Bounds:
    """Native (west, south, east, north) covered by a pixel window."""
    west, south, east, north = native_bounds
    px_w = (east - west) / level.width
    px_h = (north - south) / level.height

    x0 = west + window.col_off * px_w
    x1 = west + (window.col_off + window.width) * px_w
    if row_reversed:
        y0 = south + window.row_off * px_h
        y1 = south + (window.row_off + window.height) * px_h
    else:
        y1 = north - window.row_off * px_h
        y0 = north - (window.row_off + window.height) * px_h
    return (x0, y0, x1, y1)

def orient_north_up(data: np.ndarray, row_reversed: bool) -> np.ndarray:
    """Flip decoded rows (last axis but one) of a row-reversed raster."""
    if not row_reversed:
        return data
    return np.ascontiguousarray(np.flip(data, axis=-2))
