# src/cogtiler/tiling/levels.py

"""
This module maps requested zoom levels onto the raster's pyramid.

The request level table is built once when a provider opens. Entry z holds
the physical pyramid level serving zoom z, or None when even the coarsest
level is too detailed for a tile at that zoom. Zooms deeper than the table
reuse the finest level and magnify a sub-quadrant of one of its tiles.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..raster.io import PyramidLevel
from .scheme import TilingScheme

log = logging.getLogger(__name__)

__all__ = [
    "FULL_WINDOW",
    "LevelResolution",
    "LevelResolver",
    "build_request_levels"
]

FULL_WINDOW = (0.0, 0.0, 1.0, 1.0)

# hard stop for pathological grids
MAX_TABLE_ZOOM = 32

def build_request_levels(
    levels: Sequence[PyramidLevel],
    scheme: TilingScheme,
    tile_size: int,
    tolerance: float = 1.5,
    clamp_to_coarsest: bool = False,
    max_zoom: int = MAX_TABLE_ZOOM
) -> List[Optional[int]]:
    """
    Build the zoom -> pyramid level table.

    A level can serve zoom z when the pixel span of one tile on it,
    max(width / x_tiles(z), height / y_tiles(z)), does not exceed
    `tolerance * tile_size`. The finest such level is chosen. Scanning stops
    at the first zoom served by the full resolution level.

    Args:
        levels: Pyramid levels, finest first.
        scheme: Tiling scheme giving tile counts per zoom.
        tile_size: Output tile edge in pixels.
        tolerance: Allowed oversize factor of a level's tile span.
        clamp_to_coarsest: Serve unresolvable coarse zooms from the coarsest
            level instead of leaving them empty.
        max_zoom: Upper bound of the scan.

    Returns:
        List[Optional[int]]: Physical level index per zoom.
    """
    if not levels:
        raise ValueError("Cannot build a level table without pyramid levels")

    limit = tolerance * tile_size
    finest = levels[0].index
    table: List[Optional[int]] = []

    for z in range(max_zoom + 1):
        nx, ny = scheme.x_tiles(z), scheme.y_tiles(z)
        chosen = None
        for level in levels:
            span = max(level.width / nx, level.height / ny)
            if span <= limit:
                chosen = level.index
                break

        if chosen is None and clamp_to_coarsest:
            chosen = levels[-1].index

        table.append(chosen)
        if chosen == finest:
            break

    log.debug(f"Request levels for tile size {tile_size}: {table}")
    return table

@dataclass(frozen=True)
class LevelResolution:
    """
    Where to read a requested tile from.

    Args:
        level: Physical pyramid level index.
        native_zoom: Zoom whose tile grid is read on that level.
        tile_x: Column of the tile read at `native_zoom`.
        tile_y: Row of the tile read at `native_zoom`.
        is_oversampled: True when the request is deeper than the pyramid.
        sub_window: Fraction (x0, y0, x1, y1) of the read tile covering the
            requested tile.
    """
    level: int
    native_zoom: int
    tile_x: int
    tile_y: int
    is_oversampled: bool = False
    sub_window: Tuple[float, float, float, float] = FULL_WINDOW

    @property
    def parent_tile(self) -> Tuple[int, int, int]:
        return (self.tile_x, self.tile_y, self.native_zoom)

class LevelResolver:
    def __init__(self, request_levels: Sequence[Optional[int]]):
        if not request_levels:
            raise ValueError("Request level table is empty")
        self.request_levels = tuple(request_levels)

    @property
    def max_native_zoom(self) -> int:
        return len(self.request_levels) - 1

    @property
    def min_zoom(self) -> Optional[int]:
        for z, level in enumerate(self.request_levels):
            if level is not None:
                return z
        return None

    def resolve(self, x: int, y: int, z: int) -> Optional[LevelResolution]:
        """
        Resolve a tile request. Returns None for zooms no level can serve.
        """
        if z < 0:
            return None

        if z <= self.max_native_zoom:
            level = self.request_levels[z]
            if level is None:
                return None
            return LevelResolution(level=level, native_zoom=z, tile_x=x, tile_y=y)

        dz = z - self.max_native_zoom
        parent_x, parent_y = x >> dz, y >> dz
        scale = 1.0 / (1 << dz)
        x0 = (x - (parent_x << dz)) * scale
        y0 = (y - (parent_y << dz)) * scale

        return LevelResolution(
            level=self.request_levels[-1],
            native_zoom=self.max_native_zoom,
            tile_x=parent_x,
            tile_y=parent_y,
            is_oversampled=True,
            sub_window=(x0, y0, x0 + scale, y0 + scale)
        )
