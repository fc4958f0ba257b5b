# src/cogtiler/tiling/scheme.py

"""
Quad-tree tiling schemes aligned to a raster's extent.

A scheme lays a regular grid over `grid_bounds`, with
`level_zero_tiles_x * 2**z` columns and `level_zero_tiles_y * 2**z` rows at
zoom z; row 0 is the northern edge. The grid is linear in "grid space":

- EPSG:4326 rasters: grid space is the native CRS (degrees).
- Web Mercator rasters: grid space is the native CRS (meters).
- Any other CRS: grid space is degrees over the raster's unprojected
  rectangle, and tiles have to be reprojected.

Geographic positions exchanged with callers are always degrees.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np

from ..exceptions import UnsupportedProjectionError
from ..raster.io import RasterSource

log = logging.getLogger(__name__)

__all__ = [
    "Rectangle",
    "TilingScheme",
    "geographic_scheme",
    "web_mercator_scheme",
    "projected_scheme",
    "scheme_for_source",
    "NATIVE_GEOGRAPHIC",
    "NATIVE_MERCATOR"
]

NATIVE_GEOGRAPHIC = (4326,)
NATIVE_MERCATOR = (3857, 900913)

EARTH_RADIUS = 6378137.0

@dataclass(frozen=True)
class Rectangle:
    """Geographic rectangle in degrees. `east` may exceed 180 across the antimeridian."""
    west: float
    south: float
    east: float
    north: float

    @property
    def width(self) -> float:
        return self.east - self.west

    @property
    def height(self) -> float:
        return self.north - self.south

    def contains(self, lon: float, lat: float) -> bool:
        if lon < self.west:
            lon += 360.0
        return self.west <= lon <= self.east and self.south <= lat <= self.north

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.west, self.south, self.east, self.north)

def _identity(xs, ys):
    return np.asarray(xs, dtype=np.float64), np.asarray(ys, dtype=np.float64)

def mercator_to_geographic(xs, ys):
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    lons = np.degrees(xs / EARTH_RADIUS)
    lats = np.degrees(2.0 * np.arctan(np.exp(ys / EARTH_RADIUS)) - math.pi / 2.0)
    return lons, lats

def geographic_to_mercator(lons, lats):
    lons = np.asarray(lons, dtype=np.float64)
    lats = np.clip(np.asarray(lats, dtype=np.float64), -85.05112878, 85.05112878)
    xs = EARTH_RADIUS * np.radians(lons)
    ys = EARTH_RADIUS * np.log(np.tan(math.pi / 4.0 + np.radians(lats) / 2.0))
    return xs, ys

class TilingScheme:
    """
    Regular tile grid over a rectangle in grid space.

    Args:
        grid_bounds: (west, south, east, north) in grid space.
        to_geographic: Vectorized grid -> (lon, lat) conversion.
        from_geographic: Vectorized (lon, lat) -> grid conversion.
        level_zero_tiles_x: Columns at zoom 0.
        level_zero_tiles_y: Rows at zoom 0.
        name: Label used in logs.
    """

    def __init__(
        self,
        grid_bounds: Tuple[float, float, float, float],
        to_geographic: Callable = _identity,
        from_geographic: Callable = _identity,
        level_zero_tiles_x: int = 1,
        level_zero_tiles_y: int = 1,
        name: str = "geographic"
    ):
        west, south, east, north = grid_bounds
        if north <= south:
            raise ValueError(f"Invalid grid bounds {grid_bounds}")
        self.grid_bounds = (float(west), float(south), float(east), float(north))
        self._to_geographic = to_geographic
        self._from_geographic = from_geographic
        self.level_zero_tiles_x = level_zero_tiles_x
        self.level_zero_tiles_y = level_zero_tiles_y
        self.name = name

    def x_tiles(self, z: int) -> int:
        return self.level_zero_tiles_x << z

    def y_tiles(self, z: int) -> int:
        return self.level_zero_tiles_y << z

    def contains_tile(self, x: int, y: int, z: int) -> bool:
        return z >= 0 and 0 <= x < self.x_tiles(z) and 0 <= y < self.y_tiles(z)

    def tile_bounds(self, x: int, y: int, z: int) -> Tuple[float, float, float, float]:
        """Bounds of a tile in grid space."""
        west, south, east, north = self.grid_bounds
        step_x = (east - west) / self.x_tiles(z)
        step_y = (north - south) / self.y_tiles(z)
        return (
            west + x * step_x,
            north - (y + 1) * step_y,
            west + (x + 1) * step_x,
            north - y * step_y
        )

    def tile_rectangle(self, x: int, y: int, z: int) -> Rectangle:
        w, s, e, n = self.tile_bounds(x, y, z)
        lons, lats = self._to_geographic(np.array([w, e]), np.array([s, n]))
        return Rectangle(float(lons[0]), float(lats[0]), float(lons[1]), float(lats[1]))

    @property
    def rectangle(self) -> Rectangle:
        w, s, e, n = self.grid_bounds
        lons, lats = self._to_geographic(np.array([w, e]), np.array([s, n]))
        return Rectangle(float(lons[0]), float(lats[0]), float(lons[1]), float(lats[1]))

    def grid_to_geographic(self, xs, ys):
        return self._to_geographic(xs, ys)

    def geographic_to_grid(self, lons, lats):
        lons = np.asarray(lons, dtype=np.float64)
        west = self.rectangle.west
        lons = np.where(lons < west, lons + 360.0, lons)
        return self._from_geographic(lons, lats)

    def position_to_tile(self, lon: float, lat: float, z: int) -> Optional[Tuple[int, int]]:
        """Tile containing a geographic position, or None outside the grid."""
        gx, gy = self.geographic_to_grid(np.array([lon]), np.array([lat]))
        gx, gy = float(gx[0]), float(gy[0])
        west, south, east, north = self.grid_bounds
        if not (west <= gx <= east and south <= gy <= north):
            return None
        nx, ny = self.x_tiles(z), self.y_tiles(z)
        x = min(int((gx - west) / (east - west) * nx), nx - 1)
        y = min(int((north - gy) / (north - south) * ny), ny - 1)
        return x, y

    def __repr__(self) -> str:
        return f"TilingScheme(name={self.name!r}, grid_bounds={self.grid_bounds})"

def geographic_scheme(bounds, **kwargs) -> TilingScheme:
    west, south, east, north = bounds
    if east < west:
        east += 360.0
    return TilingScheme((west, south, east, north), name="geographic", **kwargs)

def web_mercator_scheme(bounds, **kwargs) -> TilingScheme:
    return TilingScheme(
        tuple(bounds),
        to_geographic=mercator_to_geographic,
        from_geographic=geographic_to_mercator,
        name="web-mercator",
        **kwargs
    )

def projected_scheme(bounds, projection, densify: int = 21, **kwargs) -> TilingScheme:
    """
    Grid in degrees over the unprojected rectangle of a projected raster.

    The native edges are densified before unprojection so curved meridians
    and parallels are enclosed.
    """
    west, south, east, north = bounds
    ts = np.linspace(0.0, 1.0, densify)
    xs_left = np.full(densify, west)
    xs_right = np.full(densify, east)
    ys_edge = south + ts * (north - south)
    xs_edge = west + ts * (east - west)

    left_lons, left_lats = projection.unproject(xs_left, ys_edge)
    right_lons, right_lats = projection.unproject(xs_right, ys_edge)
    _, bottom_lats = projection.unproject(xs_edge, np.full(densify, south))
    _, top_lats = projection.unproject(xs_edge, np.full(densify, north))

    geo_west = float(np.nanmin(left_lons))
    geo_east = float(np.nanmax(right_lons))
    lats = np.concatenate([left_lats, right_lats, bottom_lats, top_lats])
    geo_south, geo_north = float(np.nanmin(lats)), float(np.nanmax(lats))

    if geo_east < geo_west:
        geo_east += 360.0

    log.debug(f"Unprojected rectangle: ({geo_west}, {geo_south}, {geo_east}, {geo_north})")
    return TilingScheme((geo_west, geo_south, geo_east, geo_north), name="projected", **kwargs)

def scheme_for_source(source: RasterSource, projection=None, **kwargs) -> Tuple[TilingScheme, bool]:
    """
    Pick the tiling scheme serving a raster.

    Returns:
        Tuple[TilingScheme, bool]: The scheme and whether tiles need reprojection.

    Raises:
        UnsupportedProjectionError: For a CRS that is neither handled natively
            nor covered by `projection`.
    """
    epsg = source.epsg
    if epsg in NATIVE_GEOGRAPHIC:
        return geographic_scheme(source.bounds, **kwargs), False
    if epsg in NATIVE_MERCATOR:
        return web_mercator_scheme(source.bounds, **kwargs), False
    if projection is None:
        raise UnsupportedProjectionError(
            f"Unsupported projection type: {source.crs}. Supply a projection to reproject tiles."
        )
    return projected_scheme(source.bounds, projection, **kwargs), True
