# src/cogtiler/render/reproject.py

"""
This module remaps decoded samples from a raster's native CRS onto a
geographic (degrees) target grid.

Reprojection runs before resampling and copies the nearest source sample for
every target pixel. Projection callables are vectorized: they take arrays of
coordinates and return arrays, so a whole tile is transformed in one call.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, List

import numpy as np
from pyproj import CRS as ProjCRS
from pyproj import Transformer

log = logging.getLogger(__name__)

__all__ = [
    "Projection",
    "pyproj_projection",
    "reproject",
    "transform_bounds",
    "roundtrip_corners"
]

Bounds = Tuple[float, float, float, float]
CoordFunc = Callable[[np.ndarray, np.ndarray], Tuple[np.ndarray, np.ndarray]]

@dataclass(frozen=True)
class Projection:
    """
    Pair of vectorized coordinate transforms.

    Args:
        project: (lons, lats) in degrees -> (xs, ys) in the native CRS.
        unproject: (xs, ys) in the native CRS -> (lons, lats) in degrees.
    """
    project: CoordFunc
    unproject: CoordFunc

def pyproj_projection(crs) -> Projection:
    """
    Build a Projection between WGS84 and `crs` with pyproj.

    Args:
        crs: Anything pyproj.CRS accepts (EPSG code, WKT, rasterio CRS...).

    Returns:
        Projection: Transforms with longitude/latitude axis order.
    """
    if hasattr(crs, "to_wkt"):
        crs = crs.to_wkt()
    target = ProjCRS.from_user_input(crs)
    forward = Transformer.from_crs("EPSG:4326", target, always_xy=True)
    inverse = Transformer.from_crs(target, "EPSG:4326", always_xy=True)
    log.debug(f"Built pyproj projection for {target.name}")
    return Projection(project=forward.transform, unproject=inverse.transform)

def reproject(
    data: np.ndarray,
    source_bbox: Bounds,
    target_bbox: Bounds,
    project: CoordFunc,
    target_width: Optional[int] = None,
    target_height: Optional[int] = None,
    nodata: Optional[float] = None
) -> np.ndarray:
    """
    Nearest-sample reprojection of a north-up source window.

    Every target pixel center inside `target_bbox` (degrees) is projected to
    native coordinates and looked up in the source window spanning
    `source_bbox`. Pixels whose position falls outside the source keep the
    no-data value.

    Args:
        data: 2D source samples, north-up.
        source_bbox: Native (west, south, east, north) of `data`.
        target_bbox: Geographic (west, south, east, north) of the output.
        project: Vectorized (lons, lats) -> (xs, ys).
        target_width: Output width; defaults to the source width.
        target_height: Output height; defaults to the source height.
        nodata: Fill for uncovered pixels. NaN is used for floating data
            without a no-data value, 0 for integer data.

    Returns:
        np.ndarray: Reprojected samples, same dtype as `data`.
    """
    data = np.asarray(data)
    src_h, src_w = data.shape
    out_w = target_width or src_w
    out_h = target_height or src_h

    if nodata is None:
        fill = np.nan if np.issubdtype(data.dtype, np.floating) else 0
    else:
        fill = nodata

    sx0, sy0, sx1, sy1 = source_bbox
    step_x = (sx1 - sx0) / src_w
    step_y = (sy1 - sy0) / src_h

    tx0, ty0, tx1, ty1 = target_bbox
    lon_step = (tx1 - tx0) / out_w
    lat_step = (ty1 - ty0) / out_h

    lons = tx0 + (np.arange(out_w) + 0.5) * lon_step
    lats = ty1 - (np.arange(out_h) + 0.5) * lat_step
    lon_grid, lat_grid = np.meshgrid(lons, lats)

    xs, ys = project(lon_grid.ravel(), lat_grid.ravel())
    xs = np.asarray(xs, dtype=np.float64).reshape(out_h, out_w)
    ys = np.asarray(ys, dtype=np.float64).reshape(out_h, out_w)

    with np.errstate(invalid="ignore"):
        cols = np.floor((xs - sx0) / step_x)
        rows = np.floor((sy1 - ys) / step_y)
        inside = (
            np.isfinite(cols) & np.isfinite(rows)
            & (cols >= 0) & (cols < src_w)
            & (rows >= 0) & (rows < src_h)
        )

    out = np.full((out_h, out_w), fill, dtype=data.dtype)
    out[inside] = data[rows[inside].astype(np.intp), cols[inside].astype(np.intp)]
    return out

def transform_bounds(bounds: Bounds, func: CoordFunc, densify: int = 5) -> Bounds:
    """Enclosing bounds of a rectangle after transforming a densified grid of it."""
    west, south, east, north = bounds
    xs, ys = np.meshgrid(np.linspace(west, east, densify), np.linspace(south, north, densify))
    tx, ty = func(xs.ravel(), ys.ravel())
    tx, ty = np.asarray(tx, dtype=np.float64), np.asarray(ty, dtype=np.float64)
    return (float(np.nanmin(tx)), float(np.nanmin(ty)), float(np.nanmax(tx)), float(np.nanmax(ty)))

def roundtrip_corners(bounds: Bounds, projection: Projection) -> List[Tuple[float, float]]:
    """Corners of a geographic rectangle after project followed by unproject."""
    west, south, east, north = bounds
    lons = np.array([west, east, east, west], dtype=np.float64)
    lats = np.array([north, north, south, south], dtype=np.float64)
    xs, ys = projection.project(lons, lats)
    back_lons, back_lats = projection.unproject(np.asarray(xs), np.asarray(ys))
    return [(float(a), float(b)) for a, b in zip(back_lons, back_lats)]
