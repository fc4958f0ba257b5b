# src/cogtiler/raster/io.py

"""
This module handles raster metadata and window decoding.

Opening a raster produces an immutable RasterSource describing its bounds,
CRS, pyramid levels and bands. Pixel data is obtained through a
RasterDecoder: RasterioDecoder reads GeoTIFF/COG files (internal overviews
included) and ArrayDecoder serves an in-memory numpy pyramid.

Level 0 is always the full resolution image; higher indices are coarser.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union, Optional, List, Dict, Sequence, Tuple

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.errors import RasterioError
from rasterio.windows import Window

from ..exceptions import DecodeError
from .utils import fill_value_for, validate_band_indices

log = logging.getLogger(__name__)

__all__ = [
    "PyramidLevel",
    "RasterSource",
    "RasterDecoder",
    "RasterioDecoder",
    "ArrayDecoder",
    "open_raster",
    "read_boundless"
]

Bounds = Tuple[float, float, float, float]

@dataclass(frozen=True)
class PyramidLevel:
    """
    One resolution tier of the raster.

    Args:
        index: 0 for full resolution, increasing towards coarser levels.
        width: Level width in pixels.
        height: Level height in pixels.
        block_width: Internal tile (or strip) width.
        block_height: Internal tile (or strip) height.
    """
    index: int
    width: int
    height: int
    block_width: int
    block_height: int

    @property
    def max_dimension(self) -> int:
        return max(self.width, self.height)

    @property
    def is_tiled(self) -> bool:
        return self.block_width < self.width

@dataclass(frozen=True)
class RasterSource:
    """
    Static metadata of an opened raster. Immutable for the provider's lifetime.

    Args:
        bounds: (west, south, east, north) in the native CRS.
        crs: Native coordinate reference system.
        levels: Pyramid levels ordered finest first.
        count: Number of bands (samples per pixel).
        dtype: Numpy dtype name of the samples.
        nodata: No-data value shared by all bands, if any.
        row_reversed: True when the first stored row is the southern one.
        statistics: Embedded per-band (min, max), keyed by 1-based band.
        color_interp: Per-band color interpretation names ("red", "gray"...).
        path: File the raster was opened from, None for in-memory sources.
    """
    bounds: Bounds
    crs: Optional[CRS]
    levels: Tuple[PyramidLevel, ...]
    count: int
    dtype: str
    nodata: Optional[float] = None
    row_reversed: bool = False
    statistics: Dict[int, Tuple[float, float]] = field(default_factory=dict)
    color_interp: Tuple[str, ...] = ()
    path: Optional[str] = None

    def __post_init__(self):
        if not self.levels:
            raise ValueError("A raster needs at least one pyramid level")
        dims = [lvl.max_dimension for lvl in self.levels]
        if any(b > a for a, b in zip(dims, dims[1:])):
            raise ValueError(f"Pyramid levels must decrease in size, got {dims}")

    @property
    def epsg(self) -> Optional[int]:
        if self.crs is None:
            return None
        return self.crs.to_epsg()

    @property
    def width(self) -> int:
        return self.levels[0].width

    @property
    def height(self) -> int:
        return self.levels[0].height

    @property
    def coarsest(self) -> PyramidLevel:
        return self.levels[-1]

    @classmethod
    def from_arrays(
        cls,
        levels: Sequence[np.ndarray],
        bounds: Bounds,
        crs: Union[str, CRS, None] = "EPSG:4326",
        nodata: Optional[float] = None,
        row_reversed: bool = False,
        statistics: Optional[Dict[int, Tuple[float, float]]] = None,
        color_interp: Optional[Sequence[str]] = None,
        block_size: int = 256
    ) -> Tuple["RasterSource", "ArrayDecoder"]:
        """
        Describe an in-memory pyramid and build the decoder serving it.

        Args:
            levels: Arrays of shape (bands, height, width) or (height, width),
                finest first.
            bounds: (west, south, east, north) in `crs` units.
            crs: CRS of the bounds.
            nodata: No-data value.
            row_reversed: Whether row 0 of each array is the southern edge.
            statistics: Optional embedded (min, max) per band.
            color_interp: Optional color interpretation names per band.
            block_size: Nominal internal tile size reported for each level.

        Returns:
            Tuple[RasterSource, ArrayDecoder]: Metadata and decoder.
        """
        arrays = [np.asarray(a) for a in levels]
        arrays = [a[np.newaxis] if a.ndim == 2 else a for a in arrays]
        counts = {a.shape[0] for a in arrays}
        if len(counts) != 1:
            raise ValueError(f"All levels must have the same band count, got {sorted(counts)}")

        pyramid = tuple(
            PyramidLevel(
                index=i,
                width=a.shape[2],
                height=a.shape[1],
                block_width=min(block_size, a.shape[2]),
                block_height=min(block_size, a.shape[1])
            )
            for i, a in enumerate(arrays)
        )
        count = arrays[0].shape[0]
        interp = tuple(color_interp) if color_interp else _default_color_interp(count)

        source = cls(
            bounds=tuple(float(v) for v in bounds),
            crs=CRS.from_user_input(crs) if crs is not None else None,
            levels=pyramid,
            count=count,
            dtype=arrays[0].dtype.name,
            nodata=nodata,
            row_reversed=row_reversed,
            statistics=dict(statistics or {}),
            color_interp=interp
        )
        return source, ArrayDecoder(arrays)

def _default_color_interp(count: int) -> Tuple[str, ...]:
    if count >= 3:
        return ("red", "green", "blue") + ("undefined",) * (count - 3)
    return ("gray",) + ("undefined",) * (count - 1)

def read_boundless(
    reader,
    level: PyramidLevel,
    window: Window,
    bands: Sequence[int],
    dtype,
    fill_value
) -> np.ndarray:
    """
    Read a window that may extend past the level's extent.

    `reader(inner_window)` is called with the part of `window` that lies
    inside the level and must return an array of shape (bands, h, w). Samples
    outside the level are set to `fill_value`.
    """
    col_off, row_off = int(window.col_off), int(window.row_off)
    width, height = int(window.width), int(window.height)
    out = np.full((len(bands), height, width), fill_value, dtype=dtype)

    col0, row0 = max(0, col_off), max(0, row_off)
    col1 = min(level.width, col_off + width)
    row1 = min(level.height, row_off + height)
    if col1 <= col0 or row1 <= row0:
        return out

    inner = Window(col0, row0, col1 - col0, row1 - row0)
    data = reader(inner)
    out[:, row0 - row_off:row1 - row_off, col0 - col_off:col1 - col_off] = data
    return out

class RasterDecoder(ABC):
    """
    Turns pixel windows of a pyramid level into per-band arrays.

    Implementations must be safe to call from several worker threads at once.
    """

    @abstractmethod
    def read_window(
        self,
        level: PyramidLevel,
        window: Window,
        bands: Sequence[int],
        fill_value=None
    ) -> np.ndarray:
        """Return an array of shape (len(bands), window.height, window.width)."""

    def read_level(self, level: PyramidLevel, bands: Sequence[int]) -> np.ndarray:
        return self.read_window(level, Window(0, 0, level.width, level.height), bands)

    def close(self) -> None:
        pass

class RasterioDecoder(RasterDecoder):
    """
    Decoder backed by rasterio/GDAL.

    Each read opens its own dataset handle (GDAL handles are not thread
    safe); overviews are addressed with the `overview_level` open option.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = str(path)

    def read_window(self, level, window, bands, fill_value=None):
        open_kwargs = {}
        if level.index > 0:
            open_kwargs["overview_level"] = level.index - 1

        try:
            with rasterio.open(self.path, **open_kwargs) as src:
                if fill_value is None:
                    fill_value = fill_value_for(src.dtypes[0], src.nodata)
                return read_boundless(
                    lambda inner: src.read(list(bands), window=inner),
                    level, window, bands, src.dtypes[0], fill_value
                )
        except RasterioError as e:
            raise DecodeError(
                f"Failed to read window {window} of level {level.index} from {self.path}: {e}"
            ) from e

class ArrayDecoder(RasterDecoder):
    """Decoder serving pre-built numpy arrays, one (bands, h, w) array per level."""

    def __init__(self, levels: Sequence[np.ndarray]):
        self.levels = [np.asarray(a) for a in levels]

    def read_window(self, level, window, bands, fill_value=None):
        data = self.levels[level.index]
        if fill_value is None:
            fill_value = fill_value_for(data.dtype, None)
        indices = [b - 1 for b in bands]

        def _slice(inner: Window) -> np.ndarray:
            r0, c0 = int(inner.row_off), int(inner.col_off)
            return data[indices, r0:r0 + int(inner.height), c0:c0 + int(inner.width)]

        return read_boundless(_slice, level, window, bands, data.dtype, fill_value)

def open_raster(path: Union[str, Path]) -> RasterSource:
    """
    Read the metadata of a raster file.

    Args:
        path: Path of a GeoTIFF / Cloud-Optimized GeoTIFF.

    Returns:
        RasterSource: Metadata including every internal overview.

    Raises:
        FileNotFoundError: If the path does not exist.
        DecodeError: If GDAL cannot open the file.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")

    log.debug(f"Opening raster: {path.name}")

    try:
        with rasterio.open(path) as src:
            block_h, block_w = src.block_shapes[0]
            levels: List[PyramidLevel] = [
                PyramidLevel(0, src.width, src.height, block_w, block_h)
            ]
            overview_count = len(src.overviews(1)) if src.count else 0

            statistics = {}
            for band in src.indexes:
                tags = src.tags(band)
                if "STATISTICS_MINIMUM" in tags and "STATISTICS_MAXIMUM" in tags:
                    statistics[band] = (
                        float(tags["STATISTICS_MINIMUM"]),
                        float(tags["STATISTICS_MAXIMUM"])
                    )

            left, bottom, right, top = src.bounds
            transform = src.transform
            meta = dict(
                bounds=(min(left, right), min(bottom, top), max(left, right), max(bottom, top)),
                crs=src.crs,
                count=src.count,
                dtype=src.dtypes[0],
                nodata=src.nodata,
                row_reversed=transform.e > 0,
                statistics=statistics,
                color_interp=tuple(ci.name for ci in src.colorinterp)
            )

        for i in range(overview_count):
            with rasterio.open(path, overview_level=i) as ovr:
                ovr_block_h, ovr_block_w = ovr.block_shapes[0]
                levels.append(PyramidLevel(i + 1, ovr.width, ovr.height, ovr_block_w, ovr_block_h))

    except RasterioError as e:
        raise DecodeError(f"Failed to open raster {path}: {e}") from e

    log.info(f"Opened {path.name}: {meta['count']} band(s), {len(levels)} level(s), CRS {meta['crs']}")
    return RasterSource(levels=tuple(levels), path=str(path), **meta)
