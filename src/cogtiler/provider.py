# src/cogtiler/provider.py

"""
This module implements the tile provider consumed by mapping hosts.

A CogTileProvider turns (x, y, z) tile requests into RGBA pixel buffers:

    resolve level -> compute window -> decode -> (reproject) -> resample ->
    colorize -> cache

Opening the provider is the asynchronous "ready" transition: the tiling
scheme, the zoom to level table and the render plan are fixed there, and in
single band mode the value domain, color scale and shader pipeline are
prepared. Decoding, reprojection and resampling run on a WorkerPool and are
awaited from the event loop; colorization runs on the calling thread.
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple, Union, Any

import numpy as np
from rasterio.windows import Window

from .cache import TileCache
from .config import ProviderOptions
from .exceptions import DecodeError, ErrorEvent, ProviderNotReadyError
from .raster.io import RasterDecoder, RasterioDecoder, RasterSource, open_raster
from .raster.statistics import BandDomain, BandStatisticsResolver
from .raster.utils import fill_value_for, get_min_max, nodata_mask
from .render.colorize import render_tile
from .render.colors import ColorScale, build_color_scale
from .render.reproject import pyproj_projection, reproject
from .render.resample import ResampleOptions
from .render.shader import ShaderCache, ShaderPipeline
from .render.spec import RenderKind, RenderPlan, RenderSpec, build_render_plan
from .tiling.levels import LevelResolution, LevelResolver, build_request_levels
from .tiling.scheme import NATIVE_GEOGRAPHIC, NATIVE_MERCATOR, Rectangle, TilingScheme, scheme_for_source
from .tiling.window import compute_projected_window, compute_window, orient_north_up
from .workers import WorkerPool

log = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_TILE_SIZE",
    "CogTileProvider"
]

DEFAULT_TILE_SIZE = 256

Tile = Tuple[int, int, int]

class CogTileProvider:
    """
    Renders tiles of one raster on demand.

    Args:
        source: Metadata of the opened raster.
        decoder: Decoder reading pixel windows of `source`.
        render: RenderSpec or plain render options (see RenderSpec.from_dict).
        options: Provider options.
        pool: Worker pool to use. When omitted the provider creates one of
            `options.workers` threads and shuts it down on destroy.
    """

    def __init__(
        self,
        source: RasterSource,
        decoder: RasterDecoder,
        render: Union[RenderSpec, Dict[str, Any], None] = None,
        options: Optional[ProviderOptions] = None,
        pool: Optional[WorkerPool] = None
    ):
        self.source = source
        self.decoder = decoder
        self.options = options or ProviderOptions()
        self.error_event = ErrorEvent()
        self.ready = False

        self._render = render
        self._pool = pool
        self._owns_pool = pool is None
        self._destroyed = False

        self.cache = TileCache(
            policy=self.options.cache_policy,
            max_entries=self.options.cache_size,
            ttl=self.options.cache_ttl
        )
        self.shader_cache = ShaderCache()

        self.tile_size: int = self.options.tile_size or DEFAULT_TILE_SIZE
        self.minimum_level = self.options.minimum_level
        self.maximum_level = self.options.maximum_level
        self.tiling_scheme: Optional[TilingScheme] = None
        self.needs_reprojection = False
        self.plan: Optional[RenderPlan] = None
        self.resolver: Optional[LevelResolver] = None
        self.statistics: Optional[BandStatisticsResolver] = None
        self.color_scale: Optional[ColorScale] = None
        self.single_domain: Optional[Tuple[float, float]] = None
        self.pipeline: Optional[ShaderPipeline] = None

    @classmethod
    async def from_path(
        cls,
        path: Union[str, Path],
        render: Union[RenderSpec, Dict[str, Any], None] = None,
        options: Optional[ProviderOptions] = None,
        auto_projection: bool = False
    ) -> "CogTileProvider":
        """
        Open a GeoTIFF / COG and return a ready provider.

        Args:
            path: Raster file.
            render: Render configuration.
            options: Provider options.
            auto_projection: Build a pyproj projection for CRSs that are not
                handled natively when `options.projection` is not set.
        """
        source = await asyncio.to_thread(open_raster, path)
        options = options or ProviderOptions()
        if auto_projection and options.projection is None and source.epsg not in NATIVE_GEOGRAPHIC + NATIVE_MERCATOR:
            options = options.with_overrides(projection=pyproj_projection(source.crs))
        provider = cls(source, RasterioDecoder(path), render=render, options=options)
        return await provider.open()

    @classmethod
    async def from_arrays(
        cls,
        levels: Sequence[np.ndarray],
        bounds: Tuple[float, float, float, float],
        crs="EPSG:4326",
        nodata: Optional[float] = None,
        render: Union[RenderSpec, Dict[str, Any], None] = None,
        options: Optional[ProviderOptions] = None,
        **source_kwargs
    ) -> "CogTileProvider":
        """Open a provider over an in-memory pyramid (finest level first)."""
        source, decoder = RasterSource.from_arrays(levels, bounds, crs=crs, nodata=nodata, **source_kwargs)
        provider = cls(source, decoder, render=render, options=options)
        return await provider.open()

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def rectangle(self) -> Rectangle:
        self._check_ready()
        return self.tiling_scheme.rectangle

    @property
    def pool(self) -> Optional[WorkerPool]:
        return self._pool

    async def open(self) -> "CogTileProvider":
        """
        Prepare the provider for rendering. Idempotent.

        Raises:
            ConfigurationError: For invalid render options, bands or an
                unsupported CRS without a projection.
        """
        if self.ready:
            return self
        if self._destroyed:
            raise ProviderNotReadyError("Cannot open a provider that has been destroyed")

        opts = self.options
        finest = self.source.levels[0]
        if opts.tile_size is None and finest.is_tiled:
            self.tile_size = finest.block_width

        self.tiling_scheme, self.needs_reprojection = scheme_for_source(
            self.source,
            opts.projection,
            level_zero_tiles_x=opts.level_zero_tiles_x,
            level_zero_tiles_y=opts.level_zero_tiles_y
        )
        self.plan = build_render_plan(self._render, self.source)
        self.statistics = BandStatisticsResolver(
            self.source, self.decoder, self.plan.declared_domains, nodata=self.plan.nodata
        )

        request_levels = build_request_levels(
            self.source.levels,
            self.tiling_scheme,
            self.tile_size,
            tolerance=opts.level_tolerance,
            clamp_to_coarsest=opts.clamp_to_coarsest
        )
        self.resolver = LevelResolver(request_levels)
        if self.resolver.min_zoom is not None and self.resolver.min_zoom > self.minimum_level:
            log.info(f"Raising minimum level to {self.resolver.min_zoom}, the first zoom a pyramid level serves")
            self.minimum_level = self.resolver.min_zoom

        if self._pool is None:
            self._pool = WorkerPool(opts.workers)

        if self.plan.kind is RenderKind.SINGLE:
            await self._prepare_single()

        self.ready = True
        log.info(
            f"Provider ready: {self.plan.kind.value} rendering, tile size {self.tile_size}, "
            f"levels {list(request_levels)}, scheme {self.tiling_scheme.name}"
        )
        return self

    async def _prepare_single(self) -> None:
        single = self.plan.single
        domain = single.domain
        if domain is None:
            if self.plan.expression is not None:
                domain = await self._run(self._expression_domain)
            else:
                band_domain = await self._run(self.statistics.get_domain, single.band)
                domain = band_domain.as_tuple()
        self.single_domain = domain

        self.color_scale = build_color_scale(
            colors=single.colors,
            color_scale=single.color_scale,
            domain=domain,
            kind=single.type,
            interpolation=single.mode
        )
        if self.options.accelerated:
            self.pipeline = ShaderPipeline(
                self.color_scale,
                domain,
                tile_size=self.tile_size,
                band=single.band,
                expression=self.plan.expression,
                method=self.plan.method,
                buffer=self.options.buffer,
                nodata=self.plan.nodata,
                display_range=single.display_range,
                clamp_low=single.clamp_low,
                clamp_high=single.clamp_high,
                cache=self.shader_cache
            )

    def _expression_domain(self) -> Tuple[float, float]:
        expression = self.plan.expression
        level = self.source.coarsest
        data = self.decoder.read_level(level, list(expression.bands))
        arrays = {b: data[i] for i, b in enumerate(expression.bands)}
        values = expression.evaluate(arrays)
        for array in arrays.values():
            values[nodata_mask(array, self.plan.nodata)] = np.nan
        extent = get_min_max(values)
        if extent is None:
            log.warning(f"Expression {expression.source!r} has no valid value at level {level.index}")
            return (0.0, 1.0)
        return extent

    def _check_ready(self) -> None:
        if self._destroyed:
            raise ProviderNotReadyError("Provider has been destroyed")
        if not self.ready:
            raise ProviderNotReadyError("Provider is not ready, await open() first")

    async def _run(self, func, *args):
        return await asyncio.wrap_future(self._pool.submit(func, *args))

    async def request_image(self, x: int, y: int, z: int) -> Optional[np.ndarray]:
        """
        Render tile (x, y, z).

        Returns:
            Optional[np.ndarray]: uint8 RGBA array of shape
            (tile_size, tile_size, 4), or None when the tile is outside the
            valid zoom range or grid, or the provider was destroyed while the
            tile was being rendered.

        Raises:
            ProviderNotReadyError: Before `open()` or after `destroy()`.
            DecodeError: When the decoder fails; also sent to `error_event`.
        """
        self._check_ready()
        if z < self.minimum_level or z > self.maximum_level:
            return None
        if not self.tiling_scheme.contains_tile(x, y, z):
            return None

        cached = self.cache.get(x, y, z)
        if cached is not None:
            return cached

        resolution = self.resolver.resolve(x, y, z)
        if resolution is None:
            log.debug(f"No pyramid level serves zoom {z}")
            return None

        try:
            image = await self._render_tile((x, y, z), resolution)
        except asyncio.CancelledError:
            if self._destroyed:
                return None
            raise
        except Exception as e:
            if self._destroyed:
                return None
            log.error(f"Failed to render tile {(x, y, z)}: {e}")
            self.error_event.raise_event(e)
            raise

        if self._destroyed:
            return None
        image.setflags(write=False)
        self.cache.put(x, y, z, image)
        return image

    async def _render_tile(self, tile: Tile, resolution: LevelResolution) -> np.ndarray:
        level = self.source.levels[resolution.level]
        buffer = self.options.buffer

        if self.needs_reprojection:
            datasets = await self._read_projected(tile, level, resolution)
        else:
            window = compute_window(
                level,
                self.tiling_scheme,
                resolution.tile_x,
                resolution.tile_y,
                resolution.native_zoom,
                buffer=buffer,
                row_reversed=self.source.row_reversed,
                sub_window=resolution.sub_window
            )
            log.debug(f"Tile {tile}: level {level.index}, window {window.source_window}")
            datasets = await self._decode(tile, level, window.source_window)

        return await self._compose(datasets, resolution.sub_window)

    async def _decode(self, tile: Tile, level, window: Window) -> Dict[int, np.ndarray]:
        bands = list(self.plan.bands)
        fill = fill_value_for(self.source.dtype, self.plan.nodata)
        try:
            raw = await self._run(self.decoder.read_window, level, window, bands, fill)
        except DecodeError as e:
            e.tile = tile
            raise
        except Exception as e:
            if self._destroyed:
                raise
            raise DecodeError(f"Failed to decode tile {tile}: {e}", tile=tile) from e

        raw = orient_north_up(raw, self.source.row_reversed)
        return {b: raw[i] for i, b in enumerate(bands)}

    async def _read_projected(self, tile: Tile, level, resolution: LevelResolution) -> Dict[int, np.ndarray]:
        buffer = self.options.buffer
        size = self.tile_size + 2 * buffer
        west, south, east, north = self.tiling_scheme.tile_bounds(
            resolution.tile_x, resolution.tile_y, resolution.native_zoom
        )
        dx = (east - west) / self.tile_size * buffer
        dy = (north - south) / self.tile_size * buffer
        target_bbox = (west - dx, south - dy, east + dx, north + dy)
        project = self.options.projection.project

        found = compute_projected_window(
            level, self.source.bounds, target_bbox, project,
            buffer=buffer, row_reversed=self.source.row_reversed
        )
        if found is None:
            fill = fill_value_for(self.source.dtype, self.plan.nodata)
            return {b: np.full((size, size), fill, dtype=self.source.dtype) for b in self.plan.bands}

        window, native_bbox = found
        raw = await self._decode(tile, level, window)
        warped = await asyncio.gather(*(
            self._run(reproject, raw[b], native_bbox, target_bbox, project, size, size, self.plan.nodata)
            for b in self.plan.bands
        ))
        return dict(zip(self.plan.bands, warped))

    async def _domain(self, band: int) -> Tuple[float, float]:
        if self.statistics.is_resolved(band):
            return self.statistics.get_domain(band).as_tuple()
        domain: BandDomain = await self._run(self.statistics.get_domain, band)
        return domain.as_tuple()

    async def _compose(self, datasets: Dict[int, np.ndarray], sampling_window) -> np.ndarray:
        plan = self.plan
        if plan.kind is RenderKind.SINGLE and self.pipeline is not None:
            return self.pipeline.render(datasets, sampling_window)

        size = self.tile_size
        buffer = self.options.buffer
        futures = []
        for band in plan.bands:
            data = datasets[band]
            options = ResampleOptions(
                source_width=data.shape[1],
                source_height=data.shape[0],
                target_width=size,
                target_height=size,
                window=tuple(sampling_window),
                method=plan.method,
                buffer=buffer,
                nodata=plan.nodata
            )
            futures.append(asyncio.wrap_future(self._pool.resample(data, options)))
        arrays = dict(zip(plan.bands, await asyncio.gather(*futures)))

        domains = {}
        for selection in plan.channels:
            domains[selection.band] = await self._domain(selection.band)

        return render_tile(plan, arrays, domains, scale=self.color_scale, single_domain=self.single_domain)

    async def pick_value(self, x: int, y: int, z: int, lon: float, lat: float) -> Optional[Dict[int, float]]:
        """
        Read every band's raw value at a geographic position.

        The pyramid level is resolved exactly as for `request_image(x, y, z)`.

        Args:
            x, y, z: Tile under the position.
            lon, lat: Position in degrees.

        Returns:
            Optional[Dict[int, float]]: 1-based band -> value; an empty dict
            outside the raster; None when picking is disabled or no level
            serves the zoom.
        """
        self._check_ready()
        if not self.options.enable_pick_features:
            return None

        resolution = self.resolver.resolve(x, y, z)
        if resolution is None:
            return None
        level = self.source.levels[resolution.level]

        if self.needs_reprojection:
            xs, ys = self.options.projection.project(np.array([lon], dtype=np.float64), np.array([lat], dtype=np.float64))
        else:
            xs, ys = self.tiling_scheme.geographic_to_grid(np.array([lon]), np.array([lat]))
        px, py = float(np.asarray(xs)[0]), float(np.asarray(ys)[0])

        west, south, east, north = self.source.bounds
        if not (west <= px <= east and south <= py <= north):
            return {}

        col = min(int((px - west) / (east - west) * level.width), level.width - 1)
        row = min(int((north - py) / (north - south) * level.height), level.height - 1)
        if self.source.row_reversed:
            row = level.height - 1 - row

        bands = list(range(1, self.source.count + 1))
        try:
            raw = await self._run(self.decoder.read_window, level, Window(col, row, 1, 1), bands)
        except Exception as e:
            if self._destroyed:
                return None
            error = e if isinstance(e, DecodeError) else DecodeError(
                f"Failed to pick value at ({lon}, {lat}): {e}", tile=(x, y, z)
            )
            log.error(str(error))
            self.error_event.raise_event(error)
            if error is e:
                raise
            raise error from e

        return {b: float(raw[i, 0, 0]) for i, b in enumerate(bands)}

    def color_scale_image(self, width: int = 256, height: int = 1) -> Optional[np.ndarray]:
        """Legend strip of the single band color scale, None in RGB modes."""
        if self.color_scale is None:
            return None
        return self.color_scale.to_image(width, height)

    def destroy(self) -> None:
        """
        Release workers, shader resources and cached tiles. Idempotent.

        Tasks already running are allowed to finish; their results are
        discarded.
        """
        if self._destroyed:
            return
        self._destroyed = True
        self.ready = False

        if self._pool is not None and self._owns_pool:
            self._pool.shutdown(wait=False)
        if self.pipeline is not None:
            self.pipeline.release()
        self.shader_cache.clear()
        self.cache.clear()
        self.decoder.close()
        log.info("Provider destroyed")

    async def __aenter__(self) -> "CogTileProvider":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.destroy()
