# src/cogtiler/render/colorize.py

"""
CPU colorization of resampled band arrays into RGBA tiles.

Color mapping contract shared with the shader pipeline:
    1. A sample that is NaN or equal to the no-data value in any input band
       is fully transparent.
    2. With a display range [lo, hi], values outside it are transparent.
    3. Values below (above) the domain are clamped to the first (last)
       color when clamp_low (clamp_high) is set, otherwise transparent.
    4. Remaining values are normalized to (v - min) / (max - min) and looked
       up in the color scale.
"""

import logging
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from ..raster.utils import nodata_mask
from .colors import ColorScale
from .spec import RenderKind, RenderPlan

log = logging.getLogger(__name__)

__all__ = [
    "combined_nodata_mask",
    "colorize_single",
    "colorize_rgb",
    "render_tile"
]

def combined_nodata_mask(arrays: Sequence[np.ndarray], nodata: Optional[float]) -> np.ndarray:
    """True where any of the arrays holds NaN or the no-data value."""
    mask = None
    for array in arrays:
        current = nodata_mask(array, nodata)
        mask = current if mask is None else mask | current
    return mask

def colorize_single(
    values: np.ndarray,
    scale: ColorScale,
    domain: Tuple[float, float],
    display_range: Optional[Tuple[float, float]] = None,
    clamp_low: bool = True,
    clamp_high: Optional[bool] = None,
    mask: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Map values through a color scale.

    Args:
        values: 2D samples or expression results.
        scale: Color scale to apply.
        domain: (min, max) mapped to the ends of the scale.
        display_range: Closed interval of values to draw.
        clamp_low: Clamp values below the domain instead of hiding them.
        clamp_high: Clamp values above the domain; defaults to clamp_low.
        mask: Extra transparency mask (e.g. no-data of the input bands).

    Returns:
        np.ndarray: uint8 RGBA array of shape values.shape + (4,).
    """
    if clamp_high is None:
        clamp_high = clamp_low

    values = np.asarray(values, dtype=np.float64)
    lo, hi = domain
    out = np.zeros(values.shape + (4,), dtype=np.uint8)

    with np.errstate(invalid="ignore"):
        visible = ~np.isnan(values)
        if mask is not None:
            visible &= ~mask
        if display_range is not None:
            visible &= (values >= display_range[0]) & (values <= display_range[1])
        if not clamp_low:
            visible &= values >= lo
        if not clamp_high:
            visible &= values <= hi

    span = hi - lo if hi != lo else 1.0
    out[visible] = scale.map((values[visible] - lo) / span)
    return out

def _rescale_channel(values: np.ndarray, domain: Tuple[float, float]) -> np.ndarray:
    lo, hi = domain
    span = hi - lo if hi != lo else 1.0
    with np.errstate(invalid="ignore"):
        scaled = np.round((values.astype(np.float64) - lo) / span * 255.0)
    return np.clip(np.nan_to_num(scaled, nan=0.0), 0, 255).astype(np.uint8)

def colorize_rgb(
    red: np.ndarray,
    green: np.ndarray,
    blue: np.ndarray,
    domains: Sequence[Tuple[float, float]],
    nodata: Optional[float] = None,
    color_mapping: Sequence = (),
    alpha: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Compose three bands into RGBA.

    Each band is rescaled linearly from its domain into 0..255. Pixels where
    any band is no-data (or the alpha band is 0) are transparent. Afterwards
    every exact RGB triple listed in `color_mapping` is replaced with its
    target RGBA color.
    """
    channels = (red, green, blue)
    out = np.zeros(np.shape(red) + (4,), dtype=np.uint8)
    for i, (channel, domain) in enumerate(zip(channels, domains)):
        out[..., i] = _rescale_channel(np.asarray(channel), domain)

    invalid = combined_nodata_mask(channels, nodata)
    if alpha is not None:
        invalid |= np.asarray(alpha) == 0
    out[..., 3] = np.where(invalid, 0, 255)

    for (r, g, b), target in color_mapping:
        match = (out[..., 0] == r) & (out[..., 1] == g) & (out[..., 2] == b) & ~invalid
        out[match] = target
    return out

def render_tile(
    plan: RenderPlan,
    arrays: Dict[int, np.ndarray],
    domains: Dict[int, Tuple[float, float]],
    scale: Optional[ColorScale] = None,
    single_domain: Optional[Tuple[float, float]] = None
) -> np.ndarray:
    """
    Render resampled band arrays according to a plan.

    Args:
        plan: Validated render plan.
        arrays: 1-based band -> resampled tile array.
        domains: 1-based band -> (min, max), needed by the RGB modes.
        scale: Color scale of the single band mode.
        single_domain: Domain of the single band mode.

    Returns:
        np.ndarray: uint8 RGBA tile.
    """
    if plan.kind is RenderKind.SINGLE:
        single = plan.single
        mask = combined_nodata_mask([arrays[b] for b in plan.bands], plan.nodata)
        if plan.expression is not None:
            values = plan.expression.evaluate({b: arrays[b] for b in plan.bands})
        else:
            values = arrays[single.band]
        return colorize_single(
            values, scale, single_domain,
            display_range=single.display_range,
            clamp_low=single.clamp_low,
            clamp_high=single.clamp_high,
            mask=mask
        )

    if plan.kind in (RenderKind.MULTI, RenderKind.RGB):
        r, g, b = (arrays[c.band] for c in plan.channels)
        return colorize_rgb(
            r, g, b,
            [domains[c.band] for c in plan.channels],
            nodata=plan.nodata,
            color_mapping=plan.color_mapping,
            alpha=arrays.get(plan.alpha_band) if plan.alpha_band else None
        )

    raise ValueError(f"Unhandled render kind: {plan.kind}")
