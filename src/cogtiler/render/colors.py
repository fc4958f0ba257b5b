# src/cogtiler/render/colors.py

"""
Color parsing and color scales.

A ColorScale is an ordered list of stops: positions in [0, 1] paired with
RGBA colors. Continuous scales interpolate between neighbouring stops in one
of four color spaces; discrete scales are step functions where the last stop
at or below the value wins (intervals are closed on the left).

Interpolation spaces:
    rgb: linear per channel.
    hsl: hue takes the shortest way around the color wheel.
    hslLong: hue is interpolated linearly without wrapping.
    lab: CIELAB (D65), converted with scikit-image.
"""

import colorsys
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import ImageColor
from skimage import color as skcolor

from ..exceptions import ConfigurationError

log = logging.getLogger(__name__)

__all__ = [
    "LUT_SIZE",
    "SCALE_KINDS",
    "INTERPOLATIONS",
    "COLOR_SCALES",
    "ColorScale",
    "parse_color",
    "build_color_scale",
    "add_color_scale"
]

LUT_SIZE = 8192

SCALE_KINDS = ("continuous", "discrete")
INTERPOLATIONS = ("rgb", "hsl", "hslLong", "lab")

RGBA = Tuple[int, int, int, int]

COLOR_SCALES: Dict[str, Tuple[List[str], List[float]]] = {
    "viridis": (
        ["#440154", "#46327e", "#365c8d", "#277f8e", "#1fa187", "#4ac16d", "#a0da39", "#fde725"],
        [0.0, 0.142857, 0.285714, 0.428571, 0.571429, 0.714286, 0.857143, 1.0]
    ),
    "inferno": (
        ["#000004", "#320a5e", "#781c6d", "#bc3754", "#ed6925", "#fbb61a", "#fcffa4"],
        [0.0, 0.166667, 0.333333, 0.5, 0.666667, 0.833333, 1.0]
    ),
    "magma": (
        ["#000004", "#2c115f", "#721f81", "#b73779", "#f1605d", "#feb078", "#fcfdbf"],
        [0.0, 0.166667, 0.333333, 0.5, 0.666667, 0.833333, 1.0]
    ),
    "plasma": (
        ["#0d0887", "#5b02a3", "#9a179b", "#cb4678", "#eb7852", "#fbb32f", "#f0f921"],
        [0.0, 0.166667, 0.333333, 0.5, 0.666667, 0.833333, 1.0]
    ),
    "rainbow": (
        ["#96005a", "#0000c8", "#0019ff", "#0098ff", "#2cff96", "#97ff00", "#ffea00", "#ff6f00", "#ff0000"],
        [0.0, 0.125, 0.25, 0.375, 0.5, 0.625, 0.75, 0.875, 1.0]
    ),
    "jet": (
        ["#000083", "#003caa", "#05ffff", "#ffff00", "#fa0000", "#800000"],
        [0.0, 0.125, 0.375, 0.625, 0.875, 1.0]
    ),
    "hot": (
        ["#000000", "#e60000", "#ffd200", "#ffffff"],
        [0.0, 0.3, 0.6, 1.0]
    ),
    "rdbu": (
        ["#050aac", "#6a89f7", "#bebebe", "#dcaa84", "#e6915a", "#b20a1c"],
        [0.0, 0.35, 0.5, 0.6, 0.7, 1.0]
    ),
    "earth": (
        ["#000082", "#00b4b4", "#28d228", "#e6e632", "#784614", "#ffffff"],
        [0.0, 0.1, 0.2, 0.4, 0.6, 1.0]
    ),
    "greys": (["#000000", "#ffffff"], [0.0, 1.0]),
    "blackwhite": (["#000000", "#ffffff"], [0.0, 1.0]),
    "whiteblack": (["#ffffff", "#000000"], [0.0, 1.0]),
    "bluered": (["#0000ff", "#ff0000"], [0.0, 1.0]),
    "greens": (["#f7fcf5", "#74c476", "#00441b"], [0.0, 0.5, 1.0]),
    "reds": (["#fff5f0", "#fb6a4a", "#67000d"], [0.0, 0.5, 1.0]),
    "blues": (["#f7fbff", "#6baed6", "#08306b"], [0.0, 0.5, 1.0]),
}

def add_color_scale(name: str, colors: Sequence[str], positions: Sequence[float]) -> None:
    """Register a named color scale."""
    if len(colors) != len(positions) or not colors:
        raise ConfigurationError("A color scale needs as many positions as colors")
    COLOR_SCALES[name] = (list(colors), [float(p) for p in positions])

def parse_color(value: Union[str, Sequence[int]]) -> RGBA:
    """
    Parse a CSS color string or an RGB(A) sequence into an RGBA tuple.

    Raises:
        ConfigurationError: If the color cannot be parsed.
    """
    if isinstance(value, str):
        if value.strip().lower() == "transparent":
            return (0, 0, 0, 0)
        try:
            r, g, b, a = ImageColor.getcolor(value.strip(), "RGBA")
        except ValueError as e:
            raise ConfigurationError(f"Unknown color: {value!r}") from e
        return (r, g, b, a)

    channels = [int(round(float(c))) for c in value]
    if len(channels) == 3:
        channels.append(255)
    if len(channels) != 4 or any(c < 0 or c > 255 for c in channels):
        raise ConfigurationError(f"Invalid color channels: {value!r}")
    return tuple(channels)

def _hls_channel(m1, m2, hue):
    hue = np.mod(hue, 1.0)
    return np.select(
        [hue < 1.0 / 6.0, hue < 0.5, hue < 2.0 / 3.0],
        [m1 + (m2 - m1) * hue * 6.0, m2, m1 + (m2 - m1) * (2.0 / 3.0 - hue) * 6.0],
        default=m1
    )

def _hls_to_rgb(h, l, s):
    # vectorized colorsys.hls_to_rgb
    m2 = np.where(l <= 0.5, l * (1.0 + s), l + s - l * s)
    m1 = 2.0 * l - m2
    rgb = np.stack([
        _hls_channel(m1, m2, h + 1.0 / 3.0),
        _hls_channel(m1, m2, h),
        _hls_channel(m1, m2, h - 1.0 / 3.0)
    ], axis=-1)
    gray = (s == 0)[..., np.newaxis]
    return np.where(gray, l[..., np.newaxis], rgb)

class ColorScale:
    """
    Normalized color stops with a mapping from [0, 1] to RGBA.

    Args:
        positions: Stop positions, sorted, within [0, 1].
        colors: Stop colors as an (n, 4) uint8 array.
        kind: "continuous" or "discrete".
        interpolation: Color space used by continuous scales.
    """

    def __init__(
        self,
        positions: Sequence[float],
        colors: Sequence[RGBA],
        kind: str = "continuous",
        interpolation: str = "rgb"
    ):
        if kind not in SCALE_KINDS:
            raise ConfigurationError(f"Unknown color scale type: {kind}. Expected one of {SCALE_KINDS}")
        if interpolation not in INTERPOLATIONS:
            raise ConfigurationError(
                f"Unknown interpolation: {interpolation}. Expected one of {INTERPOLATIONS}"
            )
        self.positions = np.asarray(positions, dtype=np.float64)
        self.colors = np.asarray(colors, dtype=np.uint8).reshape(-1, 4)
        if len(self.positions) != len(self.colors) or len(self.positions) == 0:
            raise ConfigurationError("A color scale needs at least one stop and one color per stop")
        self.kind = kind
        self.interpolation = interpolation
        self._space = self._to_space(self.colors)

    def __repr__(self) -> str:
        return f"ColorScale(kind={self.kind!r}, interpolation={self.interpolation!r}, stops={len(self.positions)})"

    def _to_space(self, colors: np.ndarray) -> np.ndarray:
        rgb = colors[:, :3].astype(np.float64) / 255.0
        if self.interpolation in ("hsl", "hslLong"):
            return np.array([colorsys.rgb_to_hls(*c) for c in rgb], dtype=np.float64)
        if self.interpolation == "lab":
            return skcolor.rgb2lab(rgb[np.newaxis, :, :])[0]
        return rgb

    def map(self, t) -> np.ndarray:
        """
        Map normalized values to RGBA.

        Args:
            t: Values in [0, 1] (clipped), any shape.

        Returns:
            np.ndarray: uint8 array of shape t.shape + (4,).
        """
        t = np.clip(np.asarray(t, dtype=np.float64), 0.0, 1.0)
        n = len(self.positions)
        if t.size == 0:
            return np.zeros(t.shape + (4,), dtype=np.uint8)

        if self.kind == "discrete" or n == 1:
            idx = np.clip(np.searchsorted(self.positions, t, side="right") - 1, 0, n - 1)
            return self.colors[idx]

        idx = np.clip(np.searchsorted(self.positions, t, side="right") - 1, 0, n - 2)
        p0 = self.positions[idx]
        span = self.positions[idx + 1] - p0
        with np.errstate(invalid="ignore", divide="ignore"):
            f = np.where(span > 0, (t - p0) / np.where(span > 0, span, 1.0), 0.0)
        f = np.clip(f, 0.0, 1.0)

        alpha0 = self.colors[idx, 3].astype(np.float64)
        alpha1 = self.colors[idx + 1, 3].astype(np.float64)
        alpha = alpha0 + (alpha1 - alpha0) * f

        rgb = self._interpolate(self._space[idx], self._space[idx + 1], f[..., np.newaxis])
        out = np.empty(t.shape + (4,), dtype=np.uint8)
        out[..., :3] = np.clip(np.round(rgb * 255.0), 0, 255)
        out[..., 3] = np.clip(np.round(alpha), 0, 255)
        return out

    def _interpolate(self, c0: np.ndarray, c1: np.ndarray, f: np.ndarray) -> np.ndarray:
        if self.interpolation == "rgb":
            return c0 + (c1 - c0) * f

        if self.interpolation == "lab":
            lab = c0 + (c1 - c0) * f
            flat = lab.reshape(1, -1, 3)
            return np.clip(skcolor.lab2rgb(flat), 0.0, 1.0).reshape(lab.shape)

        h0, l0, s0 = c0[..., 0], c0[..., 1], c0[..., 2]
        h1, l1, s1 = c1[..., 0], c1[..., 1], c1[..., 2]
        # an achromatic stop has no hue of its own, take the other one's
        h0, h1 = np.where(s0 == 0, h1, h0), np.where(s1 == 0, h0, h1)
        f = f[..., 0]
        dh = h1 - h0
        if self.interpolation == "hsl":
            dh = dh - np.round(dh)
        h = h0 + dh * f
        l = l0 + (l1 - l0) * f
        s = s0 + (s1 - s0) * f
        return _hls_to_rgb(h, l, s)

    def to_lut(self, size: int = LUT_SIZE) -> np.ndarray:
        """Sample the scale into a (size, 4) lookup table."""
        return self.map(np.arange(size, dtype=np.float64) / (size - 1))

    def to_image(self, width: int = 256, height: int = 1) -> np.ndarray:
        """Horizontal legend strip of shape (height, width, 4)."""
        strip = self.map(np.linspace(0.0, 1.0, width))
        return np.repeat(strip[np.newaxis, :, :], height, axis=0)

def _normalize_stops(
    stops: Sequence[Tuple[float, RGBA]],
    domain: Tuple[float, float]
) -> Tuple[List[float], List[RGBA]]:
    lo, hi = domain
    span = hi - lo if hi != lo else 1.0
    pairs = sorted((((float(v) - lo) / span, c) for v, c in stops), key=lambda pc: pc[0])
    positions = [p for p, _ in pairs]
    colors = [c for _, c in pairs]

    # keep a single stop at or beyond each end
    while len(positions) > 1 and positions[-2] >= 1.0:
        positions.pop()
        colors.pop()
    while len(positions) > 1 and positions[1] <= 0.0:
        positions.pop(0)
        colors.pop(0)

    if positions[0] > 0.0:
        positions.insert(0, 0.0)
        colors.insert(0, colors[0])

    return [min(max(p, 0.0), 1.0) for p in positions], colors

def build_color_scale(
    colors: Optional[Sequence] = None,
    color_scale: Optional[str] = None,
    domain: Tuple[float, float] = (0.0, 1.0),
    kind: str = "continuous",
    interpolation: str = "rgb"
) -> ColorScale:
    """
    Build a ColorScale from explicit colors or a named scale.

    `colors` is either a list of [value, color] stops, whose values are
    normalized into `domain`, or a plain list of colors spread evenly
    (i / (n - 1) for continuous scales, i / n for discrete ones). Without
    colors the named `color_scale` is used, viridis by default.

    Raises:
        ConfigurationError: For unknown scale names or malformed stops.
    """
    if colors:
        first = colors[0]
        is_stop = isinstance(first, (list, tuple)) and len(first) == 2 and not isinstance(first[0], str) \
            and isinstance(first[1], (str, list, tuple))
        if is_stop:
            stops = [(float(v), parse_color(c)) for v, c in colors]
            positions, parsed = _normalize_stops(stops, domain)
        else:
            parsed = [parse_color(c) for c in colors]
            n = len(parsed)
            if n == 1:
                positions = [0.0]
            elif kind == "discrete":
                positions = [i / n for i in range(n)]
            else:
                positions = [i / (n - 1) for i in range(n)]
        return ColorScale(positions, parsed, kind=kind, interpolation=interpolation)

    name = color_scale or "viridis"
    if name not in COLOR_SCALES:
        raise ConfigurationError(f"Unknown color scale: {name}. Available: {sorted(COLOR_SCALES)}")
    names, positions = COLOR_SCALES[name]
    return ColorScale(positions, [parse_color(c) for c in names], kind=kind, interpolation=interpolation)
