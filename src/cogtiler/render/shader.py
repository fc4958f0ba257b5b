# src/cogtiler/render/shader.py

"""
This module implements the accelerated single band rendering pipeline.

A ShaderProgram bundles the GLSL vertex and fragment source for one
rendering configuration (plain band or expression, continuous or discrete
scale). Programs are compiled once per canonical expression by a
ShaderCache and reused for every tile.

ShaderPipeline executes the fragment program's semantics in-process with
numba kernels, fusing three steps that the CPU path runs separately:
    1. Inline sampling of the raw decoded window (nearest, or edge tolerant
       bilinear with the same buffer and no-data rules as the resampler).
    2. Optional expression evaluation on the sampled bands.
    3. Color mapping: continuous scales read an 8192 entry lookup table
       (the color scale texture), discrete scales search the stop uniforms.

The generated GLSL is exposed for hosts that own a GPU surface; the output of
both is equivalent to the CPU path within one or two levels per channel.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
from numba import jit

from .colors import LUT_SIZE, ColorScale
from .expression import Expression
from .resample import is_nodata, sample_bilinear, sample_nearest

log = logging.getLogger(__name__)

__all__ = [
    "MAX_STOPS",
    "VERTEX_SHADER",
    "ShaderProgram",
    "ShaderCache",
    "ShaderPipeline",
    "build_fragment_shader"
]

MAX_STOPS = 64

VERTEX_SHADER = """
precision mediump float;

attribute vec2 a_position;
attribute vec2 a_texCoord;

uniform vec2 u_resolution;
uniform vec4 u_window;

varying vec2 v_texCoord;

void main() {
    vec2 clipSpace = (a_position / u_resolution) * 2.0 - 1.0;
    gl_Position = vec4(clipSpace * vec2(1.0, -1.0), 0.0, 1.0);
    v_texCoord = mix(u_window.xy, u_window.zw, a_texCoord);
}
""".strip()

_FRAGMENT_HEADER = """
precision mediump float;

{samplers}
uniform sampler2D u_colorScale;
uniform vec2 u_textureSize;
uniform float u_buffer;
uniform bool u_bilinear;
uniform bool u_hasNoData;
uniform float u_noDataValue;
uniform vec2 u_domain;
uniform vec2 u_displayRange;
uniform bool u_applyDisplayRange;
uniform bool u_clampLow;
uniform bool u_clampHigh;
uniform int u_stopCount;
uniform float u_stopPositions[{max_stops}];
uniform vec4 u_stopColors[{max_stops}];

varying vec2 v_texCoord;

bool isNoData(float value) {{
    if (value != value) return true;
    if (!u_hasNoData) return false;
    if (u_noDataValue == 0.0) return value == 0.0;
    return abs((value - u_noDataValue) / u_noDataValue) < 1e-6;
}}

vec2 texelOf(vec2 uv) {{
    vec2 effective = u_textureSize - 2.0 * u_buffer;
    return effective * uv + u_buffer;
}}

float fetch(sampler2D data, vec2 texel) {{
    vec2 clamped = clamp(texel, vec2(0.0), u_textureSize - 1.0);
    return texture2D(data, (clamped + 0.5) / u_textureSize).r;
}}

vec2 sampleNearest(sampler2D data, vec2 uv) {{
    float value = fetch(data, floor(texelOf(uv)));
    return vec2(value, isNoData(value) ? 0.0 : 1.0);
}}

vec2 sampleBilinear(sampler2D data, vec2 uv) {{
    vec2 raw = texelOf(uv);
    vec2 lo = floor(raw);
    vec2 f = raw - lo;
    float v00 = fetch(data, lo);
    float v10 = fetch(data, lo + vec2(1.0, 0.0));
    float v01 = fetch(data, lo + vec2(0.0, 1.0));
    float v11 = fetch(data, lo + vec2(1.0, 1.0));
    float w00 = (1.0 - f.x) * (1.0 - f.y);
    float w10 = f.x * (1.0 - f.y);
    float w01 = (1.0 - f.x) * f.y;
    float w11 = f.x * f.y;
    float total = 0.0;
    float acc = 0.0;
    float plain = 0.0;
    float count = 0.0;
    if (!isNoData(v00)) {{ total += w00; acc += w00 * v00; plain += v00; count += 1.0; }}
    if (!isNoData(v10)) {{ total += w10; acc += w10 * v10; plain += v10; count += 1.0; }}
    if (!isNoData(v01)) {{ total += w01; acc += w01 * v01; plain += v01; count += 1.0; }}
    if (!isNoData(v11)) {{ total += w11; acc += w11 * v11; plain += v11; count += 1.0; }}
    if (count == 0.0) return vec2(u_noDataValue, 0.0);
    if (total <= 0.0) return vec2(plain / count, 1.0);
    return vec2(acc / total, 1.0);
}}

vec2 sampleBand(sampler2D data, vec2 uv) {{
    return u_bilinear ? sampleBilinear(data, uv) : sampleNearest(data, uv);
}}
""".strip()

_CONTINUOUS_LOOKUP = """
vec4 lookupColor(float t) {
    return texture2D(u_colorScale, vec2(t, 0.5));
}
""".strip()

_DISCRETE_LOOKUP = """
vec4 lookupColor(float t) {{
    vec4 color = u_stopColors[0];
    for (int i = 1; i < {max_stops}; i++) {{
        if (i >= u_stopCount) break;
        if (u_stopPositions[i] <= t) color = u_stopColors[i];
    }}
    return color;
}}
""".strip()

_FRAGMENT_MAIN = """
void main() {{
{sampling}
    if (valid < 0.5 || value != value) {{
        gl_FragColor = vec4(0.0);
        return;
    }}
    if (u_applyDisplayRange && (value < u_displayRange[0] || value > u_displayRange[1])) {{
        gl_FragColor = vec4(0.0);
        return;
    }}
    if ((!u_clampLow && value < u_domain[0]) || (!u_clampHigh && value > u_domain[1])) {{
        gl_FragColor = vec4(0.0);
        return;
    }}
    float span = u_domain[1] - u_domain[0];
    float t = clamp((value - u_domain[0]) / (span == 0.0 ? 1.0 : span), 0.0, 1.0);
    gl_FragColor = lookupColor(t);
}}
""".strip()

def build_fragment_shader(expression: Optional[Expression], kind: str, band: int = 1) -> str:
    """
    Generate fragment shader source.

    Without an expression a single sampler `u_textureData` is read; with one,
    every referenced band gets a sampler `u_textureData_b<N>` and the
    expression is inlined over the sampled `b<N>_value` variables.
    """
    if expression is None:
        samplers = "uniform sampler2D u_textureData;"
        sampling = (
            "    vec2 sampled = sampleBand(u_textureData, v_texCoord);\n"
            "    float value = sampled.x;\n"
            "    float valid = sampled.y;"
        )
    else:
        samplers = "\n".join(f"uniform sampler2D u_textureData_b{b};" for b in expression.bands)
        lines = []
        for b in expression.bands:
            lines.append(f"    vec2 b{b}_sample = sampleBand(u_textureData_b{b}, v_texCoord);")
            lines.append(f"    float b{b}_value = b{b}_sample.x;")
        validity = " * ".join(f"b{b}_sample.y" for b in expression.bands)
        lines.append(f"    float valid = {validity};")
        lines.append(f"    float value = {expression.to_glsl()};")
        sampling = "\n".join(lines)

    lookup = _CONTINUOUS_LOOKUP if kind == "continuous" else _DISCRETE_LOOKUP.format(max_stops=MAX_STOPS)
    header = _FRAGMENT_HEADER.format(samplers=samplers, max_stops=MAX_STOPS)
    return "\n\n".join([header, lookup, _FRAGMENT_MAIN.format(sampling=sampling)])

@dataclass(frozen=True)
class ShaderProgram:
    key: str
    kind: str
    band_ids: Tuple[int, ...]
    vertex_source: str
    fragment_source: str
    expression: Optional[Expression] = None

class ShaderCache:
    """Compiled programs keyed by (canonical expression or band, scale kind)."""

    def __init__(self):
        self._programs: Dict[Tuple[str, str], ShaderProgram] = {}
        self._lock = threading.Lock()
        self.compile_count = 0

    def get_program(self, expression: Optional[Expression], kind: str, band: int = 1) -> ShaderProgram:
        key = expression.canonical if expression is not None else f"b{band}"
        with self._lock:
            program = self._programs.get((key, kind))
            if program is None:
                program = ShaderProgram(
                    key=key,
                    kind=kind,
                    band_ids=expression.bands if expression is not None else (band,),
                    vertex_source=VERTEX_SHADER,
                    fragment_source=build_fragment_shader(expression, kind, band),
                    expression=expression
                )
                self._programs[(key, kind)] = program
                self.compile_count += 1
                log.debug(f"Compiled {kind} shader program for {key}")
            return program

    def clear(self) -> None:
        with self._lock:
            self._programs.clear()

    def __len__(self) -> int:
        return len(self._programs)

@jit(nopython=True, cache=True, nogil=True)
def _sample_window(data, values, valid, x0, y0, x1, y1, buffer, bilinear, nodata, has_nodata):
    out_h, out_w = values.shape
    for i in range(out_h):
        v = y0 + (i / out_h) * (y1 - y0)
        for j in range(out_w):
            u = x0 + (j / out_w) * (x1 - x0)
            if bilinear:
                value, ok = sample_bilinear(data, buffer, u, v, nodata, has_nodata)
            else:
                value = float(sample_nearest(data, buffer, u, v))
                ok = not is_nodata(value, nodata, has_nodata)
            values[i, j] = value
            valid[i, j] = ok

@jit(nopython=True, cache=True, nogil=True)
def _visible(value, ok, lo, hi, dr_lo, dr_hi, apply_display_range, clamp_low, clamp_high):
    if not ok or value != value:
        return False
    if apply_display_range and (value < dr_lo or value > dr_hi):
        return False
    if (not clamp_low and value < lo) or (not clamp_high and value > hi):
        return False
    return True

@jit(nopython=True, cache=True, nogil=True)
def _shade_continuous(values, valid, lut, lo, hi, dr_lo, dr_hi, apply_display_range,
                      clamp_low, clamp_high, out):
    out_h, out_w = values.shape
    last = lut.shape[0] - 1
    span = hi - lo
    if span == 0.0:
        span = 1.0
    for i in range(out_h):
        for j in range(out_w):
            value = values[i, j]
            if not _visible(value, valid[i, j], lo, hi, dr_lo, dr_hi,
                            apply_display_range, clamp_low, clamp_high):
                for c in range(4):
                    out[i, j, c] = 0
                continue
            t = min(max((value - lo) / span, 0.0), 1.0)
            k = int(math.floor(t * last + 0.5))
            for c in range(4):
                out[i, j, c] = lut[k, c]

@jit(nopython=True, cache=True, nogil=True)
def _shade_discrete(values, valid, positions, colors, lo, hi, dr_lo, dr_hi, apply_display_range,
                    clamp_low, clamp_high, out):
    out_h, out_w = values.shape
    n = positions.shape[0]
    span = hi - lo
    if span == 0.0:
        span = 1.0
    for i in range(out_h):
        for j in range(out_w):
            value = values[i, j]
            if not _visible(value, valid[i, j], lo, hi, dr_lo, dr_hi,
                            apply_display_range, clamp_low, clamp_high):
                for c in range(4):
                    out[i, j, c] = 0
                continue
            t = min(max((value - lo) / span, 0.0), 1.0)
            k = 0
            for s in range(1, n):
                if positions[s] <= t:
                    k = s
            for c in range(4):
                out[i, j, c] = colors[k, c]

class ShaderPipeline:
    """
    Fused sample + colorize executor for single band rendering.

    Args:
        scale: Color scale; continuous scales are baked into a lookup table.
        domain: (min, max) of the values mapped onto the scale.
        tile_size: Output tile edge in pixels.
        band: Band rendered when there is no expression.
        expression: Optional band expression.
        method: "nearest" or "bilinear" inline sampling.
        buffer: Edge buffer of the decoded windows.
        nodata: No-data value.
        display_range: Optional closed interval of visible values.
        clamp_low: Clamp values below the domain instead of hiding them.
        clamp_high: Same above the domain; defaults to clamp_low.
        cache: Program cache shared across pipelines.
    """

    def __init__(
        self,
        scale: ColorScale,
        domain: Tuple[float, float],
        tile_size: int = 256,
        band: int = 1,
        expression: Optional[Expression] = None,
        method: str = "nearest",
        buffer: int = 1,
        nodata: Optional[float] = None,
        display_range: Optional[Tuple[float, float]] = None,
        clamp_low: bool = True,
        clamp_high: Optional[bool] = None,
        cache: Optional[ShaderCache] = None
    ):
        if scale.kind == "discrete" and len(scale.positions) > MAX_STOPS:
            raise ValueError(f"Discrete scales support at most {MAX_STOPS} stops")
        self.scale = scale
        self.domain = (float(domain[0]), float(domain[1]))
        self.tile_size = tile_size
        self.band = band
        self.expression = expression
        self.bilinear = method == "bilinear"
        self.buffer = buffer
        self.has_nodata = nodata is not None and not math.isnan(nodata)
        self.nodata = float(nodata) if self.has_nodata else math.nan
        self.display_range = display_range
        self.clamp_low = clamp_low
        self.clamp_high = clamp_low if clamp_high is None else clamp_high
        self.cache = cache if cache is not None else ShaderCache()
        self.program = self.cache.get_program(expression, scale.kind, band)
        self.lut = scale.to_lut(LUT_SIZE) if scale.kind == "continuous" else None

    @property
    def bands(self) -> Tuple[int, ...]:
        return self.program.band_ids

    def uniforms(self) -> Dict[str, object]:
        """Uniform values a GPU host binds before drawing with `program`."""
        dr = self.display_range or (0.0, 1.0)
        uniforms = {
            "u_buffer": float(self.buffer),
            "u_bilinear": self.bilinear,
            "u_hasNoData": self.has_nodata,
            "u_noDataValue": self.nodata if self.has_nodata else 0.0,
            "u_domain": self.domain,
            "u_displayRange": dr,
            "u_applyDisplayRange": self.display_range is not None,
            "u_clampLow": self.clamp_low,
            "u_clampHigh": self.clamp_high,
            "u_stopCount": len(self.scale.positions),
        }
        if self.scale.kind == "discrete":
            uniforms["u_stopPositions"] = self.scale.positions.tolist()
            uniforms["u_stopColors"] = (self.scale.colors / 255.0).tolist()
        return uniforms

    def _sample(self, data: np.ndarray, window) -> Tuple[np.ndarray, np.ndarray]:
        size = self.tile_size
        values = np.empty((size, size), dtype=np.float64)
        valid = np.empty((size, size), dtype=np.bool_)
        x0, y0, x1, y1 = (float(v) for v in window)
        _sample_window(
            np.asarray(data), values, valid, x0, y0, x1, y1,
            self.buffer, self.bilinear, self.nodata, self.has_nodata
        )
        return values, valid

    def render(self, datasets: Dict[int, np.ndarray], sampling_window=(0.0, 0.0, 1.0, 1.0)) -> np.ndarray:
        """
        Render one tile from raw decoded windows.

        Args:
            datasets: 1-based band -> 2D decoded window, buffer included.
            sampling_window: Fraction of the buffer-trimmed window to draw.

        Returns:
            np.ndarray: uint8 RGBA array of shape (tile_size, tile_size, 4).
        """
        if self.expression is None:
            values, valid = self._sample(datasets[self.band], sampling_window)
        else:
            sampled = {b: self._sample(datasets[b], sampling_window) for b in self.expression.bands}
            valid = np.logical_and.reduce([ok for _, ok in sampled.values()])
            values = self.expression.evaluate({b: v for b, (v, _) in sampled.items()})

        out = np.empty((self.tile_size, self.tile_size, 4), dtype=np.uint8)
        lo, hi = self.domain
        dr_lo, dr_hi = self.display_range or (0.0, 1.0)
        apply_dr = self.display_range is not None

        if self.lut is not None:
            _shade_continuous(values, valid, self.lut, lo, hi, dr_lo, dr_hi, apply_dr,
                              self.clamp_low, self.clamp_high, out)
        else:
            _shade_discrete(values, valid, self.scale.positions, self.scale.colors, lo, hi,
                            dr_lo, dr_hi, apply_dr, self.clamp_low, self.clamp_high, out)
        return out

    def release(self) -> None:
        self.lut = None
