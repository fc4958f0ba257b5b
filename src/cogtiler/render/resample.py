# src/cogtiler/render/resample.py

"""
This module resamples decoded source windows to the output tile size.

Both methods parametrize the target tile over the buffer-trimmed source
rectangle: a target pixel (i, j) maps to the fractional source position
(x0 + j / tw * (x1 - x0), y0 + i / th * (y1 - y0)) inside the sampling
window, scaled by the effective size (source size minus twice the buffer)
and offset by the buffer. Buffer rows and columns stay available as
neighbours for bilinear interpolation.

Bilinear interpolation tolerates no-data: neighbours that are NaN or equal
to the no-data value are dropped and the remaining weights renormalized, so
edges next to missing data fade instead of leaving transparent seams. Only
when all four neighbours are invalid does the output become no-data.

Kernels are compiled with numba in nopython mode and release the GIL so
worker threads run them concurrently.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from numba import jit

log = logging.getLogger(__name__)

__all__ = [
    "RESAMPLE_METHODS",
    "ResampleOptions",
    "resample_data",
    "resample_nearest",
    "resample_bilinear"
]

RESAMPLE_METHODS = ("nearest", "bilinear")

Window4 = Tuple[float, float, float, float]

@jit(nopython=True, cache=True, nogil=True)
def is_nodata(value, nodata, has_nodata):
    if value != value:
        return True
    if not has_nodata:
        return False
    if nodata == 0.0:
        return value == 0
    return abs((value - nodata) / nodata) < 1e-6

@jit(nopython=True, cache=True, nogil=True)
def sample_nearest(data, buffer, u, v):
    height, width = data.shape
    col = buffer + int(math.floor((width - 2 * buffer) * u))
    row = buffer + int(math.floor((height - 2 * buffer) * v))
    col = min(max(col, 0), width - 1)
    row = min(max(row, 0), height - 1)
    return data[row, col]

@jit(nopython=True, cache=True, nogil=True)
def sample_bilinear(data, buffer, u, v, nodata, has_nodata):
    """
    Edge tolerant bilinear sample at fractional position (u, v).

    Returns (value, valid).
    """
    height, width = data.shape
    raw_x = (width - 2 * buffer) * u + buffer
    raw_y = (height - 2 * buffer) * v + buffer

    x_lo = int(math.floor(raw_x))
    y_lo = int(math.floor(raw_y))
    fx = raw_x - x_lo
    fy = raw_y - y_lo

    x_lo = min(max(x_lo, 0), width - 1)
    y_lo = min(max(y_lo, 0), height - 1)
    x_hi = min(x_lo + 1, width - 1)
    y_hi = min(y_lo + 1, height - 1)

    v00 = float(data[y_lo, x_lo])
    v10 = float(data[y_lo, x_hi])
    v01 = float(data[y_hi, x_lo])
    v11 = float(data[y_hi, x_hi])

    ok00 = not is_nodata(v00, nodata, has_nodata)
    ok10 = not is_nodata(v10, nodata, has_nodata)
    ok01 = not is_nodata(v01, nodata, has_nodata)
    ok11 = not is_nodata(v11, nodata, has_nodata)

    if ok00 and ok10 and ok01 and ok11:
        top = v00 + (v10 - v00) * fx
        bottom = v01 + (v11 - v01) * fx
        return top + (bottom - top) * fy, True

    w00 = (1.0 - fx) * (1.0 - fy)
    w10 = fx * (1.0 - fy)
    w01 = (1.0 - fx) * fy
    w11 = fx * fy

    total = 0.0
    acc = 0.0
    count = 0
    plain = 0.0
    if ok00:
        total += w00
        acc += w00 * v00
        plain += v00
        count += 1
    if ok10:
        total += w10
        acc += w10 * v10
        plain += v10
        count += 1
    if ok01:
        total += w01
        acc += w01 * v01
        plain += v01
        count += 1
    if ok11:
        total += w11
        acc += w11 * v11
        plain += v11
        count += 1

    if count == 0:
        return nodata, False
    if total <= 0.0:
        # valid neighbours all carry zero weight, borrow their mean
        return plain / count, True
    return acc / total, True

@jit(nopython=True, cache=True, nogil=True)
def _nearest_kernel(data, out, x0, y0, x1, y1, buffer):
    out_h, out_w = out.shape
    for i in range(out_h):
        v = y0 + (i / out_h) * (y1 - y0)
        for j in range(out_w):
            u = x0 + (j / out_w) * (x1 - x0)
            out[i, j] = sample_nearest(data, buffer, u, v)

@jit(nopython=True, cache=True, nogil=True)
def _bilinear_kernel(data, out, x0, y0, x1, y1, buffer, nodata, has_nodata, round_output):
    out_h, out_w = out.shape
    for i in range(out_h):
        v = y0 + (i / out_h) * (y1 - y0)
        for j in range(out_w):
            u = x0 + (j / out_w) * (x1 - x0)
            value, valid = sample_bilinear(data, buffer, u, v, nodata, has_nodata)
            if valid and round_output:
                value = float(math.floor(value + 0.5))
            out[i, j] = value

@dataclass(frozen=True)
class ResampleOptions:
    """
    Parameters of one resampling task.

    Args:
        source_width: Width of the decoded window, buffer included.
        source_height: Height of the decoded window, buffer included.
        target_width: Output width.
        target_height: Output height.
        window: Sampling window (x0, y0, x1, y1) as fractions of the
            buffer-trimmed source.
        method: "nearest" or "bilinear".
        buffer: Edge buffer of the source in pixels.
        nodata: No-data value of the samples.
    """
    source_width: int
    source_height: int
    target_width: int
    target_height: int
    window: Window4 = (0.0, 0.0, 1.0, 1.0)
    method: str = "nearest"
    buffer: int = 0
    nodata: Optional[float] = None

def _prepare(data: np.ndarray, buffer: int) -> np.ndarray:
    data = np.asarray(data)
    if data.ndim != 2:
        raise ValueError(f"Expected a 2D array, got shape {data.shape}")
    if data.shape[0] <= 2 * buffer or data.shape[1] <= 2 * buffer:
        raise ValueError(f"Source {data.shape} too small for a buffer of {buffer}")
    return data

def _nodata_args(nodata: Optional[float]) -> Tuple[float, bool]:
    if nodata is None or math.isnan(nodata):
        return math.nan, False
    return float(nodata), True

def resample_nearest(
    data: np.ndarray,
    target_width: int,
    target_height: int,
    window: Window4 = (0.0, 0.0, 1.0, 1.0),
    buffer: int = 0
) -> np.ndarray:
    data = _prepare(data, buffer)
    out = np.empty((target_height, target_width), dtype=data.dtype)
    x0, y0, x1, y1 = (float(v) for v in window)
    _nearest_kernel(data, out, x0, y0, x1, y1, buffer)
    return out

def resample_bilinear(
    data: np.ndarray,
    target_width: int,
    target_height: int,
    window: Window4 = (0.0, 0.0, 1.0, 1.0),
    buffer: int = 0,
    nodata: Optional[float] = None
) -> np.ndarray:
    """
    Bilinear resampling with no-data tolerant neighbours.

    Integer outputs are rounded to the nearest value; outputs with no valid
    neighbour are set to `nodata` (NaN for floating data without one).
    """
    data = _prepare(data, buffer)
    out = np.empty((target_height, target_width), dtype=data.dtype)
    x0, y0, x1, y1 = (float(v) for v in window)
    nodata_value, has_nodata = _nodata_args(nodata)
    round_output = not np.issubdtype(data.dtype, np.floating)
    _bilinear_kernel(data, out, x0, y0, x1, y1, buffer, nodata_value, has_nodata, round_output)
    return out

def resample_data(data: np.ndarray, options: ResampleOptions) -> np.ndarray:
    """
    Resample a decoded window according to `options`.

    `data` may be flat or 2D; it is viewed as (source_height, source_width).
    The result has the same dtype as the input.
    """
    source = np.asarray(data).reshape(options.source_height, options.source_width)
    if options.method == "nearest":
        return resample_nearest(
            source, options.target_width, options.target_height, options.window, options.buffer
        )
    if options.method == "bilinear":
        return resample_bilinear(
            source, options.target_width, options.target_height, options.window,
            options.buffer, options.nodata
        )
    raise ValueError(f"Unknown resample method: {options.method}. Expected one of {RESAMPLE_METHODS}")
