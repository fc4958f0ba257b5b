# src/cogtiler/raster/utils.py

"""
Small array helpers shared by the raster and render subpackages.
"""

import logging
from typing import Iterable, Optional, Sequence, Tuple, Union, List

import numpy as np

from ..exceptions import ConfigurationError

log = logging.getLogger(__name__)

__all__ = [
    "NODATA_RTOL",
    "nodata_mask",
    "get_min_max",
    "validate_band_indices",
    "fill_value_for",
    "distinct"
]

# relative tolerance used when comparing samples against a non-zero no-data value
NODATA_RTOL = 1e-6

def nodata_mask(array: np.ndarray, nodata: Optional[float]) -> np.ndarray:
    """
    Boolean mask of samples that are NaN or equal to the no-data value.

    A zero no-data value is compared exactly; any other value with a relative
    tolerance of NODATA_RTOL so float32 round-off does not leak through.
    """
    array = np.asarray(array)
    if np.issubdtype(array.dtype, np.floating):
        mask = np.isnan(array)
    else:
        mask = np.zeros(array.shape, dtype=bool)

    if nodata is None or np.isnan(nodata):
        return mask
    if nodata == 0:
        return mask | (array == 0)

    with np.errstate(invalid="ignore"):
        close = np.abs((array.astype(np.float64) - nodata) / nodata) < NODATA_RTOL
    return mask | close

def get_min_max(values: np.ndarray, nodata: Optional[float] = None) -> Optional[Tuple[float, float]]:
    """
    Empirical (min, max) of the valid samples, or None if nothing is valid.
    """
    values = np.asarray(values)
    valid = values[~nodata_mask(values, nodata)]
    if valid.size == 0:
        return None
    return float(valid.min()), float(valid.max())

def validate_band_indices(bands: Union[int, Iterable[int]], count: int) -> List[int]:
    """
    Check 1-based band indices against the raster's sample count.

    Raises:
        ConfigurationError: If any index is outside 1..count.
    """
    if isinstance(bands, (int, np.integer)):
        bands = [int(bands)]
    indices = [int(b) for b in bands]
    for b in indices:
        if b < 1 or b > count:
            raise ConfigurationError(f"Band index {b} out of range (raster has {count} bands)")
    return indices

def fill_value_for(dtype: np.dtype, nodata: Optional[float]):
    """Value used for samples read outside the raster extent."""
    dtype = np.dtype(dtype)
    if nodata is not None:
        return nodata
    if np.issubdtype(dtype, np.floating):
        return np.nan
    return 0

def distinct(values: Sequence[int]) -> List[int]:
    seen = []
    for v in values:
        if v not in seen:
            seen.append(v)
    return seen
