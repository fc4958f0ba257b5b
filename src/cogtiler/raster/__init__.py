# src/cogtiler/raster/__init__.py
#
# Copyright (c) The cogtiler project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The raster subpackage describes opened rasters and decodes their pixels,
including pyramid metadata, window decoders and band statistics.
"""
# Metadata and decoding
from .io import (
    PyramidLevel,
    RasterSource,
    RasterDecoder,
    RasterioDecoder,
    ArrayDecoder,
    open_raster,
    read_boundless
)

# Band statistics
from .statistics import (
    BandDomain,
    BandStatisticsResolver
)

# Utilities
from .utils import (
    nodata_mask,
    get_min_max,
    validate_band_indices,
    fill_value_for
)

__all__ = [
    # Metadata and decoding
    "PyramidLevel",
    "RasterSource",
    "RasterDecoder",
    "RasterioDecoder",
    "ArrayDecoder",
    "open_raster",
    "read_boundless",

    # Band statistics
    "BandDomain",
    "BandStatisticsResolver",

    # Utilities
    "nodata_mask",
    "get_min_max",
    "validate_band_indices",
    "fill_value_for"
]
