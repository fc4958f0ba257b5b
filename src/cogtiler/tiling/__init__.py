# src/cogtiler/tiling/__init__.py
#
# Copyright (c) The cogtiler project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The tiling subpackage relates the host's quad-tree tile grid to the raster:
tiling schemes, the zoom to pyramid level table and source window geometry.
"""
# Tiling schemes
from .scheme import (
    Rectangle,
    TilingScheme,
    geographic_scheme,
    web_mercator_scheme,
    projected_scheme,
    scheme_for_source
)

# Level resolution
from .levels import (
    FULL_WINDOW,
    LevelResolution,
    LevelResolver,
    build_request_levels
)

# Window geometry
from .window import (
    TileWindow,
    compute_window,
    compute_projected_window,
    window_bounds,
    orient_north_up
)

__all__ = [
    # Tiling schemes
    "Rectangle",
    "TilingScheme",
    "geographic_scheme",
    "web_mercator_scheme",
    "projected_scheme",
    "scheme_for_source",

    # Level resolution
    "FULL_WINDOW",
    "LevelResolution",
    "LevelResolver",
    "build_request_levels",

    # Window geometry
    "TileWindow",
    "compute_window",
    "compute_projected_window",
    "window_bounds",
    "orient_north_up"
]
