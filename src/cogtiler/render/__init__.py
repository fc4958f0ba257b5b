# src/cogtiler/render/__init__.py
#
# Copyright (c) The cogtiler project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The render subpackage turns decoded band windows into RGBA tiles:
reprojection, resampling, render configuration, color scales, band
expressions, CPU colorization and the accelerated shader pipeline.
"""
# Reprojection
from .reproject import (
    Projection,
    pyproj_projection,
    reproject,
    transform_bounds,
    roundtrip_corners
)

# Resampling
from .resample import (
    RESAMPLE_METHODS,
    ResampleOptions,
    resample_data,
    resample_nearest,
    resample_bilinear
)

# Colors and expressions
from .colors import (
    LUT_SIZE,
    COLOR_SCALES,
    ColorScale,
    parse_color,
    build_color_scale,
    add_color_scale
)
from .expression import (
    Expression,
    parse_expression
)

# Render configuration
from .spec import (
    RenderKind,
    BandSelection,
    SingleBandOptions,
    MultiBandOptions,
    RenderSpec,
    RenderPlan,
    build_render_plan
)

# Colorization
from .colorize import (
    combined_nodata_mask,
    colorize_single,
    colorize_rgb,
    render_tile
)
from .shader import (
    ShaderProgram,
    ShaderCache,
    ShaderPipeline,
    build_fragment_shader
)

__all__ = [
    # Reprojection
    "Projection",
    "pyproj_projection",
    "reproject",
    "transform_bounds",
    "roundtrip_corners",

    # Resampling
    "RESAMPLE_METHODS",
    "ResampleOptions",
    "resample_data",
    "resample_nearest",
    "resample_bilinear",

    # Colors and expressions
    "LUT_SIZE",
    "COLOR_SCALES",
    "ColorScale",
    "parse_color",
    "build_color_scale",
    "add_color_scale",
    "Expression",
    "parse_expression",

    # Render configuration
    "RenderKind",
    "BandSelection",
    "SingleBandOptions",
    "MultiBandOptions",
    "RenderSpec",
    "RenderPlan",
    "build_render_plan",

    # Colorization
    "combined_nodata_mask",
    "colorize_single",
    "colorize_rgb",
    "render_tile",
    "ShaderProgram",
    "ShaderCache",
    "ShaderPipeline",
    "build_fragment_shader"
]
