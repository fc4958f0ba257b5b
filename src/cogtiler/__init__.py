# src/cogtiler/__init__.py
#
# Copyright (c) The cogtiler project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
cogtiler renders RGBA map tiles on demand from pyramided Cloud-Optimized
GeoTIFFs, with single band colormaps, band expressions and RGB composition.
"""
# Provider
from .provider import (
    CogTileProvider,
    DEFAULT_TILE_SIZE
)

# Configuration
from .config import (
    ProviderOptions
)
from .cache import (
    CachePolicy,
    TileCache
)
from .workers import (
    WorkerPool
)

# Errors
from .exceptions import (
    CogTilerError,
    ConfigurationError,
    UnsupportedProjectionError,
    ExpressionError,
    DecodeError,
    ProviderNotReadyError,
    ErrorEvent
)

__version__ = "0.1.0"

__all__ = [
    # Provider
    "CogTileProvider",
    "DEFAULT_TILE_SIZE",

    # Configuration
    "ProviderOptions",
    "CachePolicy",
    "TileCache",
    "WorkerPool",

    # Errors
    "CogTilerError",
    "ConfigurationError",
    "UnsupportedProjectionError",
    "ExpressionError",
    "DecodeError",
    "ProviderNotReadyError",
    "ErrorEvent"
]
