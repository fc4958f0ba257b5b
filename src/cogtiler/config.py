# src/cogtiler/config.py

"""
Provider configuration.

ProviderOptions gathers every tunable of a tile provider. Defaults are safe
for interactive use; `ProviderOptions.from_env()` lets deployments override
them through COGTILER_* environment variables (optionally read from a .env
file).
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any

from dotenv import load_dotenv, find_dotenv

from .cache import CachePolicy
from .exceptions import ConfigurationError

log = logging.getLogger(__name__)

__all__ = [
    "ProviderOptions",
    "ENV_PREFIX"
]

ENV_PREFIX = "COGTILER_"

DEFAULT_MAXIMUM_LEVEL = 18
DEFAULT_LEVEL_TOLERANCE = 1.5
DEFAULT_CACHE_ENTRIES = 256
DEFAULT_CACHE_TTL = 60.0

@dataclass
class ProviderOptions:
    """
    Options controlling tile resolution, caching and concurrency.

    Args:
        tile_size (int): Output tile edge in pixels. None picks the raster's
            block width (if tiled) and falls back to 256.
        minimum_level (int): Requests below this zoom return no tile.
        maximum_level (int): Requests above this zoom return no tile.
        enable_pick_features (bool): Allow `pick_value` lookups.
        buffer (int): Edge buffer in pixels added around each source window.
        level_tolerance (float): Multiple of the tile size a pyramid level's
            per-tile pixel span may reach and still serve that zoom.
        clamp_to_coarsest (bool): Serve zooms coarser than the coarsest level
            from the coarsest level instead of returning no tile.
        level_zero_tiles_x (int): Tile columns at zoom 0.
        level_zero_tiles_y (int): Tile rows at zoom 0.
        cache_policy (CachePolicy): Eviction policy of the tile cache.
        cache_size (int): Maximum entries under the capacity policy.
        cache_ttl (float): Entry lifetime in seconds under the TTL policy.
        workers (int): Worker pool size. None uses the machine's CPU count,
            0 runs resampling synchronously on the calling thread.
        accelerated (bool): Render single-band tiles through the fused
            shader pipeline instead of resample-then-colorize.
        projection: A `Projection` for rasters whose CRS is neither
            EPSG:4326 nor Web Mercator.
    """
    tile_size: Optional[int] = None
    minimum_level: int = 0
    maximum_level: int = DEFAULT_MAXIMUM_LEVEL
    enable_pick_features: bool = True
    buffer: int = 1
    level_tolerance: float = DEFAULT_LEVEL_TOLERANCE
    clamp_to_coarsest: bool = False
    level_zero_tiles_x: int = 1
    level_zero_tiles_y: int = 1
    cache_policy: CachePolicy = CachePolicy.CAPACITY
    cache_size: int = DEFAULT_CACHE_ENTRIES
    cache_ttl: float = DEFAULT_CACHE_TTL
    workers: Optional[int] = None
    accelerated: bool = True
    projection: Optional[Any] = field(default=None, repr=False)

    def __post_init__(self):
        if isinstance(self.cache_policy, str):
            try:
                self.cache_policy = CachePolicy(self.cache_policy.lower())
            except ValueError as e:
                raise ConfigurationError(f"Unknown cache policy: {self.cache_policy}") from e
        self.validate()

    def validate(self) -> None:
        if self.tile_size is not None and self.tile_size <= 0:
            raise ConfigurationError(f"tile_size must be positive, got {self.tile_size}")
        if self.minimum_level < 0:
            raise ConfigurationError(f"minimum_level must be >= 0, got {self.minimum_level}")
        if self.maximum_level < self.minimum_level:
            raise ConfigurationError(
                f"maximum_level ({self.maximum_level}) is below minimum_level ({self.minimum_level})"
            )
        if self.buffer < 0:
            raise ConfigurationError(f"buffer must be >= 0, got {self.buffer}")
        if self.level_tolerance < 1.0:
            raise ConfigurationError(f"level_tolerance must be >= 1.0, got {self.level_tolerance}")
        if self.level_zero_tiles_x < 1 or self.level_zero_tiles_y < 1:
            raise ConfigurationError("Level zero tile counts must be >= 1")
        if self.workers is not None and self.workers < 0:
            raise ConfigurationError(f"workers must be >= 0, got {self.workers}")
        if self.cache_size < 1:
            raise ConfigurationError(f"cache_size must be >= 1, got {self.cache_size}")
        if self.cache_ttl <= 0:
            raise ConfigurationError(f"cache_ttl must be positive, got {self.cache_ttl}")

    def with_overrides(self, **changes) -> "ProviderOptions":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, **overrides) -> "ProviderOptions":
        """
        Build options from COGTILER_* environment variables.

        When `environ` is None the process environment is used, after loading
        the nearest .env file (existing variables are not overwritten).
        Explicit keyword overrides win over the environment.

        Args:
            environ: Mapping to read instead of os.environ.
            **overrides: Field values that take precedence.

        Returns:
            ProviderOptions: The resolved options.
        """
        if environ is None:
            env_path = find_dotenv(usecwd=True)
            if env_path:
                log.debug(f"Loading environment from {env_path}")
                load_dotenv(env_path)
            environ = os.environ

        readers = {
            "tile_size": int,
            "minimum_level": int,
            "maximum_level": int,
            "enable_pick_features": _parse_bool,
            "buffer": int,
            "level_tolerance": float,
            "clamp_to_coarsest": _parse_bool,
            "cache_policy": str,
            "cache_size": int,
            "cache_ttl": float,
            "workers": int,
            "accelerated": _parse_bool,
        }

        values: Dict[str, Any] = {}
        for name, reader in readers.items():
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                continue
            try:
                values[name] = reader(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from e

        values.update(overrides)
        return cls(**values)

def _parse_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {raw}")
