# src/cogtiler/raster/statistics.py

"""
This module resolves the value domain (min/max) of raster bands.

Domains are looked up in this order:
    1. A literal domain declared by the render configuration.
    2. Statistics embedded in the raster (GDAL STATISTICS_* metadata).
    3. A full scan of the band at the coarsest pyramid level, ignoring
       no-data and NaN samples.

Results are memoized for the lifetime of the resolver. Concurrent first
lookups of the same band may both compute the domain; the value is
deterministic so whichever write lands last is correct.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..exceptions import ConfigurationError
from .io import RasterDecoder, RasterSource
from .utils import get_min_max, validate_band_indices

log = logging.getLogger(__name__)

__all__ = [
    "BandDomain",
    "BandStatisticsResolver"
]

@dataclass(frozen=True)
class BandDomain:
    min: float
    max: float

    @property
    def range(self) -> float:
        return self.max - self.min

    def as_tuple(self) -> Tuple[float, float]:
        return (self.min, self.max)

class BandStatisticsResolver:
    """
    Memoized per-band domain lookup.

    Args:
        source: Metadata of the opened raster.
        decoder: Decoder used to sample the coarsest level.
        declared: Literal (min, max) per band from the render configuration.
        nodata: Effective no-data value of the render configuration; defaults
            to the raster's own.
    """

    def __init__(
        self,
        source: RasterSource,
        decoder: RasterDecoder,
        declared: Optional[Dict[int, Tuple[float, float]]] = None,
        nodata: Optional[float] = None
    ):
        self.source = source
        self.decoder = decoder
        self.declared = dict(declared or {})
        self.nodata = nodata if nodata is not None else source.nodata
        self._domains: Dict[int, BandDomain] = {}

    def is_resolved(self, band: int) -> bool:
        return band in self._domains

    def get_domain(self, band: int) -> BandDomain:
        """
        Return the domain of a 1-based band, computing it on first use.

        Raises:
            ConfigurationError: If the band index is out of range, or the band
                holds no valid sample at the coarsest level.
        """
        validate_band_indices(band, self.source.count)

        cached = self._domains.get(band)
        if cached is not None:
            return cached

        domain = self._resolve(band)
        self._domains[band] = domain
        return domain

    def _resolve(self, band: int) -> BandDomain:
        declared = self.declared.get(band)
        if declared is not None:
            log.debug(f"Band {band}: declared domain {declared}")
            return BandDomain(*declared)

        embedded = self.source.statistics.get(band)
        if embedded is not None:
            log.debug(f"Band {band}: embedded statistics {embedded}")
            return BandDomain(*embedded)

        level = self.source.coarsest
        log.info(f"Band {band}: computing statistics from level {level.index} ({level.width}x{level.height})")
        data = self.decoder.read_level(level, [band])[0]
        extent = get_min_max(data, self.nodata)
        if extent is None:
            raise ConfigurationError(f"Band {band} has no valid samples to derive a domain from")
        return BandDomain(*extent)
