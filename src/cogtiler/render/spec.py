# src/cogtiler/render/spec.py

"""
Render configuration and its validated, immutable form.

A RenderSpec selects exactly one rendering mode:

- single: one band (or a band expression) mapped through a color scale.
- multi: three bands rescaled into the red, green and blue channels, with an
  optional literal color remapping.
- convert_to_rgb: multi-band composition using the raster's own red, green
  and blue bands.

`build_render_plan` checks render options against an opened raster once and turns it
into a RenderPlan, a closed tagged union (RenderKind) that tile rendering
dispatches on without consulting the options again.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..exceptions import ConfigurationError
from ..raster.io import RasterSource
from ..raster.utils import distinct, validate_band_indices
from .colors import COLOR_SCALES, INTERPOLATIONS, SCALE_KINDS, parse_color
from .expression import Expression, parse_expression
from .resample import RESAMPLE_METHODS

log = logging.getLogger(__name__)

__all__ = [
    "RenderKind",
    "BandSelection",
    "SingleBandOptions",
    "MultiBandOptions",
    "RenderSpec",
    "RenderPlan",
    "build_render_plan"
]

RGBA = Tuple[int, int, int, int]

# accepted spellings of option keys, mapped to field names
_ALIASES = {
    "colorScale": "color_scale",
    "displayRange": "display_range",
    "clampLow": "clamp_low",
    "clampHigh": "clamp_high",
    "colorMapping": "color_mapping",
    "convertToRGB": "convert_to_rgb",
    "resampleMethod": "resample_method",
    "interpolation": "mode",
}

def _normalize_keys(options: Dict[str, Any]) -> Dict[str, Any]:
    return {_ALIASES.get(k, k): v for k, v in options.items()}

class RenderKind(Enum):
    SINGLE = "single"
    MULTI = "multi"
    RGB = "rgb"

@dataclass
class BandSelection:
    band: int = 1
    min: Optional[float] = None
    max: Optional[float] = None

    @classmethod
    def from_value(cls, value: Union["BandSelection", Dict[str, Any], int, None], default_band: int) -> "BandSelection":
        if value is None:
            return cls(band=default_band)
        if isinstance(value, BandSelection):
            return value
        if isinstance(value, int):
            return cls(band=value)
        return cls(**_normalize_keys(value))

    @property
    def declared_domain(self) -> Optional[Tuple[float, float]]:
        if self.min is not None and self.max is not None:
            return (float(self.min), float(self.max))
        return None

@dataclass
class SingleBandOptions:
    """
    Single band colormap options.

    Args:
        band: 1-based band to render when no expression is given.
        min: Literal lower bound of the band domain.
        max: Literal upper bound of the band domain.
        colors: [value, color] stops or a plain list of colors.
        color_scale: Name of a registered color scale.
        type: "continuous" or "discrete".
        mode: Interpolation space, one of rgb, hsl, hslLong, lab.
        domain: Value range mapped onto the color scale.
        display_range: Values outside [lo, hi] are transparent.
        clamp_low: Clamp values below the domain to the first color,
            otherwise make them transparent.
        clamp_high: Same for values above the domain; defaults to clamp_low.
        expression: Band arithmetic evaluated instead of `band`.
    """
    band: int = 1
    min: Optional[float] = None
    max: Optional[float] = None
    colors: Optional[List[Any]] = None
    color_scale: Optional[str] = None
    type: str = "continuous"
    mode: str = "rgb"
    domain: Optional[Tuple[float, float]] = None
    display_range: Optional[Tuple[float, float]] = None
    clamp_low: bool = True
    clamp_high: Optional[bool] = None
    expression: Optional[str] = None

@dataclass
class MultiBandOptions:
    r: BandSelection = field(default_factory=lambda: BandSelection(1))
    g: BandSelection = field(default_factory=lambda: BandSelection(2))
    b: BandSelection = field(default_factory=lambda: BandSelection(3))
    color_mapping: List[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, options: Dict[str, Any]) -> "MultiBandOptions":
        options = _normalize_keys(options)
        return cls(
            r=BandSelection.from_value(options.get("r"), 1),
            g=BandSelection.from_value(options.get("g"), 2),
            b=BandSelection.from_value(options.get("b"), 3),
            color_mapping=list(options.get("color_mapping") or [])
        )

@dataclass
class RenderSpec:
    single: Optional[SingleBandOptions] = None
    multi: Optional[MultiBandOptions] = None
    convert_to_rgb: bool = False
    nodata: Optional[float] = None
    resample_method: str = "nearest"
    color_mapping: List[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, Any]]) -> "RenderSpec":
        """
        Build a spec from plain options.

        Besides the field names, the camelCase keys `colorScale`,
        `displayRange`, `clampLow`, `clampHigh`, `colorMapping`,
        `convertToRGB` and `resampleMethod` are accepted, `fill` is read as
        `single`, and top-level `r`/`g`/`b` entries as `multi`.
        """
        if options is None:
            return cls()
        if isinstance(options, RenderSpec):
            return options

        options = _normalize_keys(dict(options))
        single = options.pop("single", None)
        fill = options.pop("fill", None)
        if single is None and fill is not None:
            single = fill
        elif single is not None and fill is not None:
            raise ConfigurationError("Both 'single' and 'fill' render options were given")

        multi = options.pop("multi", None)
        channels = {k: options.pop(k) for k in ("r", "g", "b") if k in options}
        if multi is None and channels:
            multi = channels
        elif multi is not None and channels:
            raise ConfigurationError("Both 'multi' and top-level r/g/b render options were given")

        unknown = set(options) - {"convert_to_rgb", "nodata", "resample_method", "color_mapping"}
        if unknown:
            raise ConfigurationError(f"Unknown render options: {sorted(unknown)}")

        return cls(
            single=SingleBandOptions(**_normalize_keys(single)) if isinstance(single, dict) else single,
            multi=MultiBandOptions.from_dict(multi) if isinstance(multi, dict) else multi,
            convert_to_rgb=bool(options.get("convert_to_rgb", False)),
            nodata=options.get("nodata"),
            resample_method=options.get("resample_method") or "nearest",
            color_mapping=list(options.get("color_mapping") or [])
        )

@dataclass(frozen=True)
class RenderPlan:
    """
    Validated rendering decision, fixed for the provider's lifetime.

    Args:
        kind: Active rendering mode.
        bands: Distinct 1-based bands decoded for every tile.
        method: Resampling method.
        nodata: Effective no-data value.
        single: Options of the single band mode.
        expression: Parsed expression of the single band mode, if any.
        channels: Red, green and blue selections of the RGB modes.
        alpha_band: Band used as an alpha mask in RGB modes, if any.
        color_mapping: Exact RGB triple -> RGBA replacements.
    """
    kind: RenderKind
    bands: Tuple[int, ...]
    method: str = "nearest"
    nodata: Optional[float] = None
    single: Optional[SingleBandOptions] = None
    expression: Optional[Expression] = None
    channels: Tuple[BandSelection, ...] = ()
    alpha_band: Optional[int] = None
    color_mapping: Tuple[Tuple[Tuple[int, int, int], RGBA], ...] = ()

    @property
    def declared_domains(self) -> Dict[int, Tuple[float, float]]:
        declared: Dict[int, Tuple[float, float]] = {}
        if self.single is not None and self.expression is None:
            if self.single.min is not None and self.single.max is not None:
                declared[self.single.band] = (float(self.single.min), float(self.single.max))
        for selection in self.channels:
            if selection.declared_domain is not None:
                declared[selection.band] = selection.declared_domain
        return declared

def _pair(value, name: str) -> Optional[Tuple[float, float]]:
    if value is None:
        return None
    if len(value) != 2:
        raise ConfigurationError(f"{name} must be a [min, max] pair, got {value!r}")
    lo, hi = float(value[0]), float(value[1])
    if hi < lo:
        raise ConfigurationError(f"{name} is reversed: {value!r}")
    return (lo, hi)

def _parse_color_mapping(entries: Sequence[Any]) -> Tuple[Tuple[Tuple[int, int, int], RGBA], ...]:
    mapping = []
    for entry in entries:
        if len(entry) != 2:
            raise ConfigurationError(f"Color mapping entries must be [from, to] pairs, got {entry!r}")
        source, target = entry
        r, g, b, _ = parse_color(source)
        mapping.append(((r, g, b), parse_color(target)))
    return tuple(mapping)

def _native_rgb(source: RasterSource) -> Tuple[Tuple[int, int, int], Optional[int]]:
    interp = [name.lower() for name in source.color_interp]
    try:
        bands = tuple(interp.index(c) + 1 for c in ("red", "green", "blue"))
    except ValueError:
        bands = (1, 2, 3)
    alpha = interp.index("alpha") + 1 if "alpha" in interp else None
    return bands, alpha

def build_render_plan(spec: Union[RenderSpec, Dict[str, Any], None], source: RasterSource) -> RenderPlan:
    """
    Validate a render spec against a raster.

    Raises:
        ConfigurationError: If more than one mode is active, a band is out of
            range, or an option value is invalid.
    """
    spec = RenderSpec.from_dict(spec) if not isinstance(spec, RenderSpec) else spec

    active = [name for name, on in (
        ("single", spec.single is not None),
        ("multi", spec.multi is not None),
        ("convert_to_rgb", spec.convert_to_rgb)
    ) if on]
    if len(active) > 1:
        raise ConfigurationError(f"Exactly one render mode may be set, got {active}")

    if spec.resample_method not in RESAMPLE_METHODS:
        raise ConfigurationError(
            f"Unknown resample method: {spec.resample_method}. Expected one of {RESAMPLE_METHODS}"
        )

    nodata = spec.nodata if spec.nodata is not None else source.nodata

    if not active:
        if source.count <= 2:
            log.info("No render mode given, defaulting to single band 1")
            spec = replace(spec, single=SingleBandOptions())
        else:
            log.info("No render mode given, defaulting to RGB composition of bands 1, 2, 3")
            spec = replace(spec, multi=MultiBandOptions())

    if spec.single is not None:
        return _single_plan(spec, source, nodata)

    if spec.convert_to_rgb:
        (r, g, b), alpha = _native_rgb(source)
        channels = (BandSelection(r, 0, 255), BandSelection(g, 0, 255), BandSelection(b, 0, 255))
        if source.dtype != "uint8":
            channels = (BandSelection(r), BandSelection(g), BandSelection(b))
        color_mapping = spec.color_mapping
        kind = RenderKind.RGB
    else:
        channels = (spec.multi.r, spec.multi.g, spec.multi.b)
        alpha = None
        color_mapping = spec.multi.color_mapping or spec.color_mapping
        kind = RenderKind.MULTI

    if source.count < 3 and kind is RenderKind.RGB:
        raise ConfigurationError("convert_to_rgb needs a raster with at least three bands")

    bands = [c.band for c in channels] + ([alpha] if alpha else [])
    validate_band_indices(bands, source.count)
    for selection in channels:
        _pair(selection.declared_domain, f"Band {selection.band} min/max")

    return RenderPlan(
        kind=kind,
        bands=tuple(distinct(bands)),
        method=spec.resample_method,
        nodata=nodata,
        channels=channels,
        alpha_band=alpha,
        color_mapping=_parse_color_mapping(color_mapping)
    )

def _single_plan(spec: RenderSpec, source: RasterSource, nodata: Optional[float]) -> RenderPlan:
    single = spec.single
    if single.type not in SCALE_KINDS:
        raise ConfigurationError(f"Unknown color scale type: {single.type}. Expected one of {SCALE_KINDS}")
    if single.mode not in INTERPOLATIONS:
        raise ConfigurationError(f"Unknown interpolation: {single.mode}. Expected one of {INTERPOLATIONS}")
    if single.color_scale is not None and not single.colors and single.color_scale not in COLOR_SCALES:
        raise ConfigurationError(f"Unknown color scale: {single.color_scale}")

    single = replace(
        single,
        domain=_pair(single.domain, "domain"),
        display_range=_pair(single.display_range, "display_range")
    )

    expression = None
    if single.expression:
        expression = parse_expression(single.expression)
        if not expression.bands:
            raise ConfigurationError(f"Expression {single.expression!r} references no band")
        bands = list(expression.bands)
    else:
        bands = [single.band]
    validate_band_indices(bands, source.count)

    return RenderPlan(
        kind=RenderKind.SINGLE,
        bands=tuple(bands),
        method=spec.resample_method,
        nodata=nodata,
        single=single,
        expression=expression
    )
