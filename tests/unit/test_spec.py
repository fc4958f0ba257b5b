# tests/unit/test_spec.py

import numpy as np
import pytest

from cogtiler.exceptions import ConfigurationError, ExpressionError
from cogtiler.raster.io import RasterSource
from cogtiler.render.spec import (
    RenderKind,
    RenderSpec,
    SingleBandOptions,
    build_render_plan
)

def _source(count, dtype="float32", color_interp=None, nodata=None):
    levels = [np.zeros((count, 8, 8), dtype=dtype)]
    source, _ = RasterSource.from_arrays(
        levels, (0.0, 0.0, 1.0, 1.0), nodata=nodata, color_interp=color_interp
    )
    return source

# --- DEFAULTS ---

def test_single_band_default_for_one_band():
    plan = build_render_plan(None, _source(1))

    assert plan.kind is RenderKind.SINGLE
    assert plan.bands == (1,)
    assert plan.method == "nearest"

def test_rgb_default_for_three_bands():
    plan = build_render_plan({}, _source(4))

    assert plan.kind is RenderKind.MULTI
    assert [c.band for c in plan.channels] == [1, 2, 3]

def test_spec_is_not_mutated():
    spec = RenderSpec()
    build_render_plan(spec, _source(1))
    assert spec.single is None

# --- VALIDATION ---

def test_two_modes_are_rejected():
    with pytest.raises(ConfigurationError, match="Exactly one render mode"):
        build_render_plan({"single": {"band": 1}, "multi": {"r": 1, "g": 1, "b": 1}}, _source(3))

    with pytest.raises(ConfigurationError):
        build_render_plan({"single": {"band": 1}, "convertToRGB": True}, _source(3))

def test_band_out_of_range():
    with pytest.raises(ConfigurationError, match="out of range"):
        build_render_plan({"single": {"band": 2}}, _source(1))

    with pytest.raises(ConfigurationError):
        build_render_plan({"multi": {"r": 1, "g": 2, "b": 5}}, _source(3))

def test_expression_band_out_of_range():
    with pytest.raises(ConfigurationError):
        build_render_plan({"single": {"expression": "b1 + b3"}}, _source(2))

def test_bad_expression():
    with pytest.raises(ExpressionError):
        build_render_plan({"single": {"expression": "b1 +"}}, _source(1))

def test_expression_without_band():
    with pytest.raises(ConfigurationError, match="references no band"):
        build_render_plan({"single": {"expression": "1 + 2"}}, _source(1))

@pytest.mark.parametrize("single", [
    {"colorScale": "does-not-exist"},
    {"type": "stepped"},
    {"mode": "cmyk"},
    {"domain": [10, 0]},
    {"displayRange": [1, 2, 3]},
])
def test_invalid_single_options(single):
    with pytest.raises(ConfigurationError):
        build_render_plan({"single": single}, _source(1))

def test_unknown_resample_method():
    with pytest.raises(ConfigurationError, match="resample method"):
        build_render_plan({"resampleMethod": "cubic"}, _source(1))

def test_unknown_option_key():
    with pytest.raises(ConfigurationError, match="Unknown render options"):
        RenderSpec.from_dict({"singel": {"band": 1}})

# --- PARSING ---

def test_camel_case_and_fill_alias():
    plan = build_render_plan(
        {
            "fill": {"band": 2, "colorScale": "greys", "displayRange": [1, 5], "clampLow": False},
            "resampleMethod": "bilinear",
            "nodata": -1
        },
        _source(2)
    )

    assert plan.kind is RenderKind.SINGLE
    assert plan.bands == (2,)
    assert plan.method == "bilinear"
    assert plan.nodata == -1
    assert plan.single.color_scale == "greys"
    assert plan.single.display_range == (1.0, 5.0)
    assert plan.single.clamp_low is False

def test_nodata_falls_back_to_raster():
    assert build_render_plan(None, _source(1, nodata=-9999)).nodata == -9999
    assert build_render_plan({"nodata": 0}, _source(1, nodata=-9999)).nodata == 0

def test_expression_plan():
    plan = build_render_plan({"single": {"expression": "(b3 - b1) / (b3 + b1)"}}, _source(3))

    assert plan.bands == (1, 3)
    assert plan.expression.canonical == "((b3 - b1) / (b3 + b1))"
    assert plan.declared_domains == {}

def test_declared_domains():
    single = build_render_plan({"single": {"band": 1, "min": 0, "max": 10}}, _source(1))
    assert single.declared_domains == {1: (0.0, 10.0)}

    multi = build_render_plan(
        {"r": {"band": 3, "min": 0, "max": 4000}, "g": 2, "b": {"band": 1}},
        _source(3)
    )
    assert multi.kind is RenderKind.MULTI
    assert [c.band for c in multi.channels] == [3, 2, 1]
    assert multi.declared_domains == {3: (0.0, 4000.0)}

def test_color_mapping_is_parsed():
    plan = build_render_plan(
        {"multi": {"colorMapping": [["black", "transparent"], [[255, 255, 255], "#ff0000"]]}},
        _source(3)
    )

    assert plan.color_mapping == (
        ((0, 0, 0), (0, 0, 0, 0)),
        ((255, 255, 255), (255, 0, 0, 255))
    )

# --- NATIVE RGB ---

def test_convert_to_rgb_uses_color_interpretation():
    source = _source(4, dtype="uint8", color_interp=["blue", "green", "red", "alpha"])

    plan = build_render_plan({"convert_to_rgb": True}, source)

    assert plan.kind is RenderKind.RGB
    assert [c.band for c in plan.channels] == [3, 2, 1]
    assert plan.alpha_band == 4
    assert plan.bands == (3, 2, 1, 4)
    assert plan.declared_domains == {1: (0.0, 255.0), 2: (0.0, 255.0), 3: (0.0, 255.0)}

def test_convert_to_rgb_needs_three_bands():
    with pytest.raises(ConfigurationError, match="at least three bands"):
        build_render_plan({"convertToRGB": True}, _source(2, dtype="uint8"))

def test_single_options_object_is_accepted():
    spec = RenderSpec(single=SingleBandOptions(band=1, color_scale="magma"))
    plan = build_render_plan(spec, _source(1))

    assert plan.single.color_scale == "magma"
