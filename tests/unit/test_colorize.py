# tests/unit/test_colorize.py

import numpy as np
import pytest

from cogtiler.raster.io import RasterSource
from cogtiler.render.colorize import (
    colorize_rgb,
    colorize_single,
    combined_nodata_mask,
    render_tile
)
from cogtiler.render.colors import build_color_scale
from cogtiler.render.spec import build_render_plan

@pytest.fixture
def gray_scale():
    return build_color_scale(["black", "white"])

# --- SINGLE BAND ---

def test_mid_value_maps_to_mid_gray(gray_scale):
    out = colorize_single(np.array([[50.0]]), gray_scale, (0.0, 100.0))

    assert out.shape == (1, 1, 4)
    assert abs(int(out[0, 0, 0]) - 128) <= 1
    assert out[0, 0, 0] == out[0, 0, 1] == out[0, 0, 2]
    assert out[0, 0, 3] == 255

def test_discrete_interval_is_closed_on_the_left():
    scale = build_color_scale([[0, "red"], [10, "lime"], [20, "blue"]], domain=(0, 20), kind="discrete")
    values = np.array([[0.0, 9.99, 10.0, 15.0, 19.99, 20.0]])

    out = colorize_single(values, scale, (0.0, 20.0))

    assert [tuple(px[:3]) for px in out[0]] == [
        (255, 0, 0), (255, 0, 0), (0, 255, 0), (0, 255, 0), (0, 255, 0), (0, 0, 255)
    ]

def test_display_range_is_closed_interval(gray_scale):
    values = np.array([[5.0, 10.0, 50.0, 90.0, 95.0]])

    out = colorize_single(values, gray_scale, (0.0, 100.0), display_range=(10.0, 90.0))

    assert out[0, :, 3].tolist() == [0, 255, 255, 255, 0]

def test_clamping(gray_scale):
    values = np.array([[-5.0, 105.0]])

    clamped = colorize_single(values, gray_scale, (0.0, 100.0))
    assert clamped[0, :, 0].tolist() == [0, 255]
    assert clamped[0, :, 3].tolist() == [255, 255]

    hidden = colorize_single(values, gray_scale, (0.0, 100.0), clamp_low=False)
    assert hidden[0, :, 3].tolist() == [0, 0]

    high_only = colorize_single(values, gray_scale, (0.0, 100.0), clamp_low=False, clamp_high=True)
    assert high_only[0, :, 3].tolist() == [0, 255]

def test_nan_and_mask_are_transparent(gray_scale):
    values = np.array([[np.nan, 20.0, 30.0]])
    mask = np.array([[False, True, False]])

    out = colorize_single(values, gray_scale, (0.0, 100.0), mask=mask)

    assert out[0, :, 3].tolist() == [0, 0, 255]
    assert out[0, 0].tolist() == [0, 0, 0, 0]

def test_flat_domain_does_not_divide_by_zero(gray_scale):
    out = colorize_single(np.array([[3.0]]), gray_scale, (3.0, 3.0))
    assert out[0, 0].tolist() == [0, 0, 0, 255]

# --- RGB COMPOSITION ---

def test_rgb_passthrough_and_nodata():
    red = np.array([[0, 255, 100]], dtype="uint8")
    green = np.array([[10, 255, 100]], dtype="uint8")
    blue = np.array([[10, 255, 100]], dtype="uint8")

    out = colorize_rgb(red, green, blue, [(0, 255)] * 3, nodata=0)

    assert out[0, 0, 3] == 0
    assert out[0, 1].tolist() == [255, 255, 255, 255]
    assert out[0, 2].tolist() == [100, 100, 100, 255]

def test_rgb_rescales_domain():
    band = np.array([[0.0, 500.0, 1000.0, 2000.0]])

    out = colorize_rgb(band, band, band, [(0.0, 1000.0)] * 3)

    assert out[0, :, 0].tolist() == [0, 128, 255, 255]

def test_rgb_color_mapping_skips_invalid_pixels():
    red = np.array([[255, 255]], dtype="uint8")
    green = np.array([[255, 255]], dtype="uint8")
    blue = np.array([[255, 255]], dtype="uint8")
    alpha = np.array([[255, 0]], dtype="uint8")

    out = colorize_rgb(
        red, green, blue, [(0, 255)] * 3,
        color_mapping=[((255, 255, 255), (255, 0, 0, 255))],
        alpha=alpha
    )

    assert out[0, 0].tolist() == [255, 0, 0, 255]
    assert out[0, 1, 3] == 0

def test_combined_nodata_mask():
    a = np.array([1.0, -9999.0, 3.0])
    b = np.array([np.nan, 2.0, 3.0])

    assert combined_nodata_mask([a, b], -9999).tolist() == [True, True, False]

# --- DISPATCH ---

def _source(count):
    levels = [np.zeros((count, 4, 4), dtype="float32")]
    source, _ = RasterSource.from_arrays(levels, (0.0, 0.0, 1.0, 1.0))
    return source

def test_render_tile_single_expression(gray_scale):
    plan = build_render_plan({"single": {"expression": "b1 * 2"}}, _source(1))
    arrays = {1: np.array([[10.0, 20.0]])}

    out = render_tile(plan, arrays, {}, scale=gray_scale, single_domain=(0.0, 40.0))

    assert abs(int(out[0, 0, 0]) - 128) <= 1
    assert out[0, 1, 0] == 255

def test_render_tile_multi():
    plan = build_render_plan({"multi": {"r": 3, "g": 2, "b": 1}}, _source(3))
    arrays = {
        1: np.array([[0.0]]),
        2: np.array([[50.0]]),
        3: np.array([[100.0]])
    }
    domains = {b: (0.0, 100.0) for b in (1, 2, 3)}

    out = render_tile(plan, arrays, domains)

    assert out[0, 0, 0] == 255
    assert abs(int(out[0, 0, 1]) - 128) <= 1
    assert out[0, 0, 2] == 0
    assert out[0, 0, 3] == 255
