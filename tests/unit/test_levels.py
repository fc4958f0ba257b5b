# tests/unit/test_levels.py

import pytest

from cogtiler.raster.io import PyramidLevel
from cogtiler.tiling.levels import FULL_WINDOW, LevelResolver, build_request_levels
from cogtiler.tiling.scheme import geographic_scheme

def _levels(*sizes):
    return [PyramidLevel(i, s, s, 256, 256) for i, s in enumerate(sizes)]

@pytest.fixture
def unit_scheme():
    return geographic_scheme((0.0, 0.0, 1.0, 1.0))

def test_request_levels_pick_finest_fitting_level(unit_scheme):
    """
    Zoom 0 shows the whole raster in one 256 tile: only the 256 px level fits
    the 1.5x tolerance. The table stops at the first zoom using level 0.
    """
    table = build_request_levels(_levels(1024, 512, 256), unit_scheme, 256)
    assert table == [2, 1, 0]

def test_request_levels_tolerance_allows_oversized_level(unit_scheme):
    """A 384 px level is exactly 1.5x a 256 tile and still qualifies."""
    table = build_request_levels(_levels(768, 384), unit_scheme, 256)
    assert table == [1, 0]

def test_request_levels_leave_coarse_zooms_empty(unit_scheme):
    table = build_request_levels(_levels(2048), unit_scheme, 256)
    assert table == [None, None, None, 0]

def test_request_levels_clamp_to_coarsest(unit_scheme):
    table = build_request_levels(_levels(2048, 1024), unit_scheme, 256, clamp_to_coarsest=True)
    assert table == [1, 1, 1, 0]

def test_request_levels_require_levels(unit_scheme):
    with pytest.raises(ValueError):
        build_request_levels([], unit_scheme, 256)

def test_request_levels_respect_level_zero_tiles():
    scheme = geographic_scheme((-180.0, -90.0, 180.0, 90.0), level_zero_tiles_x=2, level_zero_tiles_y=1)
    levels = [PyramidLevel(0, 1024, 512, 256, 256), PyramidLevel(1, 512, 256, 256, 256)]

    table = build_request_levels(levels, scheme, 256)

    # zoom 0 has two 256 columns over the 512 px wide level
    assert table == [1, 0]

# --- RESOLVER ---

def test_resolver_native_zoom():
    resolver = LevelResolver([2, 1, 0])
    resolution = resolver.resolve(1, 0, 1)

    assert resolution.level == 1
    assert resolution.native_zoom == 1
    assert (resolution.tile_x, resolution.tile_y) == (1, 0)
    assert not resolution.is_oversampled
    assert resolution.sub_window == FULL_WINDOW

def test_resolver_empty_zoom_returns_none():
    resolver = LevelResolver([None, None, 0])

    assert resolver.resolve(0, 0, 0) is None
    assert resolver.resolve(0, 0, -1) is None
    assert resolver.min_zoom == 2

def test_resolver_oversampling_uses_parent_quadrant():
    """
    Two zooms past the table, tile (5, 6) lives in parent (1, 1) of the
    deepest native zoom and covers its quarter starting at (0.25, 0.5).
    """
    resolver = LevelResolver([1, 0])
    resolution = resolver.resolve(5, 6, 3)

    assert resolution.is_oversampled
    assert resolution.level == 0
    assert resolution.parent_tile == (1, 1, 1)
    assert resolution.sub_window == pytest.approx((0.25, 0.5, 0.5, 0.75))

def test_resolver_oversampled_children_tile_the_parent():
    resolver = LevelResolver([0])
    windows = [resolver.resolve(x, y, 1).sub_window for y in range(2) for x in range(2)]

    assert windows == [
        (0.0, 0.0, 0.5, 0.5),
        (0.5, 0.0, 1.0, 0.5),
        (0.0, 0.5, 0.5, 1.0),
        (0.5, 0.5, 1.0, 1.0)
    ]
