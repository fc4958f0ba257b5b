# tests/unit/test_scheme.py

import numpy as np
import pytest

from cogtiler.exceptions import UnsupportedProjectionError
from cogtiler.raster.io import RasterSource
from cogtiler.tiling.scheme import (
    Rectangle,
    geographic_scheme,
    projected_scheme,
    scheme_for_source,
    web_mercator_scheme
)

MERCATOR_EXTENT = 20037508.342789244

def test_geographic_tile_bounds():
    scheme = geographic_scheme((0.0, 0.0, 1.0, 1.0))

    assert scheme.tile_bounds(0, 0, 0) == (0.0, 0.0, 1.0, 1.0)
    # row 0 is the northern edge
    assert scheme.tile_bounds(1, 0, 1) == (0.5, 0.5, 1.0, 1.0)
    assert scheme.tile_bounds(0, 1, 1) == (0.0, 0.0, 0.5, 0.5)

def test_contains_tile():
    scheme = geographic_scheme((0.0, 0.0, 1.0, 1.0), level_zero_tiles_x=2)

    assert scheme.contains_tile(3, 1, 1)
    assert not scheme.contains_tile(4, 0, 1)
    assert not scheme.contains_tile(0, 2, 1)
    assert not scheme.contains_tile(-1, 0, 1)
    assert not scheme.contains_tile(0, 0, -1)

def test_position_to_tile():
    scheme = geographic_scheme((0.0, 0.0, 1.0, 1.0))

    assert scheme.position_to_tile(0.75, 0.25, 1) == (1, 1)
    assert scheme.position_to_tile(1.0, 1.0, 1) == (1, 0)
    assert scheme.position_to_tile(2.0, 0.5, 1) is None

def test_web_mercator_rectangle_is_in_degrees():
    extent = (-MERCATOR_EXTENT, -MERCATOR_EXTENT, MERCATOR_EXTENT, MERCATOR_EXTENT)
    scheme = web_mercator_scheme(extent)

    rect = scheme.rectangle
    assert rect.west == pytest.approx(-180.0)
    assert rect.east == pytest.approx(180.0)
    assert rect.north == pytest.approx(85.0511, abs=1e-4)

    gx, gy = scheme.geographic_to_grid(np.array([0.0]), np.array([0.0]))
    assert gx[0] == pytest.approx(0.0)
    assert gy[0] == pytest.approx(0.0, abs=1e-6)

def test_antimeridian_rectangle():
    """A raster crossing the antimeridian gets an east edge above 180."""
    scheme = geographic_scheme((170.0, -10.0, -170.0, 10.0))

    assert scheme.grid_bounds == (170.0, -10.0, 190.0, 10.0)
    assert scheme.rectangle.contains(-175.0, 0.0)
    assert not scheme.rectangle.contains(160.0, 0.0)

    gx, _ = scheme.geographic_to_grid(np.array([-175.0]), np.array([0.0]))
    assert gx[0] == pytest.approx(185.0)

def test_rectangle_size():
    rect = Rectangle(10.0, 20.0, 30.0, 25.0)
    assert (rect.width, rect.height) == (20.0, 5.0)
    assert rect.as_tuple() == (10.0, 20.0, 30.0, 25.0)

def test_projected_scheme_uses_unprojected_rectangle(affine_projection):
    scheme = projected_scheme((0.0, 0.0, 1000.0, 2000.0), affine_projection)

    assert scheme.name == "projected"
    assert scheme.grid_bounds == pytest.approx((0.0, 0.0, 1.0, 2.0))

# --- SCHEME SELECTION ---

def _source(crs, bounds=(0.0, 0.0, 1.0, 1.0)):
    source, _ = RasterSource.from_arrays([np.zeros((4, 4), dtype="float32")], bounds, crs=crs)
    return source

def test_scheme_for_geographic_source():
    scheme, reproject = scheme_for_source(_source("EPSG:4326"))
    assert scheme.name == "geographic"
    assert reproject is False

def test_scheme_for_mercator_source():
    scheme, reproject = scheme_for_source(_source("EPSG:3857", (0.0, 0.0, 1000.0, 1000.0)))
    assert scheme.name == "web-mercator"
    assert reproject is False

def test_scheme_for_projected_source_requires_projection(affine_projection):
    source = _source("EPSG:32633", (0.0, 0.0, 1000.0, 1000.0))

    with pytest.raises(UnsupportedProjectionError, match="Unsupported projection"):
        scheme_for_source(source)

    scheme, reproject = scheme_for_source(source, affine_projection)
    assert reproject is True
    assert scheme.rectangle.as_tuple() == pytest.approx((0.0, 0.0, 1.0, 1.0))
