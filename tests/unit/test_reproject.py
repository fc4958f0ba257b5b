# tests/unit/test_reproject.py

import numpy as np
import pytest

from cogtiler.render.reproject import (
    Projection,
    pyproj_projection,
    reproject,
    roundtrip_corners,
    transform_bounds
)

def _identity(xs, ys):
    return np.asarray(xs, dtype=np.float64), np.asarray(ys, dtype=np.float64)

@pytest.fixture
def source_window():
    return np.arange(16, dtype="float32").reshape(4, 4)

def test_identity_reprojection_is_lossless(source_window):
    out = reproject(source_window, (0, 0, 4, 4), (0, 0, 4, 4), _identity)

    np.testing.assert_array_equal(out, source_window)
    assert out.dtype == source_window.dtype

def test_uncovered_pixels_get_nodata(source_window):
    out = reproject(source_window, (0, 0, 4, 4), (4, 0, 8, 4), _identity, nodata=-1)

    assert np.all(out == -1)

def test_partial_overlap(source_window):
    """Shifting the target two units east keeps the eastern half of the source."""
    out = reproject(source_window, (0, 0, 4, 4), (2, 0, 6, 4), _identity, nodata=-1)

    np.testing.assert_array_equal(out[:, :2], source_window[:, 2:])
    assert np.all(out[:, 2:] == -1)

def test_default_fill_depends_on_dtype(source_window):
    floats = reproject(source_window, (0, 0, 4, 4), (10, 10, 14, 14), _identity)
    ints = reproject(source_window.astype("uint8"), (0, 0, 4, 4), (10, 10, 14, 14), _identity)

    assert np.all(np.isnan(floats))
    assert np.all(ints == 0)

def test_target_size_override(source_window):
    out = reproject(source_window, (0, 0, 4, 4), (0, 0, 4, 4), _identity, target_width=8, target_height=2)

    assert out.shape == (2, 8)
    # the northern target row is centred at y = 3.0, inside source row 1
    np.testing.assert_array_equal(out[0, ::2], source_window[1])

def test_affine_projection_maps_native_window(affine_projection):
    """A degrees target over a metric-like source picks the matching pixels."""
    data = np.arange(100, dtype="float64").reshape(10, 10)

    out = reproject(data, (0.0, 0.0, 1000.0, 1000.0), (0.0, 0.0, 1.0, 1.0), affine_projection.project)

    np.testing.assert_array_equal(out, data)

def test_roundtrip_corners(affine_projection):
    corners = roundtrip_corners((10.0, 20.0, 11.0, 21.0), affine_projection)

    np.testing.assert_allclose(corners, [(10.0, 21.0), (11.0, 21.0), (11.0, 20.0), (10.0, 20.0)])

def test_transform_bounds(affine_projection):
    assert transform_bounds((0.0, 0.0, 1.0, 2.0), affine_projection.project) == pytest.approx(
        (0.0, 0.0, 1000.0, 2000.0)
    )

def test_pyproj_projection_roundtrip():
    projection = pyproj_projection("EPSG:32633")
    assert isinstance(projection, Projection)

    corners = roundtrip_corners((14.0, 45.0, 16.0, 47.0), projection)
    expected = [(14.0, 47.0), (16.0, 47.0), (16.0, 45.0), (14.0, 45.0)]
    for (lon, lat), (exp_lon, exp_lat) in zip(corners, expected):
        assert lon == pytest.approx(exp_lon, abs=1e-7)
        assert lat == pytest.approx(exp_lat, abs=1e-7)

def test_pyproj_projection_is_easting_first():
    projection = pyproj_projection("EPSG:3857")
    xs, ys = projection.project(np.array([180.0]), np.array([0.0]))

    assert xs[0] == pytest.approx(20037508.342789244)
    assert ys[0] == pytest.approx(0.0, abs=1e-6)
