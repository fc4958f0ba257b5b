# tests/unit/test_resample.py

import numpy as np
import pytest

from cogtiler.render.resample import (
    ResampleOptions,
    resample_bilinear,
    resample_data,
    resample_nearest
)

# --- CONSTANT INPUTS ---

@pytest.mark.parametrize("dtype", ["float32", "float64", "uint8", "int16"])
@pytest.mark.parametrize("method", ["nearest", "bilinear"])
def test_constant_source_stays_constant(dtype, method):
    """A constant window resamples to the same constant, keeping its dtype."""
    data = np.full((10, 10), 7, dtype=dtype)
    options = ResampleOptions(10, 10, 32, 32, method=method, buffer=1)

    out = resample_data(data, options)

    assert out.shape == (32, 32)
    assert out.dtype == np.dtype(dtype)
    assert np.all(out == 7)

def test_flat_input_is_reshaped():
    data = np.arange(16, dtype="float32")
    options = ResampleOptions(4, 4, 4, 4, method="nearest")

    out = resample_data(data, options)

    np.testing.assert_array_equal(out, data.reshape(4, 4))

def test_unknown_method_raises():
    with pytest.raises(ValueError, match="Unknown resample method"):
        resample_data(np.zeros((4, 4)), ResampleOptions(4, 4, 2, 2, method="cubic"))

def test_buffer_too_large_raises():
    with pytest.raises(ValueError):
        resample_nearest(np.zeros((2, 2)), 4, 4, buffer=1)

# --- NEAREST ---

def test_nearest_skips_buffer():
    """Buffer rows/columns are never picked by nearest sampling of the full window."""
    data = np.full((4, 4), 99.0)
    data[1:3, 1:3] = [[1.0, 2.0], [3.0, 4.0]]

    out = resample_nearest(data, 2, 2, buffer=1)

    np.testing.assert_array_equal(out, [[1.0, 2.0], [3.0, 4.0]])

def test_nearest_sampling_window_selects_quadrant():
    """A sub-window (0.5, 0.5, 1, 1) magnifies the south-east quadrant."""
    data = np.arange(16, dtype="float64").reshape(4, 4)

    out = resample_nearest(data, 2, 2, window=(0.5, 0.5, 1.0, 1.0))

    np.testing.assert_array_equal(out, [[10.0, 11.0], [14.0, 15.0]])

def test_nearest_upsampling_repeats_pixels():
    data = np.array([[1, 2], [3, 4]], dtype="uint8")

    out = resample_nearest(data, 4, 4)

    expected = np.array([[1, 1, 2, 2], [1, 1, 2, 2], [3, 3, 4, 4], [3, 3, 4, 4]], dtype="uint8")
    np.testing.assert_array_equal(out, expected)

# --- BILINEAR ---

def test_bilinear_interpolates_between_neighbours():
    data = np.array([[0.0, 10.0], [20.0, 30.0]])

    out = resample_bilinear(data, 4, 4)

    # target (1, 1) sits at source position (0.5, 0.5): the mean of all four
    assert out[1, 1] == pytest.approx(15.0)
    assert out[0, 0] == pytest.approx(0.0)

def test_bilinear_renormalizes_around_nodata():
    """
    One invalid neighbour out of four: the remaining three weights are
    renormalized instead of producing a no-data hole.
    """
    data = np.array([[10.0, -9999.0], [20.0, 30.0]])

    out = resample_bilinear(data, 4, 4, nodata=-9999)

    # equal weights at (0.5, 0.5): (10 + 20 + 30) / 3
    assert out[1, 1] == pytest.approx(20.0)
    assert not np.any(np.isclose(out[1:, 1:], -9999.0))

def test_bilinear_treats_nan_as_missing():
    data = np.array([[np.nan, 4.0], [4.0, 4.0]])

    out = resample_bilinear(data, 4, 4)

    assert out[1, 1] == pytest.approx(4.0)
    # the pixel sitting exactly on the NaN sample has no valid weight left
    # and falls back to the plain mean of its valid neighbours
    assert out[0, 0] == pytest.approx(4.0)

def test_bilinear_all_nodata_stays_nodata():
    data = np.full((3, 3), -9999.0, dtype="float32")

    out = resample_bilinear(data, 8, 8, buffer=1, nodata=-9999)

    assert np.all(out == -9999.0)

def test_bilinear_rounds_integer_output():
    data = np.array([[0, 1], [0, 1]], dtype="uint8")

    out = resample_bilinear(data, 4, 4)

    assert out.dtype == np.uint8
    # target column 1 lands on x = 0.5, which rounds up
    assert out[0, 1] == 1
    assert out[0, 0] == 0

def test_bilinear_uses_buffer_as_neighbours():
    """
    The last target column interpolates towards the buffer column instead of
    clamping at the tile edge.
    """
    data = np.zeros((4, 4))
    data[:, 3] = 100.0  # east buffer column

    out = resample_bilinear(data, 4, 4, buffer=1)

    # target column 3 maps to raw x = 1 + 2 * 0.75 = 2.5: halfway to the buffer
    assert out[0, 3] == pytest.approx(50.0)
    assert out[0, 0] == pytest.approx(0.0)
