# tests/conftest.py

import pytest
import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.enums import ColorInterp, Resampling
from rasterio.transform import from_bounds

from cogtiler.render.reproject import Projection
from helpers import make_pyramid

@pytest.fixture
def index_band():
    """
    Returns a 512x512 float32 band where every pixel holds its flat index
    (row * 512 + col). Values are exact in float32 so picks can be checked.
    """
    return np.arange(512 * 512, dtype="float32").reshape(512, 512)

@pytest.fixture
def gradient_pyramid():
    """
    Three-level single band pyramid (512, 256, 128) of a smooth 0..255
    diagonal gradient.
    """
    rows, cols = np.mgrid[0:512, 0:512]
    base = ((rows + cols) / 1022.0 * 255.0).astype("float32")
    return make_pyramid(base)

@pytest.fixture
def rgb_pyramid():
    """
    Three-level, three band uint8 pyramid: red ramps west to east, green
    north to south, blue is constant.
    """
    rows, cols = np.mgrid[0:512, 0:512]
    base = np.stack([
        (cols // 2).astype("uint8"),
        (rows // 2).astype("uint8"),
        np.full((512, 512), 200, dtype="uint8")
    ])
    return make_pyramid(base)

@pytest.fixture
def affine_projection():
    """
    A projection where native units are degrees scaled by 1000, with its
    origin at (0, 0). Stands in for a metric CRS in reprojection tests.
    """
    def project(lons, lats):
        return np.asarray(lons, dtype=np.float64) * 1000.0, np.asarray(lats, dtype=np.float64) * 1000.0

    def unproject(xs, ys):
        return np.asarray(xs, dtype=np.float64) / 1000.0, np.asarray(ys, dtype=np.float64) / 1000.0

    return Projection(project=project, unproject=unproject)

@pytest.fixture
def cog_factory(tmp_path):
    """
    Factory fixture: writes a tiled GeoTIFF with internal overviews, the way
    a Cloud-Optimized GeoTIFF is laid out.

    Usage: path = cog_factory("name.tif", data=array, nodata=-9999)
    """
    def _create(
        filename="test_cog.tif",
        data=None,
        count=1,
        size=512,
        dtype="float32",
        bounds=(0.0, 0.0, 1.0, 1.0),
        crs="EPSG:4326",
        nodata=None,
        overviews=(2, 4),
        blocksize=256,
        statistics=None,
        colorinterp=None,
        transform=None
    ):
        if data is None:
            rows, cols = np.mgrid[0:size, 0:size]
            data = np.stack([((rows + cols) % 256) * (b + 1) for b in range(count)])
        data = np.asarray(data).astype(dtype)
        if data.ndim == 2:
            data = data[np.newaxis]
        count, height, width = data.shape

        profile = {
            'driver': 'GTiff',
            'height': height,
            'width': width,
            'count': count,
            'dtype': dtype,
            'crs': CRS.from_user_input(crs),
            'transform': transform or from_bounds(*bounds, width, height),
            'tiled': True,
            'blockxsize': blocksize,
            'blockysize': blocksize,
            'nodata': nodata
        }

        path = tmp_path / filename
        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(data)
            if colorinterp:
                dst.colorinterp = [ColorInterp[name] for name in colorinterp]
            for band, (lo, hi) in (statistics or {}).items():
                dst.update_tags(band, STATISTICS_MINIMUM=lo, STATISTICS_MAXIMUM=hi)

        if overviews:
            with rasterio.open(path, 'r+') as dst:
                dst.build_overviews(list(overviews), Resampling.nearest)

        return path

    return _create
