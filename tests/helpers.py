# tests/helpers.py

import numpy as np
from halospatial.raster.layer import Raster

SCALE_GAIN = 0.0000275
SCALE_OFFSET = -0.2

def to_reflectance(dn):
    return np.asarray(dn, dtype=np.float64) * SCALE_GAIN + SCALE_OFFSET

def assert_grid_match(r1: Raster, r2: Raster):
    """Strictly verify two rasters share the exact same grid."""
    assert r1.crs == r2.crs, \
        f"CRS mismatch: {r1.crs} != {r2.crs}"

    assert r1.shape[-2:] == r2.shape[-2:], \
        f"Shape mismatch: {r1.shape} != {r2.shape}"

    assert np.allclose(np.array(r1.transform), np.array(r2.transform), atol=1e-9), \
        "Transform mismatch (Pixel alignment error)"

def assert_nan_where(values: np.ndarray, excluded: np.ndarray):
    """Every excluded pixel is NaN and every other pixel is finite."""
    assert np.isnan(values[excluded]).all(), "Excluded pixels must be NaN"
    assert np.isfinite(values[~excluded]).all(), "Valid pixels must stay finite"
