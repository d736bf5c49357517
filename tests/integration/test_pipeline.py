# tests/integration/test_pipeline.py

import math

import pytest
import numpy as np

from halospatial.pipeline import run_pipeline, render_layers
from halospatial.raster.layer import Raster
from halospatial.raster.engine import DispatchConfig
from halospatial.raster.indices import IndexCatalog, SALINITY_INDICES
from halospatial.sensors import LANDSAT9_C2_L2
from helpers import to_reflectance, assert_grid_match, assert_nan_where

def _reflectances(scene, row, col):
    return {
        alias: float(to_reflectance(scene.get_band(band).data[row, col]))
        for alias, band in (("blue", "SR_B2"), ("green", "SR_B3"), ("red", "SR_B4"), ("nir", "SR_B5"))
    }

def _expected(b):
    blue, green, red, nir = b["blue"], b["green"], b["red"], b["nir"]
    return {
        "SI1": math.sqrt(green ** 2 + red ** 2),
        "SI2": math.sqrt(green * red),
        "SI3": math.sqrt(blue * red),
        "SI4a": math.sqrt(red * nir) / green,
        "SI5": blue / red,
        "NDSI": (red - nir) / (red + nir),
        "NDVI": (nir - red) / (nir + red),
        "SAVI": 1.5 * (nir - red) / (nir + red + 0.5),
        "VSSI": 2 * green - 5 * (red + nir),
    }

def test_cloud_pixel_is_nodata_everywhere(tiny_scene):
    """
    2 x 2 scene, pixel (0, 1) flagged as cloud: every index is NaN there and
    matches the formulas on the three clear pixels.
    """
    result = run_pipeline(tiny_scene)

    assert result.mask.valid.tolist() == [[True, False], [True, True]]
    assert list(result.indices) == IndexCatalog().names

    for name, index_result in result.indices.items():
        data = index_result.data
        assert math.isnan(data[0, 1]), f"{name} should be no-data under cloud"
        for row, col in ((0, 0), (1, 0), (1, 1)):
            expected = _expected(_reflectances(tiny_scene, row, col))[name]
            assert data[row, col] == pytest.approx(expected, rel=1e-9), f"{name} at {(row, col)}"

def test_scaled_scene_is_reflectance(tiny_scene):
    result = run_pipeline(tiny_scene, indices=["NDVI"])
    red = result.scaled.get_band("SR_B4").data
    assert red[1, 0] == pytest.approx(0.12, abs=1e-4)
    assert math.isnan(red[0, 1])
    assert_grid_match(result.scaled, tiny_scene)

def test_stacked_output_layout(tiny_scene):
    result = run_pipeline(tiny_scene, indices=SALINITY_INDICES)
    stacked = result.stacked
    assert stacked.names == list(SALINITY_INDICES)
    assert stacked.data.dtype == np.float32
    assert stacked.shape == (7, 2, 2)
    assert np.isnan(stacked.data[:, 0, 1]).all()

def test_params_reach_index(tiny_scene):
    default = run_pipeline(tiny_scene, indices=["SAVI"])
    custom = run_pipeline(tiny_scene, indices=["SAVI"], params={"SAVI": {"L": 0.0}})
    ndvi = run_pipeline(tiny_scene, indices=["NDVI"])

    assert custom.indices["SAVI"].index.params == {"L": 0.0}
    assert np.allclose(custom.indices["SAVI"].data, ndvi.indices["NDVI"].data, equal_nan=True)
    assert not np.allclose(default.indices["SAVI"].data, ndvi.indices["NDVI"].data, equal_nan=True)

@pytest.mark.parametrize("workers", [1, 3])
def test_tiled_pipeline_matches_in_memory(landsat_scene, workers):
    reference = run_pipeline(landsat_scene, config=DispatchConfig(mode="in_memory"))
    tiled = run_pipeline(landsat_scene, config=DispatchConfig(mode="tiled", tile_size=7, workers=workers))

    assert tiled.stacked == reference.stacked
    assert tiled.scaled == reference.scaled
    assert_nan_where(tiled.indices["NDVI"].data, reference.mask.excluded)

def test_pipeline_from_path(scene_path):
    result = run_pipeline(scene_path, sensor=LANDSAT9_C2_L2, indices=["NDVI", "VSSI"])
    assert list(result.indices) == ["NDVI", "VSSI"]
    assert result.sensor is LANDSAT9_C2_L2
    assert result.mask.valid_fraction == pytest.approx(598 / 600)

def test_summary_counts_valid_pixels(tiny_scene):
    summary = run_pipeline(tiny_scene, indices=["NDVI"]).summary()
    assert summary["NDVI"]["valid"] == 3
    assert summary["NDVI"]["min"] <= summary["NDVI"]["mean"] <= summary["NDVI"]["max"]

def test_render_layers_order(tiny_scene):
    class RecordingSink:
        def __init__(self):
            self.layers = []
            self.keys = []

        def add_layer(self, source, config, name, shown=True, key=""):
            self.layers.append((name, config.bands, shown))
            self.keys.append(key)

    sink = RecordingSink()
    result = run_pipeline(tiny_scene)
    added = render_layers(result, sink)

    assert len(sink.layers) == 2 + 9
    assert sink.layers[0] == ("Scaled Masked (True Color)", ("SR_B4", "SR_B3", "SR_B2"), True)
    assert sink.layers[1][1] == ("SR_B5",)
    assert sink.layers[-1][0] == "VSSI = 2G - 5(R + NIR)"
    assert not any(shown for _, _, shown in sink.layers[1:])
    assert [name for name, _ in added] == [name for name, _, _ in sink.layers]
    assert sink.keys[:2] == ["True_Color", "NIR_Grayscale"]
    assert sink.keys[2:] == list(result.indices)

@pytest.mark.parametrize("mode", ["in_memory", "tiled"])
def test_fill_pixel_is_nodata_everywhere(fill_scene, mode):
    """Pixels outside the footprint (DN 0, QA fill bit) never reach the index values."""
    result = run_pipeline(fill_scene, config=DispatchConfig(mode=mode, tile_size=1))

    assert result.mask.valid.tolist() == [[True, False], [True, False]]
    assert math.isnan(result.scaled.get_band("SR_B4").data[1, 1])
    for name, index_result in result.indices.items():
        assert math.isnan(index_result.data[1, 1]), f"{name} should be no-data outside the footprint"
        expected = _expected(_reflectances(fill_scene, 1, 0))[name]
        assert index_result.data[1, 0] == pytest.approx(expected, rel=1e-9)

    assert result.summary()["NDVI"]["valid"] == 2

def test_nodata_value_masks_without_qa_fill(fill_scene):
    """The Raster's nodata value alone excludes a pixel when the QA band does not flag it."""
    data = np.array(fill_scene.data)
    data[4, 1, 1] = data[4, 0, 0]
    scene = Raster(data, fill_scene.transform, fill_scene.crs, nodata=0, band_names=fill_scene.band_names)

    result = run_pipeline(scene, indices=["SI1", "VSSI"])
    assert not result.mask.valid[1, 1]
    assert math.isnan(result.indices["SI1"].data[1, 1])
    assert math.isnan(result.indices["VSSI"].data[1, 1])

def test_fill_pixel_from_band_files(fill_band_files_dir):
    from halospatial.raster.io import load_scene

    scene = load_scene(fill_band_files_dir)
    assert scene.nodata == 0

    result = run_pipeline(scene)
    for name, index_result in result.indices.items():
        assert math.isnan(index_result.data[1, 1]), name
        assert math.isnan(index_result.data[0, 1]), name
        assert np.isfinite(index_result.data[0, 0]), name
