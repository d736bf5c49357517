# tests/unit/test_io.py

import pytest
import numpy as np
import rasterio
from shapely.geometry import box

from halospatial.exceptions import ConfigurationError, ExportError, RasterIOError
from halospatial.raster import io, geom
from halospatial.raster.layer import Raster, resolve_raster
from helpers import assert_grid_match

def test_load_reads_band_descriptions(mock_raster_factory):
    path = mock_raster_factory("named.tif", count=2, band_names=["SR_B4", "SR_B5"])
    r = io.load(path)
    assert r.names == ["SR_B4", "SR_B5"]
    assert r.crs.to_epsg() == 32648
    assert r.res == (30.0, 30.0)

def test_load_subset_and_missing(mock_raster_factory, tmp_path):
    path = mock_raster_factory("three.tif", count=3, band_names=["a", "b", "c"])
    r = io.load(path, bands=[3])
    assert r.names == ["c"]
    assert r.count == 1

    with pytest.raises(FileNotFoundError):
        io.load(tmp_path / "missing.tif")

def test_save_round_trip(tmp_path, landsat_scene):
    path = io.save(landsat_scene, tmp_path / "out" / "scene.tif")
    assert path.exists()

    reloaded = io.load(path)
    assert_grid_match(reloaded, landsat_scene)
    assert reloaded.names == landsat_scene.names
    assert np.array_equal(reloaded.data, landsat_scene.data)

    info = io.read_info(path)
    assert info["count"] == 8
    assert info["band_names"]["QA_PIXEL"] == 8

def test_save_float_nan(tmp_path, landsat_scene):
    floats = landsat_scene.astype("float32").with_bands(
        {"SR_B4": np.full((20, 30), np.nan, dtype=np.float32)}
    )
    path = io.save(floats, tmp_path / "nan.tif", nodata=np.nan)
    with rasterio.open(path) as src:
        assert np.isnan(src.nodata)
        assert np.isnan(src.read(4)).all()

def test_read_info_rejects_garbage(tmp_path):
    bad = tmp_path / "garbage.tif"
    bad.write_bytes(b"not a tiff")
    with pytest.raises(RasterIOError):
        io.read_info(bad)

def test_resolve_raster_accepts_paths(scene_path):
    @resolve_raster
    def count_bands(raster):
        return raster.count

    assert count_bands(scene_path) == 8
    assert count_bands(str(scene_path)) == 8
    with pytest.raises(TypeError):
        count_bands(42)

def test_crop_snaps_to_grid(landsat_scene):
    left, bottom, right, top = landsat_scene.bounds
    cropped = geom.crop(landsat_scene, (left + 45, top - 95, left + 300, top))
    assert cropped.transform.c == left + 30
    assert cropped.height == 4
    assert cropped.width == 9

    with pytest.raises(ExportError):
        geom.crop(landsat_scene, (0, 0, 10, 10))

def test_crop_keeps_partially_covered_edge_pixels(landsat_scene):
    left, bottom, right, top = landsat_scene.bounds
    # Reaches 5 m into row 4 and column 10
    cropped = geom.crop(landsat_scene, (left + 45, top - 125, left + 305, top))
    assert cropped.height == 5
    assert cropped.width == 10
    assert cropped.transform.c == left + 30

    exact = geom.crop(landsat_scene, (left + 30, top - 120, left + 300, top))
    assert (exact.height, exact.width) == (4, 9)

def test_clip_sets_outside_to_nan(landsat_scene):
    left, bottom, right, top = landsat_scene.bounds
    region = box(left, top - 300, left + 300, top).union(box(left + 300, top - 150, left + 600, top))
    clipped = geom.clip(landsat_scene, region)

    assert clipped.width == 20
    assert clipped.height == 10
    data = clipped.get_band("SR_B4").data
    assert np.isfinite(data[:5, :]).all()
    assert np.isnan(data[5:, 10:]).all()
    assert np.isfinite(data[5:, :10]).all()

def test_reproject_changes_crs(landsat_scene):
    reflectance = landsat_scene.astype("float64")
    warped = geom.reproject(reflectance, "EPSG:4326")
    assert warped.crs.to_epsg() == 4326
    assert warped.names == landsat_scene.names

    coarse = geom.reproject(reflectance, landsat_scene.crs, res=60.0)
    assert coarse.res == (60.0, 60.0)
    assert coarse.width == 15

def test_clip_reprojects_region(landsat_scene):
    from rasterio.warp import transform_geom
    from shapely.geometry import mapping, shape

    left, bottom, right, top = landsat_scene.bounds
    utm_box = box(left, bottom, left + 300, top)
    lonlat_box = shape(transform_geom("EPSG:32648", "EPSG:4326", mapping(utm_box)))

    clipped = geom.clip(landsat_scene, lonlat_box, "EPSG:4326")
    assert clipped.crs == landsat_scene.crs
    assert 9 <= clipped.width <= 11

def test_load_scene_from_band_files(band_files_dir, landsat_scene):
    scene = io.load_scene(band_files_dir, bands=["SR_B2", "SR_B3", "SR_B4", "SR_B5", "QA_PIXEL"])
    assert scene.names == ["SR_B2", "SR_B3", "SR_B4", "SR_B5", "QA_PIXEL"]
    assert_grid_match(scene, landsat_scene)
    assert np.array_equal(scene.get_band("QA_PIXEL").data, landsat_scene.get_band("QA_PIXEL").data)

    everything = io.load_scene(band_files_dir)
    assert sorted(everything.names) == sorted(landsat_scene.names)

def test_load_scene_errors(band_files_dir, tmp_path):
    with pytest.raises(ConfigurationError):
        io.load_scene(band_files_dir, bands=["SR_B10"])
    with pytest.raises(FileNotFoundError):
        io.load_scene(tmp_path / "nowhere")

    empty = tmp_path / "empty"
    empty.mkdir()
    with pytest.raises(ConfigurationError):
        io.load_scene(empty)

    files = sorted(band_files_dir.glob("*.TIF"))
    renamed = tmp_path / "LC09_OTHER_PRODUCT_SR_B2.TIF"
    renamed.write_bytes(files[0].read_bytes())
    with pytest.raises(ConfigurationError):
        io.load_scene([files[1], renamed])

def test_load_with_explicit_names(mock_raster_factory):
    path = mock_raster_factory("unnamed.tif", count=2)
    r = io.load(path, band_names=["SR_B4", "SR_B5"])
    assert r.names == ["SR_B4", "SR_B5"]
    with pytest.raises(ConfigurationError):
        io.load(path, band_names=["SR_B4"])

def test_load_scene_keeps_band_nodata(fill_band_files_dir):
    scene = io.load_scene(fill_band_files_dir)
    assert scene.nodata == 0
    assert scene.get_band("QA_PIXEL").data[1, 1] == 1
