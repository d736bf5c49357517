# tests/conftest.py

import pytest
import numpy as np
import geopandas as gpd
from shapely.geometry import box
import rasterio
from rasterio.transform import Affine
from rasterio.crs import CRS

from halospatial.raster.layer import Raster

LANDSAT_BANDS = ["SR_B1", "SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B6", "SR_B7", "QA_PIXEL"]

# Pure clear-sky QA value (bit 6 "clear" set, bits 3 and 4 unset)
QA_CLEAR = 21824
QA_CLOUD = QA_CLEAR | (1 << 4)
QA_SHADOW = QA_CLEAR | (1 << 3)

def reflectance_to_dn(reflectance):
    """Inverse of the Collection 2 scaling: DN = (rho + 0.2) / 0.0000275."""
    return np.round((np.asarray(reflectance) + 0.2) / 0.0000275).astype(np.uint16)

@pytest.fixture
def utm_transform():
    return Affine(30.0, 0.0, 500000.0, 0.0, -30.0, 1150000.0)

@pytest.fixture
def utm_crs():
    return CRS.from_epsg(32648)

@pytest.fixture
def scene_factory(utm_transform, utm_crs):
    """
    Fixture: builds synthetic Landsat Collection 2 Level-2 scenes in memory.
    Optical bands carry DNs, QA_PIXEL carries the bitfield.
    """
    def _create(height=20, width=30, qa=None, seed=0):
        rng = np.random.default_rng(seed)
        reflectance = rng.uniform(0.02, 0.4, size=(7, height, width))
        dn = reflectance_to_dn(reflectance)

        if qa is None:
            qa = np.full((height, width), QA_CLEAR, dtype=np.uint16)
            qa[0, 0] = QA_CLOUD
            qa[-1, -1] = QA_SHADOW
        qa = np.asarray(qa, dtype=np.uint16)

        data = np.concatenate([dn, qa[np.newaxis]]).astype(np.uint16)
        return Raster(
            data=data,
            transform=utm_transform,
            crs=utm_crs,
            nodata=None,
            band_names={name: i + 1 for i, name in enumerate(LANDSAT_BANDS)}
        )
    return _create

@pytest.fixture
def landsat_scene(scene_factory):
    """A 20 x 30 scene with one cloud pixel (0, 0) and one shadow pixel (-1, -1)."""
    return scene_factory()

@pytest.fixture
def tiny_scene(utm_transform, utm_crs):
    """
    A 2 x 2 scene with known reflectances; pixel (0, 1) is flagged as cloud.

    Reflectances (blue, green, red, nir) per pixel:
        (0, 0): 0.05, 0.08, 0.10, 0.30
        (0, 1): cloud
        (1, 0): 0.04, 0.06, 0.12, 0.20
        (1, 1): 0.07, 0.09, 0.11, 0.15
    """
    blue = np.array([[0.05, 0.05], [0.04, 0.07]])
    green = np.array([[0.08, 0.08], [0.06, 0.09]])
    red = np.array([[0.10, 0.10], [0.12, 0.11]])
    nir = np.array([[0.30, 0.30], [0.20, 0.15]])
    qa = np.array([[QA_CLEAR, QA_CLOUD], [QA_CLEAR, QA_CLEAR]], dtype=np.uint16)

    data = np.stack([
        reflectance_to_dn(blue),
        reflectance_to_dn(green),
        reflectance_to_dn(red),
        reflectance_to_dn(nir),
        qa
    ])
    return Raster(
        data=data,
        transform=utm_transform,
        crs=utm_crs,
        nodata=None,
        band_names={"SR_B2": 1, "SR_B3": 2, "SR_B4": 3, "SR_B5": 4, "QA_PIXEL": 5}
    )

@pytest.fixture
def mock_raster_factory(tmp_path):
    """
    Fixture: writes small GeoTIFFs into tmp_path and returns their path.
    Band descriptions are written when names are given.
    """
    def _create(name, count=1, width=10, height=10, crs="EPSG:32648",
                dtype="float32", data=None, band_names=None, res=30.0):
        path = tmp_path / name
        transform = Affine(res, 0.0, 500000.0, 0.0, -res, 1150000.0)
        if data is None:
            data = np.arange(count * height * width, dtype=dtype).reshape(count, height, width)

        profile = {
            'driver': 'GTiff',
            'height': height,
            'width': width,
            'count': count,
            'dtype': dtype,
            'crs': CRS.from_user_input(crs),
            'transform': transform
        }
        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(np.asarray(data, dtype=dtype))
            for i, band in enumerate(band_names or [], start=1):
                dst.set_band_description(i, band)
        return path
    return _create

@pytest.fixture
def scene_path(tmp_path, landsat_scene):
    """The synthetic Landsat scene written as a named-band GeoTIFF."""
    from halospatial.raster.io import save
    return save(landsat_scene, tmp_path / "LC08_scene.tif")

@pytest.fixture
def provinces_gdf(utm_transform):
    """Two administrative polygons over the synthetic scene, in its UTM CRS."""
    left, top = utm_transform.c, utm_transform.f
    west = box(left, top - 600, left + 450, top)
    east = box(left + 450, top - 600, left + 900, top)
    return gpd.GeoDataFrame(
        {
            'ADM0_NAME': ['Viet Nam', 'Viet Nam'],
            'ADM1_NAME': ['Tien Giang', 'Ben Tre'],
            'geometry': [west, east]
        },
        crs="EPSG:32648"
    )

@pytest.fixture
def provinces_path(tmp_path, provinces_gdf):
    path = tmp_path / "provinces.geojson"
    provinces_gdf.to_file(path, driver="GeoJSON")
    return path

@pytest.fixture
def band_files_dir(tmp_path, landsat_scene):
    """The synthetic scene delivered as one GeoTIFF per band, USGS style."""
    from halospatial.raster.io import save
    folder = tmp_path / "LC08_L2SP_125052_20240105_20240115_02_T1"
    product = folder.name
    for name in landsat_scene.names:
        save(landsat_scene.select([name]), folder / f"{product}_{name}.TIF")
    (folder / f"{product}_MTL.txt").write_text("GROUP = LANDSAT_METADATA_FILE\n")
    return folder

# QA_PIXEL value of a pixel outside the scene footprint (bit 0 "fill")
QA_FILL = 1

@pytest.fixture
def fill_scene(tiny_scene):
    """tiny_scene with pixel (1, 1) outside the footprint: DN 0 in every SR band, QA fill bit set."""
    data = np.array(tiny_scene.data)
    data[:4, 1, 1] = 0
    data[4, 1, 1] = QA_FILL
    return Raster(
        data=data,
        transform=tiny_scene.transform,
        crs=tiny_scene.crs,
        nodata=0,
        band_names=tiny_scene.band_names
    )

@pytest.fixture
def fill_band_files_dir(tmp_path, fill_scene):
    """fill_scene as a USGS per-band delivery, SR files declaring nodata 0 and QA_PIXEL nodata 1."""
    from halospatial.raster.io import save
    folder = tmp_path / "LC08_L2SP_125052_20240105_20240115_02_T1_fill"
    product = "LC08_L2SP_125052_20240105_20240115_02_T1"
    folder.mkdir()
    for name in fill_scene.names:
        nodata = QA_FILL if name == "QA_PIXEL" else 0
        save(fill_scene.select([name]), folder / f"{product}_{name}.TIF", nodata=nodata)
    return folder
