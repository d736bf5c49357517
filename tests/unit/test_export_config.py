# tests/unit/test_export_config.py

from pathlib import Path

import pytest
from shapely.geometry import box

from halospatial.exceptions import ConfigurationError
from halospatial.export import ExportConfig, DEFAULT_MAX_PIXELS
from halospatial.vector import Region

def test_defaults_and_output_path():
    config = ExportConfig(folder="GEE_Exports", file_name_prefix="Salinity_Indices")
    assert config.max_pixels == DEFAULT_MAX_PIXELS == 1e10
    assert config.region is None
    assert config.output_path == Path("GEE_Exports") / "Salinity_Indices.tif"

def test_from_dict_accepts_platform_keys():
    config = ExportConfig.from_dict({
        "folder": "out",
        "fileNamePrefix": "TienGiang.tif",
        "scale": 30,
        "crs": "EPSG:32648",
        "maxPixels": 1e9
    })
    assert config.file_name_prefix == "TienGiang"
    assert config.scale == 30.0
    assert config.max_pixels == 1e9

def test_from_dict_rejects_unknown_and_missing():
    with pytest.raises(ConfigurationError):
        ExportConfig.from_dict({"folder": "out", "fileNamePrefix": "x", "description": "y"})
    with pytest.raises(ConfigurationError):
        ExportConfig.from_dict({"folder": "out"})

def test_bare_geometry_becomes_region():
    config = ExportConfig(folder="out", file_name_prefix="x", region=box(0, 0, 1, 1))
    assert isinstance(config.region, Region)
    assert config.region.crs is None

@pytest.mark.parametrize("kwargs", [
    {"folder": "", "file_name_prefix": "x"},
    {"folder": "out", "file_name_prefix": "a/b"},
    {"folder": "out", "file_name_prefix": "x", "scale": -30},
    {"folder": "out", "file_name_prefix": "x", "crs": "not-a-crs"},
    {"folder": "out", "file_name_prefix": "x", "max_pixels": 0},
    {"folder": "out", "file_name_prefix": "x", "region": "Tien Giang"},
])
def test_invalid_export_configs(kwargs):
    with pytest.raises(ConfigurationError):
        ExportConfig(**kwargs)
