# src/halospatial/vector.py

"""
This module loads areas of interest (administrative boundaries, field
polygons) from vector files into a single region geometry.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union, Optional, Dict, Any, Tuple

import geopandas as gpd
from rasterio.crs import CRS
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from halospatial.exceptions import ConfigurationError

log = logging.getLogger(__name__)

__all__ = [
    "Region",
    "load_region"
]

@dataclass(frozen=True)
class Region:
    """
    A geographic area of interest.

    Attributes:
        geometry: shapely geometry (the union of all selected features).
        crs: CRS the geometry is expressed in. None means "same as the raster".
        name: Optional label used in logs.
    """
    geometry: BaseGeometry
    crs: Optional[CRS] = None
    name: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.geometry, BaseGeometry):
            raise ConfigurationError(f"Region geometry must be a shapely geometry, got {type(self.geometry)}")
        if self.geometry.is_empty:
            raise ConfigurationError("Region geometry is empty")
        if isinstance(self.crs, str):
            object.__setattr__(self, "crs", CRS.from_user_input(self.crs))

    @classmethod
    def from_bounds(cls, bounds: Tuple[float, float, float, float], crs=None, name=None) -> "Region":
        return cls(geometry=box(*bounds), crs=crs, name=name)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return self.geometry.bounds

    def __repr__(self) -> str:
        return f"<Region name={self.name!r} bounds={self.bounds} crs={self.crs}>"

def load_region(
    path: Union[str, Path],
    filters: Optional[Dict[str, Any]] = None,
    engine: str = "pyogrio",
    **kwargs
) -> Region:
    """
    Read a vector file and dissolve the selected features into one Region.

    Args:
        path: Any vector format GeoPandas reads (GeoJSON, Shapefile, GeoPackage).
        filters: Attribute equality filters, e.g. {'ADM1_NAME': 'Tien Giang'}.
        engine: GeoPandas I/O engine.
        **kwargs: Passed to geopandas.read_file (e.g. layer=).

    Returns:
        Region: dissolved geometry in the file's CRS.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If a filter column is missing or nothing matches.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Vector file not found: {path}")

    gdf = gpd.read_file(path, engine=engine, **kwargs)

    for column, value in (filters or {}).items():
        if column not in gdf.columns:
            raise ConfigurationError(
                f"Filter column '{column}' not in {path.name}. Available columns: {gdf.columns.tolist()}"
            )
        gdf = gdf[gdf[column] == value]

    gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
    if len(gdf) == 0:
        raise ConfigurationError(f"No features left in {path.name} after filtering {filters or {}}")

    invalid = ~gdf.geometry.is_valid
    if invalid.any():
        log.warning(f"Repairing {int(invalid.sum())} invalid geometries in {path.name}")
        gdf = gdf.set_geometry(gdf.geometry.buffer(0))

    geometry = unary_union(list(gdf.geometry))
    crs = CRS.from_user_input(gdf.crs.to_wkt()) if gdf.crs is not None else None

    log.info(f"Loaded region from {path.name}: {len(gdf)} feature(s), bounds {geometry.bounds}")
    return Region(geometry=geometry, crs=crs, name=path.stem)
