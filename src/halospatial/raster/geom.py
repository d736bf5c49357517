# src/halospatial/raster/geom.py

"""
This module provides geometric operations on in-memory Rasters:
reprojection, cropping to bounds and clipping to a region geometry.
"""

import logging
import math
from typing import Union, Optional, Tuple, Any

import numpy as np
from rasterio.crs import CRS
from rasterio.features import geometry_mask
from rasterio.warp import Resampling, calculate_default_transform, reproject as rio_reproject, transform_geom
from rasterio.windows import Window, from_bounds
from rasterio.windows import transform as window_transform
from shapely.geometry import mapping, shape

from halospatial.exceptions import ExportError
from .layer import Raster, resolve_raster

log = logging.getLogger(__name__)

__all__ = [
    "reproject",
    "crop",
    "clip",
    "to_raster_crs"
]

@resolve_raster
def reproject(
    raster: Raster,
    target_crs: Union[str, CRS],
    res: Optional[float] = None,
    resampling: Resampling = Resampling.bilinear
) -> Raster:
    """
    Warp a Raster onto a grid in another CRS, optionally at a new pixel size.

    The warp runs in float64 with NaN declared as nodata on both grids.
    Float inputs keep their dtype; integer inputs come back as float64.

    Args:
        raster: Raster or path to one.
        target_crs: Output CRS ('EPSG:4326', CRS object, proj string).
        res: Output pixel size in target CRS units. None keeps the source density.
        resampling: rasterio Resampling; bilinear suits continuous index values.
    """
    dst_crs = CRS.from_user_input(target_crs)

    log.info(f"Reprojecting raster to {dst_crs} (Resampling: {resampling.name}, res: {res})")

    dst_transform, dst_width, dst_height = calculate_default_transform(
        raster.crs,
        dst_crs,
        raster.width,
        raster.height,
        *raster.bounds,
        resolution=res
    )

    source = raster.data.astype(np.float64, copy=False)
    new_data = np.full((raster.count, dst_height, dst_width), np.nan, dtype=np.float64)

    rio_reproject(
        source=source,
        destination=new_data,
        src_transform=raster.transform,
        src_crs=raster.crs,
        src_nodata=np.nan,
        dst_transform=dst_transform,
        dst_crs=dst_crs,
        dst_nodata=np.nan,
        resampling=resampling
    )

    return Raster(
        data=new_data.astype(raster.data.dtype) if np.issubdtype(raster.data.dtype, np.floating) else new_data,
        transform=dst_transform,
        crs=dst_crs,
        nodata=np.nan,
        band_names=raster.band_names
    )

def crop(raster: Raster, bounds: Tuple[float, float, float, float]) -> Raster:
    """
    Cut the Raster down to the whole pixels covering (minx, miny, maxx, maxy).

    Bounds are in the raster CRS and may overhang the grid; the part outside
    is dropped. Bounds that miss the grid entirely raise ExportError.
    """
    log.debug(f"Cropping {raster.shape} to {bounds}")

    window = from_bounds(*bounds, transform=raster.transform)

    # Outward to whole pixels; the rounding absorbs float noise on aligned bounds
    row_start = max(0, math.floor(round(window.row_off, 6)))
    row_end = min(raster.height, math.ceil(round(window.row_off + window.height, 6)))
    col_start = max(0, math.floor(round(window.col_off, 6)))
    col_end = min(raster.width, math.ceil(round(window.col_off + window.width, 6)))

    if row_end <= row_start or col_end <= col_start:
        raise ExportError(f"Bounds {bounds} do not intersect the raster extent {raster.bounds}")

    clamped = Window(col_start, row_start, col_end - col_start, row_end - row_start)

    return Raster(
        data=raster.data[:, row_start:row_end, col_start:col_end],
        transform=window_transform(clamped, raster.transform),
        crs=raster.crs,
        nodata=raster.nodata,
        band_names=raster.band_names
    )

def to_raster_crs(geometry: Any, geometry_crs: Optional[Union[str, CRS]], raster: Raster):
    """Return the shapely geometry expressed in the raster's CRS."""
    if geometry_crs is None or raster.crs is None:
        return geometry
    src_crs = CRS.from_user_input(geometry_crs)
    if src_crs == raster.crs:
        return geometry
    return shape(transform_geom(src_crs, raster.crs, mapping(geometry)))

def clip(
    raster: Raster,
    geometry: Any,
    geometry_crs: Optional[Union[str, CRS]] = None
) -> Raster:
    """
    Clip a Raster to a region: crop to the region's bounds, then set every
    pixel outside the geometry to NaN.

    Args:
        raster: Input raster. Integer rasters are promoted to float (uint16 to float32).
        geometry: shapely geometry of the region.
        geometry_crs: CRS of the geometry. If None, assumed to be the raster's CRS.

    Returns:
        Raster: Clipped float Raster.
    """
    geometry = to_raster_crs(geometry, geometry_crs, raster)
    if geometry.is_empty:
        raise ExportError("Cannot clip to an empty region.")

    cropped = crop(raster, geometry.bounds)

    # Small windows need all_touched, otherwise thin regions vanish entirely
    needs_all_touched = (cropped.width <= 2) or (cropped.height <= 2)
    outside = geometry_mask(
        [mapping(geometry)],
        out_shape=(cropped.height, cropped.width),
        transform=cropped.transform,
        all_touched=needs_all_touched
    )

    data = cropped.data.astype(np.result_type(cropped.data.dtype, np.float32))
    data[:, outside] = np.nan

    log.info(f"Clipped raster to region ({int((~outside).sum())} pixels inside)")

    return Raster(
        data=data,
        transform=cropped.transform,
        crs=cropped.crs,
        nodata=np.nan,
        band_names=cropped.band_names
    )
