# src/halospatial/export.py

"""
This module describes export jobs and materializes them as georeferenced
GeoTIFF files.

An ExportConfig replaces the free-form export dictionaries of hosted
platforms ({folder, fileNamePrefix, region, scale, crs, maxPixels}) with a
checked, immutable record. Any object implementing ExportSink can consume it.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional, Protocol, Union

import numpy as np
from rasterio.crs import CRS
from rasterio.errors import CRSError
from shapely.geometry.base import BaseGeometry

from halospatial.exceptions import ConfigurationError, ExportError
from halospatial.raster.layer import Raster
from halospatial.raster.geom import clip, reproject
from halospatial.raster.io import save
from halospatial.vector import Region

log = logging.getLogger(__name__)

__all__ = [
    "ExportConfig",
    "ExportSink",
    "GeoTiffExportSink",
    "DEFAULT_MAX_PIXELS"
]

DEFAULT_MAX_PIXELS = 1e10

# Accepted spellings for each field (snake_case and hosted-platform camelCase)
_FIELD_ALIASES = {
    "folder": "folder",
    "file_name_prefix": "file_name_prefix",
    "fileNamePrefix": "file_name_prefix",
    "region": "region",
    "scale": "scale",
    "crs": "crs",
    "max_pixels": "max_pixels",
    "maxPixels": "max_pixels",
}

@dataclass(frozen=True)
class ExportConfig:
    """
    Description of one raster export job.

    Attributes:
        folder: Destination folder.
        file_name_prefix: File name without extension ('.tif' is appended).
        region: Region (or bare shapely geometry in the raster's CRS) to clip to.
        scale: Output pixel size in units of `crs` (metres for projected CRSs).
        crs: Output CRS; None keeps the raster's CRS.
        max_pixels: Ceiling on output width * height.
    """
    folder: str
    file_name_prefix: str
    region: Optional[Union[Region, BaseGeometry]] = None
    scale: Optional[float] = None
    crs: Optional[str] = None
    max_pixels: float = DEFAULT_MAX_PIXELS

    def __post_init__(self):
        if not str(self.folder).strip():
            raise ConfigurationError("Export folder cannot be empty")
        object.__setattr__(self, "folder", str(self.folder))

        prefix = str(self.file_name_prefix).strip()
        if not prefix or "/" in prefix or "\\" in prefix:
            raise ConfigurationError(f"Invalid file name prefix: {self.file_name_prefix!r}")
        if prefix.lower().endswith((".tif", ".tiff")):
            prefix = prefix.rsplit(".", 1)[0]
        object.__setattr__(self, "file_name_prefix", prefix)

        if isinstance(self.region, BaseGeometry):
            object.__setattr__(self, "region", Region(geometry=self.region))
        elif self.region is not None and not isinstance(self.region, Region):
            raise ConfigurationError(f"Region must be a Region or shapely geometry, got {type(self.region)}")

        if self.scale is not None:
            scale = float(self.scale)
            if not np.isfinite(scale) or scale <= 0:
                raise ConfigurationError(f"Export scale must be positive, got {self.scale}")
            object.__setattr__(self, "scale", scale)

        if self.crs is not None:
            try:
                CRS.from_user_input(self.crs)
            except CRSError as e:
                raise ConfigurationError(f"Invalid export CRS {self.crs!r}: {e}") from e

        if not self.max_pixels or float(self.max_pixels) <= 0:
            raise ConfigurationError(f"max_pixels must be positive, got {self.max_pixels}")
        object.__setattr__(self, "max_pixels", float(self.max_pixels))

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "ExportConfig":
        """Build from a platform-style dictionary, rejecting unknown keys."""
        kwargs = {}
        for key, value in params.items():
            if key not in _FIELD_ALIASES:
                raise ConfigurationError(
                    f"Unrecognized export field '{key}'; expected one of {sorted(set(_FIELD_ALIASES.values()))}"
                )
            kwargs[_FIELD_ALIASES[key]] = value

        missing = {"folder", "file_name_prefix"} - set(kwargs)
        if missing:
            raise ConfigurationError(f"Export configuration requires {sorted(missing)}")
        return cls(**kwargs)

    @property
    def output_path(self) -> Path:
        return Path(self.folder) / f"{self.file_name_prefix}.tif"

class ExportSink(Protocol):
    """Anything that can materialize a Raster according to an ExportConfig."""

    def export(self, raster: Raster, config: ExportConfig) -> Path:
        ...

class GeoTiffExportSink:
    """
    Writes exports as float32 GeoTIFFs into a local (or mounted) folder.

    The raster is clipped to the region, warped to the requested CRS and
    scale, checked against the pixel ceiling, then written with band names
    as band descriptions.
    """

    def __init__(self, compress: str = "deflate", overwrite: bool = True):
        self.compress = compress
        self.overwrite = overwrite

    def prepare(self, raster: Raster, config: ExportConfig) -> Raster:
        """Apply region, CRS and scale without writing; returns the export-ready raster."""
        out = raster.astype(np.float32)

        if config.region is not None:
            out = clip(out, config.region.geometry, config.region.crs)

        target_crs = CRS.from_user_input(config.crs) if config.crs else out.crs
        needs_warp = (target_crs != out.crs) or (
            config.scale is not None and not np.allclose(out.res, (config.scale, config.scale))
        )
        if needs_warp:
            if target_crs is None:
                raise ExportError("Cannot resample a raster without a CRS")
            out = reproject(out, target_crs, res=config.scale)

        pixels = out.width * out.height
        if pixels > config.max_pixels:
            raise ExportError(
                f"Export '{config.file_name_prefix}' needs {pixels:.3g} pixels, "
                f"above max_pixels={config.max_pixels:.3g}"
            )
        return out

    def export(self, raster: Raster, config: ExportConfig) -> Path:
        path = config.output_path
        if path.exists() and not self.overwrite:
            raise ExportError(f"Refusing to overwrite existing export {path}")

        out = self.prepare(raster, config)
        log.info(
            f"Exporting {out.count} band(s) {out.names} as {path} "
            f"({out.width}x{out.height}, crs={out.crs})"
        )
        return save(out, path, dtype="float32", nodata=np.nan, compress=self.compress)
