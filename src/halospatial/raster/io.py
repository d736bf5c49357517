# src/halospatial/raster/io.py

"""
This module reads and writes scenes on disk.

Two layouts are supported:
- a single multi-band file whose band descriptions carry the band names
  (what `save` produces);
- a USGS Collection 2 delivery, one single-band file per band named
  `<product id>_<BAND>.TIF` (e.g. `LC08_..._SR_B4.TIF`, `..._QA_PIXEL.TIF`).
"""

import logging
import re
from pathlib import Path
from typing import Union, Optional, List, Dict, Any, Iterable, Sequence

import rasterio
from rasterio.windows import Window

from halospatial.exceptions import RasterIOError, ConfigurationError
from .utils import resolve_envi_path, extract_band_indices, extract_band_names, check_alignment
from .layer import Band, Raster

log = logging.getLogger(__name__)

__all__ = [
    "load",
    "load_scene",
    "save",
    "read_info"
]

# Band suffix of a per-band product file: ..._SR_B4.TIF, ..._QA_PIXEL.TIF, ..._ST_B10.TIF
_BAND_FILE = re.compile(r"^(?P<product>.+?)_(?P<band>(?:SR|ST)_B\d+|QA_[A-Z_]+)\.tiff?$", re.IGNORECASE)

def load(
    path: Union[str, Path],
    bands: Optional[Union[int, List[int]]] = None,
    window: Optional[Window] = None,
    driver: Optional[str] = None,
    band_names: Optional[Sequence[str]] = None
) -> Raster:
    """
    Read a multi-band raster file into memory.

    Band descriptions become band names, so a scene written with 'SR_B2' ...
    'QA_PIXEL' descriptions is addressable by name after loading.

    Args:
        path: Raster file (GeoTIFF, ENVI header or binary, any GDAL format).
        bands: 1-based band(s) to read (None=all, int=single, list=subset).
        window: Optional rasterio Window restricting the read to a spatial subset.
        driver: Optional GDAL driver name.
        band_names: Names for the loaded bands, in load order. Overrides the
                    file's descriptions (for stacks written without them).

    Returns:
        Raster

    Raises:
        FileNotFoundError: If the file does not exist.
        RasterIOError: If GDAL cannot read it.
    """
    path = resolve_envi_path(Path(path))
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")

    log.debug(f"Loading raster: {path.name}")

    try:
        with rasterio.open(path, driver=driver) as src:
            indices = extract_band_indices(src, bands)
            data = src.read(indices, window=window)

            if band_names is not None:
                if len(band_names) != len(indices):
                    raise ConfigurationError(
                        f"{len(band_names)} band names given for {len(indices)} band(s) in {path.name}"
                    )
                names = {name: i + 1 for i, name in enumerate(band_names)}
            else:
                names = extract_band_names(src, indices)

            transform = src.window_transform(window) if window is not None else src.transform
            crs, nodata = src.crs, src.nodata

    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to read raster from {path}: {e}") from e

    return Raster(data=data, transform=transform, crs=crs, nodata=nodata, band_names=names)

def _band_files(source: Union[str, Path, Iterable[Union[str, Path]]]) -> Dict[str, Path]:
    if isinstance(source, (str, Path)) and Path(source).is_dir():
        candidates = sorted(Path(source).iterdir())
    elif isinstance(source, (str, Path)):
        raise FileNotFoundError(f"Scene directory not found: {source}")
    else:
        candidates = [Path(p) for p in source]

    files: Dict[str, Path] = {}
    products = set()
    for candidate in candidates:
        match = _BAND_FILE.match(candidate.name)
        if match is None:
            continue
        band = match.group("band").upper()
        if band in files:
            raise ConfigurationError(f"Band {band} found twice: {files[band].name}, {candidate.name}")
        files[band] = candidate
        products.add(match.group("product").upper())

    if len(products) > 1:
        raise ConfigurationError(f"Files from several products mixed together: {sorted(products)}")
    return files

def load_scene(
    source: Union[str, Path, Iterable[Union[str, Path]]],
    bands: Optional[Iterable[str]] = None,
    window: Optional[Window] = None
) -> Raster:
    """
    Assemble one named-band Raster from a per-band product delivery.

    Args:
        source: Directory holding the band files, or an explicit list of files.
        bands: Band names to keep (e.g. ['SR_B2', 'SR_B3', 'SR_B4', 'SR_B5', 'QA_PIXEL']).
               None keeps every recognized band.
        window: Optional spatial subset, applied to every band.

    Returns:
        Raster: bands in the order requested (file-name order when `bands` is None),
                with the nodata value the non-QA band files share.

    Raises:
        ConfigurationError: If a requested band has no file, or the files do not share one grid.
    """
    files = _band_files(source)
    if not files:
        raise ConfigurationError(f"No Collection 2 band files found in {source}")

    wanted = list(bands) if bands is not None else list(files)
    missing = [name for name in wanted if name not in files]
    if missing:
        raise ConfigurationError(f"Missing band file(s) {missing}; found {sorted(files)}")

    layers = []
    nodata_values = set()
    for name in wanted:
        single = load(files[name], bands=1, window=window)
        layers.append(Band(name=name, data=single.data[0], transform=single.transform, crs=single.crs))
        if not name.upper().startswith("QA_") and single.nodata is not None:
            nodata_values.add(single.nodata)

    check_alignment(*layers)

    # QA bands flag their fill through a bit, not a nodata value
    nodata = None
    if len(nodata_values) == 1:
        nodata = next(iter(nodata_values))
    elif nodata_values:
        log.warning(f"Band files declare different nodata values {sorted(nodata_values)}; none kept")

    log.info(f"Assembled scene from {len(layers)} band file(s): {wanted} (nodata={nodata})")
    return Raster.from_bands(layers, nodata=nodata)

def save(
    raster: Raster,
    path: Union[str, Path],
    **profile_kwargs
) -> Path:
    """
    Write a Raster to disk with band names as band descriptions.

    Args:
        raster: Raster to write. Pixels are cast to the profile dtype.
        path: Output file; missing parent folders are created.
        **profile_kwargs: Overrides of the rasterio profile (dtype, nodata, compress, ...).

    Returns:
        Path: The written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    profile = {**raster.profile, **profile_kwargs}
    log.info(f"Saving raster {raster.shape} → {path}")

    try:
        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(raster.data.astype(profile['dtype'], copy=False))
            for name, idx in raster.band_names.items():
                dst.set_band_description(idx, name)

    except Exception as e:
        raise RasterIOError(f"Failed to save raster to {path}: {e}") from e

    return path

def read_info(path: Union[str, Path]) -> Dict[str, Any]:
    """Metadata and band names of a raster file, without reading pixels."""
    path = resolve_envi_path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    try:
        with rasterio.open(path) as src:
            return {
                'crs': src.crs,
                'transform': src.transform,
                'bounds': src.bounds,
                'width': src.width,
                'height': src.height,
                'count': src.count,
                'dtypes': src.dtypes,
                'driver': src.driver,
                'nodata': src.nodata,
                'band_names': {
                    (src.descriptions[i - 1] or f"Band_{i}"): i for i in src.indexes
                }
            }
    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to read metadata from {path}: {e}") from e
