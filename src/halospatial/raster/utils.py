# src/halospatial/raster/utils.py

"""
Helpers shared by the raster modules: file path normalisation, band
selection and naming on open datasets, grid alignment checks and band
selectors for scaling.
"""
import logging
import re
from pathlib import Path
from typing import Union, List, Optional, Dict, Callable, Iterable

import numpy as np
import rasterio

from halospatial.exceptions import ConfigurationError

log = logging.getLogger(__name__)

__all__ = [
    "resolve_envi_path",
    "extract_band_indices",
    "extract_band_names",
    "check_alignment",
    "band_selector"
]

BandSelector = Callable[[str], bool]

def resolve_envi_path(path: Union[str, Path]) -> Path:
    """An ENVI '.hdr' path is swapped for its binary sibling when that file exists."""
    path = Path(path)
    if path.suffix.lower() != '.hdr':
        return path
    binary = path.with_suffix('')
    if not binary.exists():
        return path
    log.debug(f"Reading {binary.name} instead of header {path.name}")
    return binary

def extract_band_indices(
    src: rasterio.DatasetReader,
    bands: Optional[Union[int, List[int]]]
) -> List[int]:
    """1-based band indexes to read: all of them, a single one, or the given list."""
    if bands is None:
        return list(src.indexes)
    return [bands] if isinstance(bands, int) else list(bands)

def extract_band_names(
    src: rasterio.DatasetReader,
    indices: List[int]
) -> Dict[str, int]:
    """
    Name the read bands after the dataset's band descriptions.

    Keys are descriptions, values the position in the read order (1-based).
    Undescribed bands and repeated descriptions are left out; Raster names
    them 'Band_<index>'.
    """
    names = {}
    descriptions = src.descriptions
    for position, idx in enumerate(indices, start=1):
        desc = descriptions[idx - 1] if 1 <= idx <= len(descriptions) else None
        if desc and desc not in names:
            names[desc] = position
    return names

def check_alignment(*layers) -> None:
    """
    Verify that every layer shares one pixel grid.

    Accepts any object exposing `transform`, `crs` and a 2D `shape`
    (Band, ValidityMask) or a 3D `shape` (Raster, compared on its last two axes).

    Raises:
        ConfigurationError: On any difference in grid dimensions, transform or CRS.
    """
    if len(layers) < 2:
        return

    first = layers[0]
    ref_shape = tuple(first.shape[-2:])
    for other in layers[1:]:
        shape = tuple(other.shape[-2:])
        if shape != ref_shape:
            raise ConfigurationError(
                f"Grid mismatch: {_label(other)} has shape {shape}, "
                f"{_label(first)} has shape {ref_shape}"
            )
        if not np.allclose(tuple(other.transform), tuple(first.transform), rtol=0, atol=1e-9):
            raise ConfigurationError(
                f"Transform mismatch between {_label(first)} and {_label(other)}"
            )
        if first.crs is not None and other.crs is not None and first.crs != other.crs:
            raise ConfigurationError(
                f"CRS mismatch: {_label(first)} is {first.crs}, {_label(other)} is {other.crs}"
            )

def _label(layer) -> str:
    name = getattr(layer, "name", None)
    return f"'{name}'" if name else type(layer).__name__

def band_selector(selector: Union[str, Iterable[str], BandSelector, None]) -> BandSelector:
    """
    Normalize a band selection into a predicate over band names.

    Args:
        selector: One of
            - None: selects every band.
            - str: regular expression that must match the whole name ('SR_B.*').
            - iterable of str: explicit names.
            - callable: used as-is.
    """
    if selector is None:
        return lambda name: True
    if callable(selector):
        return selector
    if isinstance(selector, str):
        pattern = re.compile(selector)
        return lambda name: pattern.fullmatch(name) is not None

    names = frozenset(selector)
    return lambda name: name in names
