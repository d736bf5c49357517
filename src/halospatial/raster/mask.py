# src/halospatial/raster/mask.py

"""
Mask Engine.

Derives a per-pixel validity mask from quality-assessment (QA) flag bits and
applies it to a Raster. Bit positions are parameters so the same engine serves
sensors with different flag layouts.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

import numpy as np
from rasterio.crs import CRS
from rasterio.transform import Affine
from rasterio.windows import Window
from rasterio.windows import transform as window_transform

from halospatial.exceptions import ConfigurationError
from .layer import Band, Raster
from .utils import BandSelector, band_selector, check_alignment

log = logging.getLogger(__name__)

__all__ = [
    "ValidityMask",
    "compute_mask",
    "missing_data_mask",
    "mask_from_raster",
    "apply_mask",
    "FILL_BIT",
    "SHADOW_BIT",
    "CLOUD_BIT"
]

# Landsat Collection 2 QA_PIXEL layout
FILL_BIT = 0
SHADOW_BIT = 3
CLOUD_BIT = 4

@dataclass(frozen=True)
class ValidityMask:
    """
    Boolean validity grid derived once from PixelFlags.

    Attributes:
        valid: Read-only (Height, Width) array, True where the pixel may be used.
        transform: Transform of the source grid (None for bare arrays).
        crs: CRS of the source grid.
    """
    valid: np.ndarray
    transform: Optional[Affine] = None
    crs: Optional[CRS] = None

    @property
    def shape(self):
        return self.valid.shape

    @property
    def excluded(self) -> np.ndarray:
        """True where the pixel is cloud, shadow or missing data."""
        return ~self.valid

    @property
    def valid_fraction(self) -> float:
        if self.valid.size == 0:
            return 0.0
        return float(self.valid.mean())

    def read_window(self, window: Window) -> "ValidityMask":
        """The part of the mask under a block window, on that block's grid."""
        valid = self.valid[window.toslices()]
        transform = window_transform(window, self.transform) if self.transform is not None else None
        return ValidityMask(valid=valid, transform=transform, crs=self.crs)

    def __and__(self, other: "ValidityMask") -> "ValidityMask":
        if self.shape != other.shape:
            raise ConfigurationError(f"Cannot combine masks of shape {self.shape} and {other.shape}")
        valid = self.valid & other.valid
        valid.setflags(write=False)
        return ValidityMask(valid=valid, transform=self.transform, crs=self.crs)

def _bitmask(bit_positions: Iterable[int]) -> int:
    bits = 0
    for bit in bit_positions:
        if not isinstance(bit, (int, np.integer)) or isinstance(bit, bool) or not (0 <= bit < 63):
            raise ConfigurationError(f"Invalid QA bit position: {bit!r}")
        bits |= 1 << int(bit)
    return bits

def compute_mask(
    flags: Union[np.ndarray, Band],
    bit_positions: Iterable[int] = (SHADOW_BIT, CLOUD_BIT)
) -> ValidityMask:
    """
    Compute the validity mask from a QA flag grid.

    A pixel is valid when every bit listed in `bit_positions` is unset.
    Flags are never modified. Non-finite flag values (missing QA) are invalid.

    Args:
        flags: 2D integer array or Band of per-pixel QA bitfields.
        bit_positions: Bits to test, e.g. (3, 4) for Landsat shadow and cloud.

    Returns:
        ValidityMask: same grid as the flags.
    """
    transform = crs = None
    if isinstance(flags, Band):
        transform, crs = flags.transform, flags.crs
        flags = flags.data

    flags = np.asarray(flags)
    if flags.ndim != 2:
        raise ConfigurationError(f"QA flags must be a 2D grid, got shape {flags.shape}")

    bits = _bitmask(bit_positions)

    if np.issubdtype(flags.dtype, np.integer):
        valid = (flags.astype(np.int64) & bits) == 0
    else:
        finite = np.isfinite(flags)
        as_int = np.where(finite, flags, 0).astype(np.int64)
        valid = finite & ((as_int & bits) == 0)

    valid.setflags(write=False)

    log.debug(f"Mask computed over bits {sorted(bit_positions)}: {valid.mean() if valid.size else 0:.1%} valid")
    return ValidityMask(valid=valid, transform=transform, crs=crs)

def missing_data_mask(
    raster: Raster,
    bands: Union[str, Iterable[str], BandSelector, None] = None
) -> ValidityMask:
    """
    Mask pixels where any selected band is NaN or equals the Raster's nodata value.

    Args:
        raster: Source raster.
        bands: Selector for the bands to check (regex, names or predicate).
               None checks every band.
    """
    selects = band_selector(bands)
    valid = np.ones((raster.height, raster.width), dtype=bool)
    nodata = raster.nodata

    for name in raster.names:
        if not selects(name):
            continue
        values = raster.get_band(name).data
        if np.issubdtype(values.dtype, np.floating):
            valid &= ~np.isnan(values)
        if nodata is not None and not np.isnan(nodata):
            valid &= values != nodata

    valid.setflags(write=False)
    return ValidityMask(valid=valid, transform=raster.transform, crs=raster.crs)

def mask_from_raster(
    raster: Raster,
    qa_band: str = "QA_PIXEL",
    bit_positions: Iterable[int] = (SHADOW_BIT, CLOUD_BIT),
    fill_bit: Optional[int] = FILL_BIT,
    data_bands: Union[str, Iterable[str], BandSelector, None] = None
) -> ValidityMask:
    """
    Compute the validity mask of a scene.

    A pixel is excluded when any of `bit_positions` is set in the QA band
    (cloud, shadow), when the QA fill bit is set, or when any data band holds
    missing data (NaN or the Raster's nodata value).

    Args:
        raster: Scene holding the QA band.
        qa_band: Name of the QA flag band.
        bit_positions: QA bits that exclude a pixel.
        fill_bit: QA bit marking pixels outside the footprint; None skips it.
        data_bands: Bands checked for missing data. None checks every band but the QA band.
    """
    qa = raster.get_band(qa_band)
    bits = list(bit_positions)
    if fill_bit is not None and fill_bit not in bits:
        bits.append(fill_bit)
    mask = compute_mask(qa, bits)

    if data_bands is None:
        data_bands = [name for name in raster.names if name != qa_band]
    missing = missing_data_mask(raster, data_bands)

    combined = mask & missing
    dropped = int(mask.valid.sum() - combined.valid.sum())
    if dropped:
        log.debug(f"{dropped} pixel(s) excluded as missing data")
    return combined

def apply_mask(raster: Raster, mask: ValidityMask) -> Raster:
    """
    Set every band of the Raster to NaN where the mask is invalid.

    Integer rasters are promoted to float64 so NaN can be represented.

    Raises:
        ConfigurationError: If the mask is not on the Raster's grid.
    """
    if mask.transform is not None:
        check_alignment(raster, mask)
    elif tuple(mask.shape) != (raster.height, raster.width):
        raise ConfigurationError(
            f"Mask shape {mask.shape} does not match raster grid {(raster.height, raster.width)}"
        )

    dtype = np.result_type(raster.data.dtype, np.float32)
    if not np.issubdtype(raster.data.dtype, np.floating):
        dtype = np.float64

    data = raster.data.astype(dtype)
    data[:, mask.excluded] = np.nan

    if mask.valid_fraction == 0.0:
        log.warning("Every pixel is masked; all downstream values will be no-data.")

    return Raster(
        data=data,
        transform=raster.transform,
        crs=raster.crs,
        nodata=np.nan,
        band_names=raster.band_names
    )
