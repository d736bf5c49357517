# src/halospatial/raster/scaling.py

"""
Scaling Engine.

Converts raw digital numbers into surface reflectance through an affine
rescale (output = input * gain + offset). Scaling constants are calibrated for
the valid reflectance domain only, so masking must happen first.
"""

import logging
from typing import Union, Iterable, Optional

import numpy as np

from halospatial.exceptions import ConfigurationError
from .layer import Raster
from .mask import ValidityMask, apply_mask
from .utils import band_selector as make_selector, BandSelector

log = logging.getLogger(__name__)

__all__ = [
    "scale"
]

def scale(
    raster: Raster,
    mask: Optional[ValidityMask],
    gain: float,
    offset: float,
    band_selector: Union[str, Iterable[str], BandSelector, None] = None
) -> Raster:
    """
    Apply `band * gain + offset` to every selected band.

    Masked pixels of the selected bands are NaN before scaling and stay NaN.
    Unselected bands pass through unchanged.

    Args:
        raster: Source raster.
        mask: ValidityMask to enforce first, or None if the raster is already masked.
        gain: Multiplicative factor.
        offset: Additive factor.
        band_selector: Predicate, full-match regex ('SR_B.*') or iterable of names.
                       None selects every band.

    Returns:
        Raster: New raster; selected bands are float64.
    """
    gain = float(gain)
    offset = float(offset)
    if not (np.isfinite(gain) and np.isfinite(offset)):
        raise ConfigurationError(f"gain and offset must be finite, got gain={gain}, offset={offset}")

    if mask is not None:
        raster = apply_mask(raster, mask)

    selects = make_selector(band_selector)
    selected = [name for name in raster.names if selects(name)]
    if not selected:
        log.warning(f"Band selector matched none of {raster.names}; raster returned unscaled.")
        return raster

    log.info(f"Scaling {len(selected)} band(s) {selected}: x * {gain} + {offset}")

    scaled = {}
    for name in selected:
        values = raster.get_band(name).data.astype(np.float64)
        scaled[name] = values * gain + offset

    return raster.with_bands(scaled, replace=True)
