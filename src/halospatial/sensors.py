# src/halospatial/sensors.py

"""
Sensor profiles: the per-instrument constants the pipeline needs
(QA band and bit layout, reflectance scaling, band aliases).
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Tuple, Optional

from halospatial.exceptions import ConfigurationError

log = logging.getLogger(__name__)

__all__ = [
    "SensorProfile",
    "SensorCatalog",
    "LANDSAT8_C2_L2",
    "LANDSAT9_C2_L2",
    "DEFAULT_SENSOR"
]

@dataclass(frozen=True)
class SensorProfile:
    """
    Constants describing one sensor product.

    Attributes:
        collection_id: Product identifier.
        qa_band: Name of the per-pixel quality flag band.
        mask_bits: QA bit positions that invalidate a pixel when set.
        gain: Multiplicative reflectance scale factor.
        offset: Additive reflectance offset.
        optical_bands: Full-match regex selecting the bands to scale.
        band_map: Index alias ('red') to product band name ('SR_B4').
        fill_bit: QA bit flagging pixels outside the scene footprint, None if the
                  product has no such flag.
    """
    collection_id: str
    qa_band: str
    mask_bits: Tuple[int, ...]
    gain: float
    offset: float
    optical_bands: str
    band_map: Dict[str, str] = field(default_factory=dict)
    fill_bit: Optional[int] = 0

    def __post_init__(self):
        if not self.mask_bits:
            raise ConfigurationError(f"{self.collection_id}: mask_bits cannot be empty")
        if self.gain == 0:
            raise ConfigurationError(f"{self.collection_id}: gain cannot be zero")
        missing = {"blue", "green", "red", "nir"} - set(self.band_map)
        if missing:
            raise ConfigurationError(f"{self.collection_id}: band_map lacks {sorted(missing)}")

    @property
    def shadow_bit(self) -> int:
        return self.mask_bits[0]

    @property
    def cloud_bit(self) -> int:
        return self.mask_bits[-1]

_LANDSAT_OLI_BANDS = {
    "blue": "SR_B2",
    "green": "SR_B3",
    "red": "SR_B4",
    "nir": "SR_B5",
}

LANDSAT8_C2_L2 = SensorProfile(
    collection_id="LANDSAT/LC08/C02/T1_L2",
    qa_band="QA_PIXEL",
    mask_bits=(3, 4),
    gain=0.0000275,
    offset=-0.2,
    optical_bands="SR_B.*",
    band_map=_LANDSAT_OLI_BANDS,
    fill_bit=0
)

LANDSAT9_C2_L2 = SensorProfile(
    collection_id="LANDSAT/LC09/C02/T1_L2",
    qa_band="QA_PIXEL",
    mask_bits=(3, 4),
    gain=0.0000275,
    offset=-0.2,
    optical_bands="SR_B.*",
    band_map=_LANDSAT_OLI_BANDS,
    fill_bit=0
)

DEFAULT_SENSOR = LANDSAT8_C2_L2.collection_id

class SensorCatalog:
    """Registry of SensorProfiles keyed by collection id, with short aliases."""

    _ALIASES = {
        "landsat8": LANDSAT8_C2_L2.collection_id,
        "landsat9": LANDSAT9_C2_L2.collection_id,
    }

    def __init__(self):
        self._profiles: Dict[str, SensorProfile] = {
            LANDSAT8_C2_L2.collection_id: LANDSAT8_C2_L2,
            LANDSAT9_C2_L2.collection_id: LANDSAT9_C2_L2,
        }

    def get(self, name: str) -> SensorProfile:
        key = self._ALIASES.get(name.lower(), name)
        profile = self._profiles.get(key)
        if profile is None:
            raise ConfigurationError(
                f"Sensor '{name}' not supported. Choose from: {self.names + list(self._ALIASES)}"
            )
        return profile

    def register(self, profile: SensorProfile, alias: Optional[str] = None):
        self._profiles[profile.collection_id] = profile
        if alias:
            self._ALIASES = {**self._ALIASES, alias.lower(): profile.collection_id}

    @property
    def names(self):
        return list(self._profiles)
