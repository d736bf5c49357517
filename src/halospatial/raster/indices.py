# src/halospatial/raster/indices.py
"""
This module defines the SpectralIndex data structure and a registry of the
salinity, vegetation and soil-adjusted indices.
"""

from dataclasses import dataclass, field
import logging
from typing import Dict, Iterable, Iterator, Optional, Tuple

from halospatial.display import DisplayConfig
from halospatial.exceptions import ConfigurationError

log = logging.getLogger(__name__)

__all__ = [
    "SpectralIndex",
    "IndexCatalog",
    "DEFAULT_INDICES",
    "SALINITY_INDICES"
]

@dataclass(frozen=True)
class SpectralIndex:
    """
    Definition of one per-pixel index.

    Attributes:
        name: Output band name ('NDVI').
        formula: numexpr expression over lower-case band aliases and params.
        bands: Aliases the formula reads, in the order the index function takes them.
        description: Human-readable formula.
        params: Scalar constants referenced by the formula (e.g. SAVI's L).
        denominator: Expression whose zero value makes the pixel no-data.
        display: Suggested visualization for the output band.
    """
    name: str
    formula: str
    bands: Tuple[str, ...]
    description: str = ""
    params: Dict[str, float] = field(default_factory=dict)
    denominator: Optional[str] = None
    display: Optional[DisplayConfig] = None

    def with_params(self, **params: float) -> "SpectralIndex":
        """Copy with overridden constants. Unknown names raise ConfigurationError."""
        unknown = set(params) - set(self.params)
        if unknown:
            raise ConfigurationError(f"{self.name} has no parameter(s) {sorted(unknown)}")
        merged = {**self.params, **{k: float(v) for k, v in params.items()}}
        return SpectralIndex(
            name=self.name,
            formula=self.formula,
            bands=self.bands,
            description=self.description,
            params=merged,
            denominator=self.denominator,
            display=self.display
        )

def _display(name: str, vmin: float, vmax: float, palette: str) -> DisplayConfig:
    return DisplayConfig(bands=(name,), min=vmin, max=vmax, palette=palette)

DEFAULT_INDICES: Tuple[SpectralIndex, ...] = (
    SpectralIndex(
        "SI1", "sqrt(green**2 + red**2)", ("green", "red"),
        "sqrt(G^2 + R^2)",
        display=_display("SI1", 0.05, 0.25, "viridis")
    ),
    SpectralIndex(
        "SI2", "sqrt(green * red)", ("green", "red"),
        "sqrt(G * R)",
        display=_display("SI2", 0.05, 0.15, "viridis")
    ),
    SpectralIndex(
        "SI3", "sqrt(blue * red)", ("blue", "red"),
        "sqrt(B * R)",
        display=_display("SI3", 0.05, 0.15, "viridis")
    ),
    SpectralIndex(
        "SI4a", "sqrt(red * nir) / green", ("red", "nir", "green"),
        "sqrt(R * NIR) / G",
        denominator="green",
        display=_display("SI4a", 1.5, 2.5, "viridis")
    ),
    SpectralIndex(
        "SI5", "blue / red", ("blue", "red"),
        "B / R",
        denominator="red",
        display=_display("SI5", 0.6, 1.0, "viridis")
    ),
    SpectralIndex(
        "NDSI", "(red - nir) / (red + nir)", ("red", "nir"),
        "(R - NIR) / (R + NIR)",
        denominator="red + nir",
        display=_display("NDSI", -1.0, 1.0, "green-purple")
    ),
    SpectralIndex(
        "NDVI", "(nir - red) / (nir + red)", ("nir", "red"),
        "(NIR - R) / (NIR + R)",
        denominator="nir + red",
        display=_display("NDVI", -0.2, 0.8, "ylgn")
    ),
    SpectralIndex(
        "SAVI", "(1 + L) * (nir - red) / (nir + red + L)", ("nir", "red"),
        "(1 + L)(NIR - R) / (NIR + R + L)",
        params={"L": 0.5},
        denominator="nir + red + L",
        display=_display("SAVI", 0.005, 0.7, "ylgn")
    ),
    SpectralIndex(
        "VSSI", "2 * green - 5 * (red + nir)", ("green", "red", "nir"),
        "2G - 5(R + NIR)",
        display=_display("VSSI", -2.0, 0.0, "blue-red")
    ),
)

# Reduced set of the salinity-only variant of the workflow
SALINITY_INDICES: Tuple[str, ...] = ("SI1", "SI2", "SI3", "SI4a", "SI5", "NDSI", "VSSI")

class IndexCatalog:
    """
    Ordered registry of SpectralIndex definitions.

    The catalog is the configurable index set: `subset` narrows it and
    `register` adds custom indices.
    """

    def __init__(self, indices: Optional[Iterable[SpectralIndex]] = None):
        self._indices: Dict[str, SpectralIndex] = {}
        for index in (DEFAULT_INDICES if indices is None else indices):
            self.register(index)

    def get(self, name: str) -> SpectralIndex:
        try:
            return self._indices[name]
        except KeyError:
            raise ConfigurationError(
                f"Index '{name}' not supported. Choose from: {self.names}"
            ) from None

    def register(self, index: SpectralIndex, overwrite: bool = False):
        if index.name in self._indices and not overwrite:
            raise ConfigurationError(f"Index '{index.name}' is already registered")
        self._indices[index.name] = index
        log.debug(f"Registered index {index.name} = {index.formula}")

    def subset(self, names: Iterable[str]) -> "IndexCatalog":
        """New catalog holding only `names`, in the requested order."""
        return IndexCatalog([self.get(name) for name in names])

    @property
    def names(self):
        return list(self._indices)

    def __contains__(self, name: object) -> bool:
        return name in self._indices

    def __iter__(self) -> Iterator[SpectralIndex]:
        return iter(self._indices.values())

    def __len__(self) -> int:
        return len(self._indices)

    def __repr__(self) -> str:
        return f"<IndexCatalog {self.names}>"
