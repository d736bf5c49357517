# src/halospatial/raster/compute_index.py
"""
Index Engine.

Pure functions computing each spectral index from scaled, masked Bands.
No-data (NaN) in any input yields NaN in the output; zero denominators,
square roots of negative operands and other non-finite results also degrade
to NaN instead of raising.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Union

import numexpr as ne
import numpy as np
from rasterio.transform import Affine

from halospatial.display import DisplayConfig
from halospatial.exceptions import ConfigurationError
from .layer import Band, Raster
from .indices import IndexCatalog, SpectralIndex
from .utils import check_alignment

log = logging.getLogger(__name__)

__all__ = [
    "IndexResult",
    "evaluate_index",
    "compute_indices",
    "stack_indices",
    "si1",
    "si2",
    "si3",
    "si4a",
    "si5",
    "ndsi",
    "ndvi",
    "savi",
    "vssi"
]

BandLike = Union[Band, np.ndarray, float]

_DEFAULT_CATALOG = IndexCatalog()

@dataclass(frozen=True)
class IndexResult:
    """
    One computed index band plus its definition and suggested display.

    The display is carried for rendering convenience only.
    """
    band: Band
    index: SpectralIndex
    display: Optional[DisplayConfig] = None

    @property
    def name(self) -> str:
        return self.band.name

    @property
    def formula(self) -> str:
        return self.index.formula

    @property
    def data(self) -> np.ndarray:
        return self.band.data

    def to_raster(self) -> Raster:
        return Raster.from_bands([self.band])

    def __repr__(self) -> str:
        return f"<IndexResult {self.name} = {self.index.description or self.formula}>"

def _as_band(value: BandLike, alias: str) -> Band:
    """Wrap bare arrays and scalars so single pixels can be evaluated directly."""
    if isinstance(value, Band):
        return value
    array = np.atleast_2d(np.asarray(value, dtype=np.float64))
    if array.ndim != 2:
        raise ConfigurationError(f"Band '{alias}' must be 2D, got shape {array.shape}")
    return Band(name=alias, data=array, transform=Affine.identity(), crs=None)

def evaluate_index(index: SpectralIndex, bands: Mapping[str, BandLike]) -> IndexResult:
    """
    Evaluate one SpectralIndex over aligned bands.

    Args:
        index: Definition to evaluate.
        bands: Mapping of every alias in `index.bands` to a Band (or array).

    Returns:
        IndexResult: float64 band named after the index.

    Raises:
        ConfigurationError: If an alias is missing or the bands do not share one grid.
    """
    missing = [alias for alias in index.bands if alias not in bands]
    if missing:
        raise ConfigurationError(f"{index.name} requires band(s) {missing}")

    inputs = {alias: _as_band(bands[alias], alias) for alias in index.bands}
    check_alignment(*inputs.values())

    local_dict = {}
    valid = None
    for alias, band in inputs.items():
        values = band.data.astype(np.float64)
        finite = np.isfinite(values)
        valid = finite if valid is None else (valid & finite)
        local_dict[alias] = values

    # No-data inputs are evaluated as 1.0 and restored to NaN afterwards
    for alias in local_dict:
        local_dict[alias] = np.where(valid, local_dict[alias], 1.0)
    local_dict.update(index.params)

    result = ne.evaluate(index.formula, local_dict=local_dict)
    if index.denominator:
        denominator = ne.evaluate(index.denominator, local_dict=local_dict)
        valid &= denominator != 0
    valid &= np.isfinite(result)

    result = np.where(valid, result, np.nan)
    result.setflags(write=False)

    template = next(iter(inputs.values()))
    band = Band(name=index.name, data=result, transform=template.transform, crs=template.crs)
    return IndexResult(band=band, index=index, display=index.display)

def _evaluate_default(name: str, **bands: BandLike) -> IndexResult:
    return evaluate_index(_DEFAULT_CATALOG.get(name), bands)

def si1(green: BandLike, red: BandLike) -> IndexResult:
    """SI1 = sqrt(G^2 + R^2)"""
    return _evaluate_default("SI1", green=green, red=red)

def si2(green: BandLike, red: BandLike) -> IndexResult:
    """SI2 = sqrt(G * R); no-data where G * R < 0."""
    return _evaluate_default("SI2", green=green, red=red)

def si3(blue: BandLike, red: BandLike) -> IndexResult:
    """SI3 = sqrt(B * R); no-data where B * R < 0."""
    return _evaluate_default("SI3", blue=blue, red=red)

def si4a(red: BandLike, nir: BandLike, green: BandLike) -> IndexResult:
    """SI4a = sqrt(R * NIR) / G; no-data where G = 0."""
    return _evaluate_default("SI4a", red=red, nir=nir, green=green)

def si5(blue: BandLike, red: BandLike) -> IndexResult:
    """SI5 = B / R; no-data where R = 0."""
    return _evaluate_default("SI5", blue=blue, red=red)

def ndsi(red: BandLike, nir: BandLike) -> IndexResult:
    """NDSI = (R - NIR) / (R + NIR)"""
    return _evaluate_default("NDSI", red=red, nir=nir)

def ndvi(nir: BandLike, red: BandLike) -> IndexResult:
    """NDVI = (NIR - R) / (NIR + R)"""
    return _evaluate_default("NDVI", nir=nir, red=red)

def savi(nir: BandLike, red: BandLike, L: float = 0.5) -> IndexResult:
    """SAVI = (1 + L)(NIR - R) / (NIR + R + L)"""
    index = _DEFAULT_CATALOG.get("SAVI").with_params(L=L)
    return evaluate_index(index, {"nir": nir, "red": red})

def vssi(green: BandLike, red: BandLike, nir: BandLike) -> IndexResult:
    """VSSI = 2G - 5(R + NIR)"""
    return _evaluate_default("VSSI", green=green, red=red, nir=nir)

def compute_indices(
    raster: Raster,
    names: Optional[Iterable[str]] = None,
    band_map: Optional[Mapping[str, str]] = None,
    params: Optional[Mapping[str, Mapping[str, float]]] = None,
    catalog: Optional[IndexCatalog] = None
) -> Dict[str, IndexResult]:
    """
    Compute a set of indices from one scaled, masked Raster.

    Args:
        raster: Source raster holding reflectance bands.
        names: Index names to compute, in output order. None computes the whole catalog.
        band_map: Alias ('red') to raster band name ('SR_B4'). Aliases absent from
                  the map are looked up under their own name.
        params: Per-index constant overrides, e.g. {'SAVI': {'L': 0.25}}.
        catalog: Index definitions (defaults to the built-in nine indices).

    Returns:
        Dict[str, IndexResult]: Ordered by `names`.

    Raises:
        BandNotFoundError: If a required band is absent from the raster.
        ConfigurationError: If an index name or parameter is unknown.
    """
    if catalog is None:
        catalog = _DEFAULT_CATALOG
    if names is not None:
        catalog = catalog.subset(names)
    band_map = dict(band_map or {})
    params = params or {}

    unknown = set(params) - set(catalog.names)
    if unknown:
        raise ConfigurationError(f"Parameters given for indices not being computed: {sorted(unknown)}")

    cache: Dict[str, Band] = {}
    results: Dict[str, IndexResult] = {}
    for index in catalog:
        if index.name in params:
            index = index.with_params(**params[index.name])

        inputs = {}
        for alias in index.bands:
            if alias not in cache:
                cache[alias] = raster.get_band(band_map.get(alias, alias))
            inputs[alias] = cache[alias]

        results[index.name] = evaluate_index(index, inputs)
        log.debug(f"Computed {index.name}")

    log.info(f"Computed {len(results)} index band(s): {list(results)}")
    return results

def stack_indices(
    results: Union[Mapping[str, IndexResult], Iterable[IndexResult]],
    dtype: str = "float32"
) -> Raster:
    """
    Stack IndexResults into one multi-band float Raster whose band names are
    the index names, the layout expected by export sinks.
    """
    if isinstance(results, Mapping):
        results = results.values()
    return Raster.from_bands([result.band for result in results], nodata=np.nan, dtype=dtype)
