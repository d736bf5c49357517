# src/halospatial/pipeline.py

"""
This module chains the three engines into the end-to-end workflow:

    raw scene -> Mask Engine -> Scaling Engine -> Index Engine -> sinks

Masking always precedes scaling. Index bands are stacked as float32 with
index names as band names, ready for an export sink.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

import numpy as np

from halospatial.display import DisplayConfig, TRUE_COLOR, NIR_GRAYSCALE
from halospatial.export import ExportConfig, ExportSink, GeoTiffExportSink
from halospatial.raster.layer import Raster, resolve_raster
from halospatial.raster.mask import ValidityMask, mask_from_raster
from halospatial.raster.scaling import scale
from halospatial.raster.indices import IndexCatalog
from halospatial.raster.compute_index import IndexResult, compute_indices, stack_indices
from halospatial.raster.engine import DispatchConfig, dispatch
from halospatial.sensors import SensorProfile, LANDSAT8_C2_L2

log = logging.getLogger(__name__)

__all__ = [
    "PipelineResult",
    "DisplaySink",
    "run_pipeline",
    "render_layers",
    "export_indices"
]

@dataclass(frozen=True)
class PipelineResult:
    """
    Outputs of one pipeline run.

    Attributes:
        mask: Validity mask of the scene.
        scaled: Masked scene with optical bands in reflectance.
        indices: Index results in computation order.
        sensor: Profile the scene was processed with.
    """
    mask: ValidityMask
    scaled: Raster
    indices: Dict[str, IndexResult] = field(default_factory=dict)
    sensor: SensorProfile = LANDSAT8_C2_L2

    @property
    def stacked(self) -> Raster:
        """Float32 multi-band raster of every index, named by index."""
        return stack_indices(self.indices)

    def summary(self) -> Dict[str, Dict[str, float]]:
        """Per-index statistics over valid pixels (NaN when a band is all no-data)."""
        stats = {}
        for name, result in self.indices.items():
            values = result.data[np.isfinite(result.data)]
            if values.size == 0:
                stats[name] = {"min": np.nan, "max": np.nan, "mean": np.nan, "valid": 0}
                continue
            stats[name] = {
                "min": float(values.min()),
                "max": float(values.max()),
                "mean": float(values.mean()),
                "valid": int(values.size)
            }
        return stats

class DisplaySink(Protocol):
    """
    A map display that accepts layers with visualization parameters.

    `name` is the human-readable layer label; `key` is a short identifier
    ('True_Color', 'NDVI') fit for file names.
    """

    def add_layer(self, source, config: DisplayConfig, name: str, shown: bool = True, key: str = "") -> None:
        ...

def _scale_block(tile: Raster, sensor: SensorProfile, mask: ValidityMask) -> Raster:
    return scale(tile, mask, sensor.gain, sensor.offset, sensor.optical_bands)

def _index_block(
    tile: Raster,
    names: List[str],
    band_map: Mapping[str, str],
    params: Mapping[str, Mapping[str, float]],
    catalog: IndexCatalog
) -> Raster:
    results = compute_indices(tile, names=names, band_map=band_map, params=params, catalog=catalog)
    return stack_indices(results, dtype="float64")

@resolve_raster
def run_pipeline(
    raster: Raster,
    sensor: SensorProfile = LANDSAT8_C2_L2,
    indices: Optional[Iterable[str]] = None,
    params: Optional[Mapping[str, Mapping[str, float]]] = None,
    catalog: Optional[IndexCatalog] = None,
    config: Optional[DispatchConfig] = None
) -> PipelineResult:
    """
    Mask, scale and compute indices for one scene.

    Args:
        raster: Raw scene (Raster or path), holding the sensor's QA and optical bands.
        sensor: SensorProfile with QA bits, scaling constants and band aliases.
        indices: Index names to compute; None computes every catalog index.
        params: Per-index constants, e.g. {'SAVI': {'L': 0.5}}.
        catalog: Index definitions; defaults to the nine built-in indices.
        config: Dispatch settings (mode, tile size, workers).

    Returns:
        PipelineResult
    """
    catalog = catalog if catalog is not None else IndexCatalog()
    names = list(indices) if indices is not None else catalog.names
    selected = catalog.subset(names)
    params = dict(params or {})

    config = config or DispatchConfig()

    log.info(f"Running pipeline for {sensor.collection_id} on {raster.shape} with indices {names}")

    mask = mask_from_raster(
        raster,
        sensor.qa_band,
        sensor.mask_bits,
        fill_bit=sensor.fill_bit,
        data_bands=sensor.optical_bands
    )
    log.info(f"Mask: {mask.valid_fraction:.1%} of pixels valid")

    scaled = dispatch(
        _scale_block,
        raster,
        static_kwargs={"sensor": sensor},
        windowed_kwargs={"mask": mask},
        config=config
    )

    index_config = DispatchConfig(
        mode=config.mode,
        tile_size=config.tile_size,
        workers=config.workers,
        output_bands=len(names)
    )
    stacked = dispatch(
        _index_block,
        scaled,
        static_kwargs={
            "names": names,
            "band_map": sensor.band_map,
            "params": params,
            "catalog": selected
        },
        config=index_config
    )

    results = {}
    for index in selected:
        if index.name in params:
            index = index.with_params(**params[index.name])
        results[index.name] = IndexResult(
            band=stacked.get_band(index.name),
            index=index,
            display=index.display
        )

    return PipelineResult(mask=mask, scaled=scaled, indices=results, sensor=sensor)

def render_layers(result: PipelineResult, sink: DisplaySink) -> List[Tuple[str, DisplayConfig]]:
    """
    Send the scene composites and every index layer to a display sink.

    The true-colour composite is shown; the NIR composite and index layers
    are added hidden, mirroring a typical map session.

    Returns:
        List of (layer name, DisplayConfig) in the order they were added.
    """
    band_map = result.sensor.band_map
    true_color = DisplayConfig(
        bands=(band_map["red"], band_map["green"], band_map["blue"]),
        min=TRUE_COLOR.min, max=TRUE_COLOR.max
    )
    nir = NIR_GRAYSCALE.for_band(band_map["nir"])

    added = []
    sink.add_layer(result.scaled, true_color, "Scaled Masked (True Color)", shown=True, key="True_Color")
    added.append(("Scaled Masked (True Color)", true_color))
    sink.add_layer(result.scaled, nir, "Scaled Masked (NIR Grayscale)", shown=False, key="NIR_Grayscale")
    added.append(("Scaled Masked (NIR Grayscale)", nir))

    for name, index_result in result.indices.items():
        display = index_result.display or DisplayConfig(bands=(name,), min=-1.0, max=1.0)
        label = f"{name} = {index_result.index.description}" if index_result.index.description else name
        sink.add_layer(index_result, display, label, shown=False, key=name)
        added.append((label, display))

    return added

def export_indices(
    result: PipelineResult,
    config: ExportConfig,
    sink: Optional[ExportSink] = None
) -> Path:
    """Export the stacked float32 index raster through a sink (local GeoTIFF by default)."""
    sink = sink or GeoTiffExportSink()
    return sink.export(result.stacked, config)
