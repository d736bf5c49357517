# src/halospatial/raster/engine.py

"""
This module runs per-pixel raster transforms over an in-memory Raster.

It serves as the core dispatch mechanism: the transform is applied to the
whole grid at once, or to independent blocks (optionally in parallel threads)
whose results are stitched back into one Raster. Because every transform is
per-pixel, both paths produce identical output.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Union, Any, Dict, Tuple

from halospatial.exceptions import ConfigurationError, RasterValidationError
from .layer import Raster
from .resources import ProcessingMode, determine_strategy
from .partition import iter_windows, TileStitcher

log = logging.getLogger(__name__)

__all__ = [
    "DispatchConfig",
    "dispatch"
]

@dataclass(frozen=True)
class DispatchConfig:
    """Configuration object for the execution engine.

    Args:
        mode: ProcessingMode to enforce ('in_memory', 'tiled', 'auto').
        tile_size: Size of square blocks (in pixels). Default=512.
        workers: Number of threads processing blocks. Default=1.
        output_bands: Number of bands the transform adds (for memory estimates).
    """
    mode: Union[ProcessingMode, str] = "auto"
    tile_size: int = 512
    workers: int = 1
    output_bands: int = 0

    def __post_init__(self):
        if self.tile_size < 1:
            raise ConfigurationError(f"tile_size must be positive, got {self.tile_size}")
        if self.workers < 1:
            raise ConfigurationError(f"workers must be positive, got {self.workers}")

def dispatch(
    func: Callable[..., Raster],
    raster: Raster,
    static_args: Tuple = (),
    static_kwargs: Dict[str, Any] = None,
    config: DispatchConfig = None,
    windowed_kwargs: Dict[str, Any] = None
) -> Raster:
    """
    Execute a per-pixel transform over a Raster using the optimal strategy.

    Args:
        func: Called as func(tile, *static_args, **static_kwargs); must return
              a Raster on the tile's grid.
        raster: The input raster.
        static_args: Positional arguments to pass to func (passed through).
        static_kwargs: Keyword arguments to pass to func (passed through).
        config: Execution configuration (Mode, Tiling, Workers).
        windowed_kwargs: Keyword arguments on the raster's grid. Each value must
                         provide read_window(window); blocks receive their own part.

    Returns:
        Raster: The transform's output for the full grid.
    """
    static_kwargs = static_kwargs or {}
    windowed_kwargs = windowed_kwargs or {}
    config = config or DispatchConfig()

    report = determine_strategy(
        raster,
        user_mode=config.mode,
        output_bands=config.output_bands,
        workers=config.workers
    )
    log.info(f"Engine dispatching {func.__name__} in {report.mode.value} mode")
    log.debug(f"Strategy Report: {report.reason}")

    if report.mode == ProcessingMode.IN_MEMORY:
        return func(raster, *static_args, **static_kwargs, **windowed_kwargs)

    windows = list(iter_windows(raster, tile_size=config.tile_size))
    log.debug(f"Processing {len(windows)} block(s) on {config.workers} worker(s)")

    def run(item):
        window, tile = item
        block_kwargs = {key: value.read_window(window) for key, value in windowed_kwargs.items()}
        result = func(tile, *static_args, **static_kwargs, **block_kwargs)
        if result.shape[1:] != tile.shape[1:]:
            raise RasterValidationError(
                f"{func.__name__} changed the block grid {tile.shape[1:]} -> {result.shape[1:]}"
            )
        return window, result

    stitcher = TileStitcher(raster.height, raster.width, raster.transform, raster.crs)

    if config.workers == 1:
        for window, result in map(run, windows):
            stitcher.add_tile(window, result)
    else:
        with ThreadPoolExecutor(max_workers=config.workers) as pool:
            for window, result in pool.map(run, windows):
                stitcher.add_tile(window, result)

    return stitcher.result()
