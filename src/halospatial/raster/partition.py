# src/halospatial/raster/partition.py

"""
This module partitions an in-memory Raster into independent blocks and
reassembles processed blocks into one Raster.

Every operation in the pipeline is per-pixel, so blocks need no overlap.
"""

import logging
from typing import Iterator, Tuple, Optional, Dict

import numpy as np
from rasterio.transform import Affine
from rasterio.windows import Window
from rasterio.windows import transform as compute_window_transform

from halospatial.exceptions import RasterValidationError
from .layer import Raster

log = logging.getLogger(__name__)

__all__ = [
    "iter_windows",
    "TileStitcher"
]

def iter_windows(
    raster: Raster,
    tile_size: int = 512,
    tile_height: Optional[int] = None
) -> Iterator[Tuple[Window, Raster]]:
    """
    Generates small Raster tiles from an in-memory Raster by slicing.

    Args:
        raster: Source raster.
        tile_size: Width of each tile in pixels (and height unless tile_height is given).
        tile_height: Height of each tile in pixels.

    Yields:
        (Window, Raster): The window in the source grid and the Raster for that slice.
    """
    if tile_size < 1 or (tile_height is not None and tile_height < 1):
        raise ValueError("Tile dimensions must be positive")

    tile_width = tile_size
    tile_height = tile_height or tile_size

    for row_off in range(0, raster.height, tile_height):
        for col_off in range(0, raster.width, tile_width):

            # Handle edge tiles at right/bottom
            width = min(tile_width, raster.width - col_off)
            height = min(tile_height, raster.height - row_off)

            window = Window(col_off=col_off, row_off=row_off, width=width, height=height)

            # NOTE: Rasterio windows use (col, row), our data format is (Bands, Height, Width)
            window_data = raster.data[
                :,
                row_off : row_off + height,
                col_off : col_off + width
            ]

            # We shift the origin (top-left) to the new window location.
            window_transform = compute_window_transform(window, raster.transform)

            tile_raster = Raster(
                data=window_data,
                transform=window_transform,
                crs=raster.crs,
                nodata=raster.nodata,
                band_names=raster.band_names
            )

            yield window, tile_raster

class TileStitcher:
    """
    Reassembles processed tiles into a single in-memory Raster.

    The band layout (count, names, dtype) is taken from the first tile added;
    later tiles must match it.

    Args:
        height: Height of the full grid.
        width: Width of the full grid.
        transform: Transform of the full grid.
        crs: CRS of the full grid.
    """

    def __init__(self, height: int, width: int, transform: Affine, crs):
        self.height = height
        self.width = width
        self.transform = transform
        self.crs = crs
        self._data: Optional[np.ndarray] = None
        self._band_names: Dict[str, int] = {}
        self._nodata = np.nan
        self._filled = 0

    def add_tile(self, window: Window, tile: Raster):
        if self._data is None:
            dtype = tile.data.dtype
            fill = np.nan if np.issubdtype(dtype, np.floating) else 0
            self._data = np.full((tile.count, self.height, self.width), fill, dtype=dtype)
            self._band_names = dict(tile.band_names)
            self._nodata = tile.nodata
        elif tile.band_names != self._band_names:
            raise RasterValidationError(
                f"Tile bands {tile.names} differ from {list(self._band_names)}"
            )

        row_off, col_off = int(window.row_off), int(window.col_off)
        height, width = int(window.height), int(window.width)
        if tile.data.shape[1:] != (height, width):
            raise RasterValidationError(
                f"Tile shape {tile.data.shape[1:]} does not fit window {window}"
            )

        self._data[:, row_off:row_off + height, col_off:col_off + width] = tile.data
        self._filled += height * width

    def result(self) -> Raster:
        if self._data is None:
            raise RasterValidationError("No tiles were added")
        if self._filled != self.height * self.width:
            log.warning(f"Stitched {self._filled} of {self.height * self.width} pixels")

        return Raster(
            data=self._data,
            transform=self.transform,
            crs=self.crs,
            nodata=self._nodata,
            band_names=self._band_names
        )
