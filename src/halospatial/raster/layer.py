# src/halospatial/raster/layer.py

"""
This module defines the core in-memory data structures: Raster and Band.
"""

import logging
from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import Union, Optional, Dict, Any, Tuple, List, Callable, Iterable, Mapping

import numpy as np
import rasterio
from rasterio.transform import Affine
from rasterio.crs import CRS

from halospatial.exceptions import RasterValidationError, BandNotFoundError

log = logging.getLogger(__name__)

__all__ = [
    "Band",
    "Raster",
    "resolve_raster"
]

def _freeze(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array

@dataclass(frozen=True)
class Band:
    """
    A named single-channel view over a Raster.

    Attributes:
        name: Semantic band name ('SR_B4', 'NDVI', ...).
        data: Read-only 2D array (Height, Width).
        transform: Pixel-to-geographic affine transform of the parent grid.
        crs: Coordinate Reference System of the parent grid.
    """
    name: str
    data: np.ndarray
    transform: Affine
    crs: Optional[CRS]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    def __repr__(self) -> str:
        return f"<Band name={self.name!r} shape={self.shape} dtype={self.data.dtype}>"

class Raster:
    """
    A scene: co-registered named bands on one pixel grid.

    Pixels live in a read-only (Bands, Height, Width) array next to the grid
    georeferencing (Affine transform, CRS) and a name for every band. Nothing
    mutates a Raster; masking, scaling and index evaluation each return a new one.

    Attributes:
        data (np.ndarray): Read-only pixels, (Bands, Height, Width).
        transform (Affine): Pixel to map coordinates of the top-left corner grid.
        crs (CRS): Grid CRS, None for bare arrays.
        nodata (float | int | None): Fill value; NaN once the scene is masked.
        band_names (Dict[str, int]): Band name to 1-based band index, in index order.
    """

    def __init__(
        self,
        data: np.ndarray,
        transform: Affine,
        crs: Optional[Union[CRS, str]],
        nodata: Optional[Union[float, int]] = np.nan,
        band_names: Optional[Dict[str, int]] = None
    ):
        """
        Args:
            data: (Height, Width) or (Bands, Height, Width) array. A 2D array
                  becomes a single-band Raster. The array is copied.
            transform: Affine georeferencing of the grid.
            crs: CRS object, or any string rasterio understands ('EPSG:32648').
            nodata: Fill value of the pixels.
            band_names: Name to 1-based index ('SR_B4': 4). Bands left
                        unnamed are called 'Band_<index>'.

        Raises:
            TypeError: If data is not an ndarray or transform not an Affine.
            RasterValidationError: If data is not 2D/3D or band_names are inconsistent.
        """
        self.validate_inputs(data, transform)

        pixels = np.array(data, copy=True)
        if pixels.ndim == 2:
            pixels = pixels[np.newaxis]

        self._data = _freeze(pixels)
        self.transform = transform
        self.crs = CRS.from_user_input(crs) if isinstance(crs, str) else crs
        self.nodata = nodata
        self.band_names = self._complete_band_names(band_names or {}, pixels.shape[0])

    @staticmethod
    def validate_inputs(data: np.ndarray, transform: Affine):
        if not isinstance(data, np.ndarray):
            raise TypeError(f"Raster data must be a numpy array, not {type(data).__name__}")
        if data.ndim not in (2, 3):
            raise RasterValidationError(f"Raster data must be 2D or 3D, got shape {data.shape}")
        if not isinstance(transform, Affine):
            raise TypeError(f"Raster transform must be an Affine, not {type(transform).__name__}")

    @staticmethod
    def _complete_band_names(band_names: Dict[str, int], count: int) -> Dict[str, int]:
        for name, idx in band_names.items():
            if not (1 <= idx <= count):
                raise RasterValidationError(
                    f"Band '{name}' points to index {idx}, outside 1-{count}"
                )
        named = set(band_names.values())
        if len(named) != len(band_names):
            raise RasterValidationError(f"Duplicate band indices in {band_names}")

        completed = dict(band_names)
        for idx in range(1, count + 1):
            if idx not in named:
                completed[f"Band_{idx}"] = idx
        return dict(sorted(completed.items(), key=lambda item: item[1]))

    @classmethod
    def from_bands(
        cls,
        bands: Iterable[Band],
        nodata: Optional[Union[float, int]] = np.nan,
        dtype: Optional[Union[str, np.dtype]] = None
    ) -> "Raster":
        """
        Stack single Bands into a multi-band Raster.

        All bands must share one grid; see utils.check_alignment.
        """
        from halospatial.raster.utils import check_alignment

        bands = list(bands)
        if not bands:
            raise RasterValidationError("Cannot build a Raster from zero bands.")
        check_alignment(*bands)

        names = [band.name for band in bands]
        if len(set(names)) != len(names):
            raise RasterValidationError(f"Duplicate band names: {names}")

        data = np.stack([band.data for band in bands])
        if dtype is not None:
            data = data.astype(dtype)

        return cls(
            data=data,
            transform=bands[0].transform,
            crs=bands[0].crs,
            nodata=nodata,
            band_names={name: i + 1 for i, name in enumerate(names)}
        )

    @property
    def data(self) -> np.ndarray:
        """Access the raw (read-only) pixel data."""
        return self._data

    @property
    def width(self) -> int:
        return self._data.shape[2]

    @property
    def height(self) -> int:
        return self._data.shape[1]

    @property
    def count(self) -> int:
        return self._data.shape[0]

    @property
    def shape(self) -> Tuple[int, int, int]:
        """(Bands, Height, Width)."""
        return self._data.shape

    @property
    def names(self) -> List[str]:
        """Band names ordered by band index."""
        return list(self.band_names.keys())

    @property
    def res(self) -> Tuple[float, float]:
        """Pixel size (x, y) in CRS units."""
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Grid extent as (left, bottom, right, top)."""
        return rasterio.transform.array_bounds(self.height, self.width, self.transform)

    @property
    def profile(self) -> Dict[str, Any]:
        """
        GeoTIFF write profile for this Raster (LZW, tiled from 256 px).
        io.save accepts keyword overrides for any entry.
        """
        nodata = self.nodata
        if nodata is not None and np.isnan(nodata) and not np.issubdtype(self._data.dtype, np.floating):
            nodata = None

        profile = {
            'driver': 'GTiff',
            'dtype': self._data.dtype.name,
            'nodata': nodata,
            'width': self.width,
            'height': self.height,
            'count': self.count,
            'crs': self.crs,
            'transform': self.transform,
            'compress': 'lzw'
        }
        # GTiff requires block sizes that are multiples of 16 for tiling
        if self.width >= 256 and self.height >= 256:
            profile['tiled'] = True
        return profile

    def get_band(self, identifier: Union[int, str]) -> Band:
        """
        Look a band up by name ('SR_B4') or by 1-based position.

        Returns:
            Band: read-only view sharing this Raster's grid.

        Raises:
            BandNotFoundError: If the name is not present.
            IndexError: If the index is out of range.
        """
        if isinstance(identifier, str):
            if identifier not in self.band_names:
                raise BandNotFoundError(
                    f"Band name '{identifier}' not found in {self.names}"
                )
            idx = self.band_names[identifier]
            name = identifier
        else:
            idx = identifier
            if not (1 <= idx <= self.count):
                raise IndexError(f"Band index {idx} out of range (1-{self.count})")
            name = self.names[idx - 1]

        return Band(name=name, data=self._data[idx - 1], transform=self.transform, crs=self.crs)

    def select(self, names: Iterable[Union[int, str]]) -> "Raster":
        """Return a new Raster holding only the requested bands, in request order."""
        return Raster.from_bands([self.get_band(n) for n in names], nodata=self.nodata)

    def with_bands(self, arrays: Mapping[str, np.ndarray], replace: bool = True) -> "Raster":
        """
        Add or overwrite bands by name.

        Existing bands keep their position when replaced; new bands are appended.

        Args:
            arrays: Mapping of band name to 2D array on this Raster's grid.
            replace: If False, an existing name raises RasterValidationError.
        """
        layers = {name: self._data[idx - 1] for name, idx in self.band_names.items()}
        for name, array in arrays.items():
            if name in layers and not replace:
                raise RasterValidationError(f"Band '{name}' already exists")
            if array.shape != (self.height, self.width):
                raise RasterValidationError(
                    f"Band '{name}' has shape {array.shape}, expected {(self.height, self.width)}"
                )
            layers[name] = array

        dtype = np.result_type(*[layer.dtype for layer in layers.values()])
        return Raster(
            data=np.stack([layer.astype(dtype, copy=False) for layer in layers.values()]),
            transform=self.transform,
            crs=self.crs,
            nodata=self.nodata,
            band_names={name: i + 1 for i, name in enumerate(layers)}
        )

    def astype(self, dtype: Union[str, np.dtype]) -> "Raster":
        return Raster(
            data=self._data.astype(dtype),
            transform=self.transform,
            crs=self.crs,
            nodata=self.nodata,
            band_names=self.band_names
        )

    def copy(self) -> "Raster":
        """New Raster over the same read-only pixels with its own band name mapping."""
        return Raster(
            data=self._data,
            transform=self.transform,
            crs=self.crs,
            nodata=self.nodata,
            band_names=self.band_names.copy()
        )

    def __repr__(self) -> str:
        return (f"<Raster shape={self.shape} dtype={self._data.dtype} "
                f"bands={self.names} crs={self.crs}>")

    def __eq__(self, other: object) -> bool:
        """Checks equality based on metadata and pixel data (NaN == NaN)."""
        if not isinstance(other, Raster):
            return NotImplemented

        meta_eq = (
            self.transform == other.transform and
            self.crs == other.crs and
            self.shape == other.shape and
            self.band_names == other.band_names
        )
        if not meta_eq:
            return False

        equal_nan = np.issubdtype(self._data.dtype, np.floating)
        return np.array_equal(self._data, other.data, equal_nan=equal_nan)

    __hash__ = None

    def __array__(self, dtype=None, copy=None) -> np.ndarray:
        """np.asarray(raster) gives the pixel array."""
        if dtype is not None:
            return self._data.astype(dtype)
        return self._data

def resolve_raster(func: Callable):
    """
    Decorator: lets a function taking a Raster first also take a file path.

    A str or Path is read with io.load; a Raster passes through untouched.
    Failures are logged with the function name and re-raised.
    """
    @wraps(func)
    def wrapper(source: Union[str, Path, Raster], *args, **kwargs):
        if isinstance(source, Raster):
            raster = source
        elif isinstance(source, (str, Path)):
            from halospatial.raster.io import load
            try:
                raster = load(source)
            except Exception:
                log.error(f"{func.__name__}: could not load {source}")
                raise
        else:
            raise TypeError(
                f"{func.__name__} takes a Raster or a file path, not {type(source).__name__}"
            )

        try:
            return func(raster, *args, **kwargs)
        except Exception as e:
            log.error(f"{func.__name__} failed: {e}")
            raise
    return wrapper
