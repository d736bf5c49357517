# src/halospatial/display.py

"""
This module defines validated visualization settings for index layers and
renders them to RGBA arrays.

A DisplayConfig replaces the free-form visualization dictionaries of hosted
map platforms ({bands, min, max, palette}) with a checked, immutable record.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Tuple, Union

import numpy as np
from matplotlib.colors import LinearSegmentedColormap, is_color_like, to_rgba

from halospatial.exceptions import ConfigurationError

log = logging.getLogger(__name__)

__all__ = [
    "PALETTES",
    "DisplayConfig",
    "normalize_color",
    "colorize",
    "TRUE_COLOR",
    "NIR_GRAYSCALE"
]

PALETTES: Dict[str, Tuple[str, ...]] = {
    "viridis": ("#fde725", "#5ec962", "#21918c", "#3b528b", "#440154"),
    "green-purple": ("006400", "adff2f", "ffff00", "ffa500", "ff0000", "800080"),
    "ylgn": ("#ffffe5", "#f7fcb9", "#d9f0a3", "#addd8e", "#78c679", "#41ab5d", "#238443", "#005a32"),
    "blue-red": ("blue", "cyan", "green", "yellow", "red"),
}

_RECOGNIZED_FIELDS = ("bands", "min", "max", "palette")

def normalize_color(color: str) -> str:
    """
    Normalize one palette stop to a matplotlib color string.

    Bare hex strings ('adff2f') gain a leading '#'; named colors pass through.

    Raises:
        ConfigurationError: If the color cannot be interpreted.
    """
    if not isinstance(color, str) or not color:
        raise ConfigurationError(f"Palette colors must be non-empty strings, got {color!r}")
    candidate = color
    if not color.startswith("#") and len(color) in (6, 8):
        try:
            int(color, 16)
            candidate = f"#{color}"
        except ValueError:
            pass
    if not is_color_like(candidate):
        raise ConfigurationError(f"Unrecognized palette color: {color!r}")
    return candidate

@dataclass(frozen=True)
class DisplayConfig:
    """
    Visualization parameters for a map layer.

    Attributes:
        bands: One band name (optionally with a palette) or three (RGB composite).
        min: Value mapped to the first palette stop.
        max: Value mapped to the last palette stop.
        palette: Ordered color stops (hex or named) or a key of PALETTES.
                 None renders a single band in grayscale.
    """
    bands: Tuple[str, ...]
    min: float = 0.0
    max: float = 1.0
    palette: Optional[Tuple[str, ...]] = field(default=None)

    def __post_init__(self):
        bands = (self.bands,) if isinstance(self.bands, str) else tuple(self.bands)
        if len(bands) not in (1, 3):
            raise ConfigurationError(f"Display needs 1 or 3 bands, got {len(bands)}: {bands}")
        object.__setattr__(self, "bands", bands)

        vmin, vmax = float(self.min), float(self.max)
        if not (np.isfinite(vmin) and np.isfinite(vmax)) or vmin >= vmax:
            raise ConfigurationError(f"Display range must satisfy min < max, got [{self.min}, {self.max}]")
        object.__setattr__(self, "min", vmin)
        object.__setattr__(self, "max", vmax)

        palette = self.palette
        if palette is not None:
            if isinstance(palette, str):
                if palette not in PALETTES:
                    raise ConfigurationError(
                        f"Unknown palette '{palette}'. Choose from: {sorted(PALETTES)}"
                    )
                palette = PALETTES[palette]
            palette = tuple(normalize_color(c) for c in palette)
            if len(palette) < 2:
                raise ConfigurationError("A palette needs at least two color stops.")
            if len(bands) != 1:
                raise ConfigurationError("A palette can only be applied to a single band.")
            object.__setattr__(self, "palette", palette)

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "DisplayConfig":
        """Build from a platform-style dictionary, rejecting unknown keys."""
        unknown = set(params) - set(_RECOGNIZED_FIELDS)
        if unknown:
            raise ConfigurationError(
                f"Unrecognized display fields {sorted(unknown)}; expected {list(_RECOGNIZED_FIELDS)}"
            )
        if "bands" not in params:
            raise ConfigurationError("Display configuration requires 'bands'.")
        return cls(**params)

    def to_dict(self) -> Dict[str, Any]:
        params = {"bands": list(self.bands), "min": self.min, "max": self.max}
        if self.palette is not None:
            params["palette"] = list(self.palette)
        return params

    def for_band(self, name: str) -> "DisplayConfig":
        """Same range and palette, bound to another band name."""
        return DisplayConfig(bands=(name,), min=self.min, max=self.max, palette=self.palette)

# Composites of the scaled reflectance scene
TRUE_COLOR = DisplayConfig(bands=("SR_B4", "SR_B3", "SR_B2"), min=0.0, max=0.3)
NIR_GRAYSCALE = DisplayConfig(bands=("SR_B5",), min=0.0, max=0.5)

def _stretch(values: np.ndarray, config: DisplayConfig) -> np.ndarray:
    span = config.max - config.min
    return np.clip((values - config.min) / span, 0.0, 1.0)

def colorize(
    source: Union[np.ndarray, Any],
    config: DisplayConfig
) -> np.ndarray:
    """
    Render values to an 8-bit RGBA image following a DisplayConfig.

    Args:
        source: 2D array, Band, IndexResult (anything with a `.band`), or a
                Raster holding the configured band names.
        config: Visualization parameters.

    Returns:
        np.ndarray: (Height, Width, 4) uint8 array. No-data pixels are fully transparent.
    """
    if hasattr(source, "band"):
        source = source.band

    if hasattr(source, "get_band"):
        layers = [source.get_band(name).data for name in config.bands]
    elif hasattr(source, "data"):
        layers = [np.asarray(source.data)]
    else:
        layers = [np.asarray(source)]

    if len(layers) != len(config.bands):
        raise ConfigurationError(
            f"Display expects {len(config.bands)} band(s), got {len(layers)}"
        )

    stack = np.stack([layer.astype(np.float64) for layer in layers])
    nodata = ~np.all(np.isfinite(stack), axis=0)
    stretched = _stretch(np.nan_to_num(stack, nan=config.min), config)

    if len(layers) == 3:
        rgba = np.ones(stretched.shape[1:] + (4,), dtype=np.float64)
        rgba[..., :3] = np.moveaxis(stretched, 0, -1)
    elif config.palette is not None:
        cmap = LinearSegmentedColormap.from_list("halospatial", [to_rgba(c) for c in config.palette])
        rgba = cmap(stretched[0])
    else:
        gray = stretched[0]
        rgba = np.stack([gray, gray, gray, np.ones_like(gray)], axis=-1)

    image = np.round(rgba * 255).astype(np.uint8)
    image[nodata, 3] = 0
    return image
