# src/halospatial/exceptions.py

"""
Exception hierarchy for halospatial.

No-data is never an error: undefined arithmetic degrades to NaN pixels.
Exceptions are reserved for caller-side misconfiguration and I/O failures.
"""

__all__ = [
    "HalospatialError",
    "RasterError",
    "RasterValidationError",
    "RasterIOError",
    "ConfigurationError",
    "BandNotFoundError",
    "ExportError"
]

class HalospatialError(Exception):
    """Base exception for halospatial."""

class RasterError(HalospatialError):
    """Generic raster failure."""

class RasterValidationError(RasterError, ValueError):
    """Raster array or metadata is malformed."""

class RasterIOError(RasterError, IOError):
    """Raster could not be read from or written to disk."""

class ConfigurationError(HalospatialError, ValueError):
    """
    Caller-side misconfiguration.

    Raised when input bands do not share one grid, or when display, export,
    sensor or index settings are invalid.
    """

class BandNotFoundError(HalospatialError, KeyError):
    """A requested band is absent from the source Raster."""

    def __str__(self) -> str:
        # KeyError quotes its argument, keep the message readable
        return str(self.args[0]) if self.args else ""

class ExportError(HalospatialError):
    """An export request cannot be materialized."""
