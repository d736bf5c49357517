# src/halospatial/__init__.py
#
# Copyright (c) The halospatial project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
halospatial computes soil salinity and vegetation spectral indices from
Landsat surface reflectance scenes: QA masking, radiometric scaling, index
evaluation, display rendering and GeoTIFF export.
"""

__version__ = "0.1.0"

from .exceptions import (
    HalospatialError,
    RasterError,
    RasterValidationError,
    RasterIOError,
    ConfigurationError,
    BandNotFoundError,
    ExportError
)

from .sensors import (
    SensorProfile,
    SensorCatalog,
    LANDSAT8_C2_L2,
    LANDSAT9_C2_L2
)

from .display import (
    DisplayConfig,
    colorize
)

from .export import (
    ExportConfig,
    GeoTiffExportSink
)

from .vector import (
    Region,
    load_region
)

from .pipeline import (
    PipelineResult,
    run_pipeline,
    render_layers,
    export_indices
)

__all__ = [
    "__version__",
    "HalospatialError",
    "RasterError",
    "RasterValidationError",
    "RasterIOError",
    "ConfigurationError",
    "BandNotFoundError",
    "ExportError",
    "SensorProfile",
    "SensorCatalog",
    "LANDSAT8_C2_L2",
    "LANDSAT9_C2_L2",
    "DisplayConfig",
    "colorize",
    "ExportConfig",
    "GeoTiffExportSink",
    "Region",
    "load_region",
    "PipelineResult",
    "run_pipeline",
    "render_layers",
    "export_indices"
]
