# src/halospatial/raster/__init__.py
#
# Copyright (c) The halospatial project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The raster subpackage provides core functionality for handling raster data,
including I/O operations, masking, radiometric scaling, spectral index
computation, partitioning and engine dispatching.
"""
# Core data structures
from .layer import (
    Band,
    Raster,
    resolve_raster
)

# I/O operations
from .io import (
    load,
    load_scene,
    save,
    read_info
)

# Shared utilities
from .utils import (
    resolve_envi_path,
    extract_band_names,
    extract_band_indices,
    check_alignment,
    band_selector
)

# Geometry utilities
from .geom import (
    reproject,
    crop,
    clip
)

# Mask engine
from .mask import (
    ValidityMask,
    compute_mask,
    mask_from_raster,
    apply_mask
)

# Scaling engine
from .scaling import (
    scale
)

# Spectral index registry
from .indices import (
    SpectralIndex,
    IndexCatalog,
    DEFAULT_INDICES,
    SALINITY_INDICES
)

# Index engine
from .compute_index import (
    IndexResult,
    evaluate_index,
    compute_indices,
    stack_indices,
    si1,
    si2,
    si3,
    si4a,
    si5,
    ndsi,
    ndvi,
    savi,
    vssi
)

# Resource management
from .resources import (
    ProcessingMode,
    MemoryEstimate,
    StrategyReport,
    estimate_memory,
    determine_strategy
)

# Partition operations
from .partition import (
    iter_windows,
    TileStitcher
)

# Engine operations
from .engine import (
    DispatchConfig,
    dispatch
)

__all__ = [
    # Layer
    "Band",
    "Raster",
    "resolve_raster",

    # I/O
    "load",
    "save",
    "load_scene",
    "read_info",

    # Utils
    "resolve_envi_path",
    "extract_band_names",
    "extract_band_indices",
    "check_alignment",
    "band_selector",

    # Geom utilities
    "reproject",
    "crop",
    "clip",

    # Mask engine
    "ValidityMask",
    "compute_mask",
    "mask_from_raster",
    "apply_mask",

    # Scaling engine
    "scale",

    # Spectral registry
    "SpectralIndex",
    "IndexCatalog",
    "DEFAULT_INDICES",
    "SALINITY_INDICES",

    # Index engine
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
    "vssi",

    # Resources
    "ProcessingMode",
    "MemoryEstimate",
    "StrategyReport",
    "estimate_memory",
    "determine_strategy",

    # Partition
    "iter_windows",
    "TileStitcher",

    # Engine
    "DispatchConfig",
    "dispatch"
]
