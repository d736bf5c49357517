# src/halospatial/raster/resources.py

"""
This module checks system memory before processing an in-memory Raster.

The pipeline allocates several float64 copies of the scene (masked, scaled,
one band per index). The estimate decides whether the whole grid is processed
at once or split into blocks.
"""

import logging
import psutil
from enum import Enum
from dataclasses import dataclass
from typing import Union

import numpy as np

from halospatial.exceptions import ConfigurationError
from .layer import Raster

log = logging.getLogger(__name__)

__all__ = [
    "ProcessingMode",
    "MemoryEstimate",
    "StrategyReport",
    "estimate_memory",
    "determine_strategy"
]

DEFAULT_SAFETY_FACTOR = 3.0
MIN_FREE_GB = 2.0

class ProcessingMode(Enum):
    """
    How a transform is applied to a Raster.

    Modes:
        IN_MEMORY: One call over the whole grid.
        TILED: Independent blocks, optionally on several threads, stitched afterwards.
    """
    IN_MEMORY = "in_memory"
    TILED = "tiled"

@dataclass(frozen=True)
class MemoryEstimate:
    """
    Bytes a full-grid pass needs against what the machine has free.

    Args:
        total_required_bytes: Working set of the pass, safety factor included.
        available_system_bytes: psutil's available memory at estimate time.
        is_safe: True when the pass fits while leaving the reserve free.
        reason: Short human-readable summary ('Req: 1.20GB, Avail: 7.80GB').
    """
    total_required_bytes: int
    available_system_bytes: int
    is_safe: bool
    reason: str

@dataclass(frozen=True)
class StrategyReport:
    """The chosen mode, why it was chosen, and the estimate behind it."""
    mode: ProcessingMode
    reason: str
    memory_stats: MemoryEstimate

def estimate_memory(
    raster: Raster,
    output_bands: int = 0,
    safety_factor: float = DEFAULT_SAFETY_FACTOR,
    min_free_gb: float = MIN_FREE_GB
) -> MemoryEstimate:
    """
    Estimate whether masking, scaling and index evaluation over the whole grid fit in RAM.

    Args:
        raster: Raster about to be processed.
        output_bands: Bands the pass adds (one per index).
        safety_factor: Multiplier covering intermediate arrays.
        min_free_gb: Memory that must stay free after the pass.
    """
    # Every stage works in float64, whatever the input dtype
    itemsize = max(np.dtype(np.float64).itemsize, raster.data.dtype.itemsize)
    pixels = raster.width * raster.height
    required = int(pixels * (raster.count + output_bands) * itemsize * safety_factor)

    available = psutil.virtual_memory().available
    reserve = int(min_free_gb * 1024 ** 3)

    return MemoryEstimate(
        total_required_bytes=required,
        available_system_bytes=available,
        is_safe=required + reserve <= available,
        reason=f"Req: {required / 1e9:.2f}GB, Avail: {available / 1e9:.2f}GB"
    )

def determine_strategy(
    raster: Raster,
    user_mode: Union[str, ProcessingMode] = "auto",
    output_bands: int = 0,
    workers: int = 1
) -> StrategyReport:
    """
    Pick the processing mode for a Raster.

    'in_memory' and 'tiled' are honoured as given. 'auto' splits into blocks
    when the estimate is unsafe or when more than one worker is requested,
    and processes the whole grid otherwise.

    Raises:
        ConfigurationError: For any other mode string.
    """
    estimate = estimate_memory(raster, output_bands=output_bands)
    requested = user_mode.value if isinstance(user_mode, ProcessingMode) else str(user_mode)

    if requested != "auto":
        try:
            forced = ProcessingMode(requested)
        except ValueError:
            choices = [m.value for m in ProcessingMode] + ["auto"]
            raise ConfigurationError(f"Invalid mode '{requested}'. Must be one of: {choices}") from None
        return StrategyReport(forced, f"User forced mode: {requested}", estimate)

    if not estimate.is_safe:
        mode, reason = ProcessingMode.TILED, f"Full grid does not fit in RAM. {estimate.reason}"
    elif workers > 1:
        mode, reason = ProcessingMode.TILED, f"{workers} workers requested. {estimate.reason}"
    else:
        mode, reason = ProcessingMode.IN_MEMORY, f"Full grid fits in RAM. {estimate.reason}"

    log.debug(f"Strategy for {raster.shape}: {mode.value} ({reason})")
    return StrategyReport(mode=mode, reason=reason, memory_stats=estimate)
