# src/halospatial/settings.py

"""
Environment-backed runtime settings.

Values come from HALOSPATIAL_* environment variables, optionally loaded from
a .env file. Explicit arguments (CLI flags, function parameters) always win.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv, find_dotenv

from halospatial.exceptions import ConfigurationError
from halospatial.sensors import DEFAULT_SENSOR

log = logging.getLogger(__name__)

__all__ = [
    "Settings",
    "load_settings"
]

ENV_PREFIX = "HALOSPATIAL_"

@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    export_folder: str = "exports"
    workers: int = 1
    tile_size: int = 512
    sensor: str = DEFAULT_SENSOR

    def __post_init__(self):
        level = str(self.log_level).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ConfigurationError(f"Unknown log level: {self.log_level!r}")
        object.__setattr__(self, "log_level", level)
        if self.workers < 1:
            raise ConfigurationError(f"workers must be positive, got {self.workers}")
        if self.tile_size < 1:
            raise ConfigurationError(f"tile_size must be positive, got {self.tile_size}")

def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None

def load_settings(env_file: Optional[Union[str, Path]] = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        env_file: Explicit .env file. If None, the nearest .env found from the
                  working directory is used when present. Variables already set
                  in the process environment are not overridden.
    """
    path = str(env_file) if env_file else find_dotenv(usecwd=True)
    if path:
        load_dotenv(path, override=False)
        log.debug(f"Loaded environment from {path}")

    return Settings(
        log_level=os.getenv(ENV_PREFIX + "LOG_LEVEL", "INFO"),
        export_folder=os.getenv(ENV_PREFIX + "EXPORT_FOLDER", "exports"),
        workers=_env_int("WORKERS", 1),
        tile_size=_env_int("TILE_SIZE", 512),
        sensor=os.getenv(ENV_PREFIX + "SENSOR", DEFAULT_SENSOR)
    )
