"""Configuration loading and analysis options."""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

from mtb_difficulty import terrain
from mtb_difficulty.segments import DEFAULT_SEGMENT_LENGTH_M
from mtb_difficulty.technical import DEFAULT_PRESET

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "mtb-difficulty"
CONFIG_PATH = CONFIG_DIR / "mtb-difficulty.json"
LOCAL_CONFIG_PATH = Path("mtb-difficulty.json")

ENV_CACHE_DIR = "MTB_DIFFICULTY_CACHE_DIR"
ENV_OVERPASS_URL = "MTB_DIFFICULTY_OVERPASS_URL"


@dataclass(frozen=True)
class AnalysisOptions:
    segment_length_m: float = DEFAULT_SEGMENT_LENGTH_M
    sample_every_m: float = terrain.DEFAULT_SAMPLE_EVERY_M
    radius_m: int = terrain.DEFAULT_RADIUS_M
    preset: str = DEFAULT_PRESET
    physical_weight: float = 0.55
    terrain_fallback: bool = False  # use fallback_roughness when coverage is too low
    fallback_roughness: float = terrain.FALLBACK_ROUGHNESS
    min_coverage: float = terrain.MIN_COVERAGE
    min_resolved: int = terrain.MIN_RESOLVED_SAMPLES
    max_workers: int = terrain.DEFAULT_MAX_WORKERS
    timeout_s: float = terrain.DEFAULT_TIMEOUT_S
    cache_dir: str = str(terrain.CACHE_DIR)
    cache_ttl_seconds: float | None = None  # None keeps terrain entries forever
    overpass_url: str = terrain.OVERPASS_URL
    offline: bool = False  # skip terrain lookups entirely

    def __post_init__(self):
        for name in ("segment_length_m", "sample_every_m", "radius_m", "timeout_s"):
            if not getattr(self, name) > 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.min_resolved < 0:
            raise ValueError(f"min_resolved must not be negative, got {self.min_resolved}")
        for name in ("physical_weight", "min_coverage", "fallback_roughness"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {getattr(self, name)}")
        if self.cache_ttl_seconds is not None and self.cache_ttl_seconds < 0:
            raise ValueError(f"cache_ttl_seconds must not be negative, got {self.cache_ttl_seconds}")


# Type each option value is coerced to when read from JSON or a request
OPTION_TYPES = {
    "segment_length_m": float,
    "sample_every_m": float,
    "radius_m": int,
    "preset": str,
    "physical_weight": float,
    "terrain_fallback": bool,
    "fallback_roughness": float,
    "min_coverage": float,
    "min_resolved": int,
    "max_workers": int,
    "timeout_s": float,
    "cache_dir": str,
    "cache_ttl_seconds": float,
    "overpass_url": str,
    "offline": bool,
}


def coerce_option(key: str, value):
    """Convert a JSON option value to the type AnalysisOptions expects.

    Numbers may be given as numeric strings ("4"); booleans must be real
    JSON booleans.

    Raises:
        ValueError: If the value cannot be converted.
    """
    cast = OPTION_TYPES[key]
    if cast is bool:
        if not isinstance(value, bool):
            raise ValueError(f"{key} must be true or false")
        return value
    if cast is str:
        return str(value)
    if isinstance(value, bool):
        raise ValueError(f"{key} must be a number")
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number") from None


def _load_config() -> dict:
    """Load configuration from config files.

    Merges config from global and local files:
    1. ~/.config/mtb-difficulty/mtb-difficulty.json (global, loaded first)
    2. ./mtb-difficulty.json (local, overrides global)

    Returns:
        Dict with merged config values, empty dict if no files exist.
    """
    config = {}
    for config_path in [CONFIG_PATH, LOCAL_CONFIG_PATH]:
        if config_path.exists():
            try:
                with config_path.open() as f:
                    config.update(json.load(f))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Ignoring unreadable config file %s: %s", config_path, e)
                continue
    return config


def load_options(overrides: dict | None = None) -> AnalysisOptions:
    """Build AnalysisOptions from config files, environment and explicit overrides.

    Precedence (lowest to highest): defaults, global config, local config,
    environment variables, overrides. Unknown keys are ignored; None override
    values leave the lower layer untouched.

    Raises:
        ValueError: If a value has the wrong type or is out of range.
    """
    values = _load_config()
    if os.environ.get(ENV_CACHE_DIR):
        values["cache_dir"] = os.environ[ENV_CACHE_DIR]
    if os.environ.get(ENV_OVERPASS_URL):
        values["overpass_url"] = os.environ[ENV_OVERPASS_URL]
    if overrides:
        values.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(AnalysisOptions)}
    unknown = sorted(set(values) - known)
    if unknown:
        logger.debug("Ignoring unknown config keys: %s", ", ".join(unknown))
    coerced = {}
    for key, value in values.items():
        if key in known and value is not None:
            coerced[key] = coerce_option(key, value)
    return replace(AnalysisOptions(), **coerced)
