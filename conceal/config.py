"""
Configuration loading.

Settings live in a YAML file, looked up in this order: an explicit path, the
``CONCEAL_CONFIG`` environment variable, then ``~/.conceal/config.yaml``.
Whatever the file sets is merged over :data:`DEFAULT_CONFIG`.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

ENV_VAR = "CONCEAL_CONFIG"
USER_CONFIG = Path.home() / ".conceal" / "config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "defaults": {
        "batch_slots": 0,  # 0 = one scanline per progress step
        "show_progress": True,
        "output_suffix": "_conceal",
    },
    "logging": {
        "level": "INFO",
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def _resolve(path: Optional[str]) -> Optional[Path]:
    if path:
        return Path(path)
    env = os.environ.get(ENV_VAR)
    if env:
        return Path(env)
    if USER_CONFIG.exists():
        return USER_CONFIG
    return None


def get_config(path: Optional[str] = None) -> Dict[str, Any]:
    source = _resolve(path)
    if source is None:
        return copy.deepcopy(DEFAULT_CONFIG)
    try:
        with open(source, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config {source}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {source}: {e}") from e
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config {source} must be a mapping, got {type(loaded).__name__}")
    logger.debug("Loaded config from %s", source)
    return _merge(DEFAULT_CONFIG, loaded)
