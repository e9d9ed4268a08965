"""Configuration management for gmcli.

Handles loading and saving YAML configuration from ~/.config/gmcli/, plus
the atomic JSON writes used for profile settings and token records.
"""

import os
import json
import yaml
import logging
import tempfile
from pathlib import Path
from typing import Any

from .exceptions import ConfigError

logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    env_path = os.getenv("GMCLI_CONFIG_DIR")
    if env_path:
        return Path(env_path)
    return Path.home() / ".config" / "gmcli"


def get_config_file_path() -> Path:
    """
    Get the path to the config file, respecting the GMCLI_CONFIG_FILE env var.
    """
    env_path = os.getenv("GMCLI_CONFIG_FILE")
    if env_path:
        return Path(env_path)
    return get_config_dir() / "config.yaml"


DEFAULT_CONFIG = {
    "active_profile": None,
}


def load_config() -> dict:
    """Load the gmcli configuration from the config file."""
    config_file = get_config_file_path()
    if not config_file.exists():
        logger.debug(f"Config file not found at {config_file}, using default config.")
        return DEFAULT_CONFIG.copy()

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {config_file}: {e}", step="load_config") from e

    if config is None:
        return DEFAULT_CONFIG.copy()
    return _deep_merge(DEFAULT_CONFIG.copy(), config)


def save_config(config_data: dict):
    """Save the gmcli configuration to the config file."""
    config_file = get_config_file_path()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, 'w') as f:
        yaml.safe_dump(config_data, f, default_flow_style=False)
    logger.debug(f"Configuration saved to {config_file}")


def get_config_value(key: str, default: Any = None) -> Any:
    """Retrieve a configuration value using a dot-separated key."""
    config_data = load_config()
    keys = key.split('.')
    value = config_data
    for k in keys:
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default
    return value


def set_config_value(key: str, value: Any):
    """Set a configuration value using a dot-separated key and save."""
    config_data = load_config()
    keys = key.split('.')
    current_level = config_data
    for i, k in enumerate(keys):
        if i == len(keys) - 1:
            current_level[k] = value
        else:
            if k not in current_level or not isinstance(current_level[k], dict):
                current_level[k] = {}
            current_level = current_level[k]
    save_config(config_data)


def write_json_atomic(path: Path, data: dict, mode: int = 0o600):
    """
    Write ``data`` as JSON to ``path`` so readers never observe a partial file.

    The payload goes to a temp file in the same directory, is flushed and
    fsynced, then renamed over the destination.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    logger.debug(f"Wrote {path}")


def _deep_merge(base: dict, new: dict) -> dict:
    """Recursively merge dictionary `new` into `base`."""
    for k, v in new.items():
        if k in base and isinstance(base[k], dict) and isinstance(v, dict):
            base[k] = _deep_merge(base[k], v)
        else:
            base[k] = v
    return base
