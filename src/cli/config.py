"""Configuration file discovery and loading."""

import os
from pathlib import Path
from typing import Optional

import yaml

from .config_models import AppConfig

CONFIG_ENV_VAR = "MOODSYNC_CONFIG"


def find_config() -> Optional[Path]:
    """First existing config: $MOODSYNC_CONFIG, ./config.yaml, ~/.moodsync/config.yaml."""
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    for loc in (Path.cwd() / "config.yaml", Path.home() / ".moodsync" / "config.yaml"):
        if loc.exists():
            return loc
    return None


def read_config_file(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}")
    if not isinstance(data, dict):
        raise ValueError(f"Config in {path} must be a mapping, got {type(data).__name__}")
    return data


def load_config_model(config_path: Optional[Path] = None) -> AppConfig:
    """Load and validate config; a missing file means all defaults.

    Raises:
        ValueError: unreadable YAML or a value that fails validation.
    """
    path = config_path or find_config()
    data = read_config_file(path) if path and path.exists() else {}
    try:
        return AppConfig.from_dict(data)
    except Exception as e:
        raise ValueError(f"Config validation failed: {e}")
