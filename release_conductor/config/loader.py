# release_conductor/config/loader.py
"""
Configuration loading with auto-creation of defaults.

Uses platformdirs for cross-platform config and data directory management.
"""

import logging
from pathlib import Path

import yaml
from platformdirs import user_config_path, user_data_path

from .schema import ConductorConfig

logger = logging.getLogger(__name__)

APP_NAME = "release-conductor"


def get_config_path() -> Path:
    """Get path to config file, ensuring config directory exists."""
    config_dir = user_config_path(APP_NAME, ensure_exists=True)
    return config_dir / "config.yaml"


def load_config(path: Path | None = None) -> ConductorConfig:
    """
    Load configuration from YAML file.

    If the config file doesn't exist, creates it with defaults. The
    scheduler instance id is machine-specific and is never written out.

    Args:
        path: Explicit config file (default: platform config dir)

    Returns:
        Validated ConductorConfig
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        default_config = ConductorConfig()
        config_dict = default_config.model_dump(mode="json")
        config_dict["scheduler"].pop("instance_id", None)

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with config_path.open("w") as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Created default config at {config_path}")
        return default_config

    with config_path.open("r") as f:
        config_data = yaml.safe_load(f) or {}

    config = ConductorConfig(**config_data)
    logger.info(f"Loaded config from {config_path}")
    return config


def resolve_db_path(config: ConductorConfig) -> Path:
    """SQLite path from config, defaulting to the platform data dir."""
    if config.storage.db_path:
        return Path(config.storage.db_path).expanduser()
    return user_data_path(APP_NAME, ensure_exists=True) / "releases.db"


def resolve_release_configs_path(config: ConductorConfig, config_path: Path | None = None) -> Path:
    """Release configuration YAML path, defaulting to a file beside config.yaml."""
    if config.release_configs.path:
        return Path(config.release_configs.path).expanduser()
    return (config_path or get_config_path()).parent / "release_configs.yaml"
