"""Configuration system for release-conductor."""

from .loader import get_config_path, load_config, resolve_db_path, resolve_release_configs_path
from .schema import (
    ConductorConfig,
    LoggingConfig,
    ReleaseConfigsConfig,
    RetryConfig,
    SchedulerConfig,
    StorageConfig,
)

__all__ = [
    "ConductorConfig",
    "SchedulerConfig",
    "RetryConfig",
    "StorageConfig",
    "ReleaseConfigsConfig",
    "LoggingConfig",
    "load_config",
    "get_config_path",
    "resolve_db_path",
    "resolve_release_configs_path",
]
