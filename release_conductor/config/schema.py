# release_conductor/config/schema.py
"""
Pydantic configuration models for release-conductor.

All models use extra="ignore" to allow unknown YAML keys without crashing.
"""

import socket
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SchedulerConfig(BaseModel):
    """Cron-driven scheduler loop configuration."""

    model_config = ConfigDict(extra="ignore")

    interval_seconds: float = Field(
        default=60.0, ge=10.0, description="Seconds between scheduler ticks (minimum 10)"
    )
    lock_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Lease duration for per-release locks; expired leases are taken over",
    )
    callback_timeout_seconds: float = Field(
        default=6 * 60 * 60,
        gt=0,
        description="Seconds an AWAITING_CALLBACK task may wait before it fails with a timeout",
    )
    instance_id: str = Field(
        default_factory=socket.gethostname,
        description="Host identity prefixed to the per-tick lease owner tokens",
    )
    create_scheduled_releases: bool = Field(
        default=True, description="Create releases from configurations with a cadence"
    )


class RetryConfig(BaseModel):
    """Retry policy for transient collaborator failures."""

    model_config = ConfigDict(extra="ignore")

    max_attempts: int = Field(
        default=3, ge=1, le=10, description="Dispatch attempts per tick, including the first"
    )
    backoff_multiplier: float = Field(default=1.0, ge=0.0)
    backoff_min_seconds: float = Field(default=2.0, ge=0.0)
    backoff_max_seconds: float = Field(default=30.0, ge=0.0)

    @model_validator(mode="after")
    def _min_below_max(self) -> "RetryConfig":
        if self.backoff_min_seconds > self.backoff_max_seconds:
            raise ValueError("backoff_min_seconds must not exceed backoff_max_seconds")
        return self


class StorageConfig(BaseModel):
    """Persistence configuration."""

    model_config = ConfigDict(extra="ignore")

    db_path: str | None = Field(
        default=None,
        description="SQLite database path (None = releases.db in the user data dir)",
    )


class ReleaseConfigsConfig(BaseModel):
    """Where tenant release configurations are read from."""

    model_config = ConfigDict(extra="ignore")

    path: str | None = Field(
        default=None,
        description="YAML file of release configurations (None = release_configs.yaml "
        "next to this config file)",
    )


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Root log level"
    )


class ConductorConfig(BaseModel):
    """Root configuration for release-conductor."""

    model_config = ConfigDict(extra="ignore")

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    release_configs: ReleaseConfigsConfig = Field(default_factory=ReleaseConfigsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
