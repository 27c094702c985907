# tests/unit/test_config_loader.py
"""Unit tests for configuration loading and path resolution."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from release_conductor.config import (
    ConductorConfig,
    RetryConfig,
    load_config,
    resolve_db_path,
    resolve_release_configs_path,
)


def test_missing_file_is_created_with_defaults(tmp_path: Path):
    """First run writes a default config without the machine-specific instance id."""
    config_path = tmp_path / "nested" / "config.yaml"

    config = load_config(config_path)

    assert config.scheduler.interval_seconds == 60.0
    assert config_path.exists()
    written = yaml.safe_load(config_path.read_text())
    assert "instance_id" not in written["scheduler"]
    assert written["retry"]["max_attempts"] == 3


def test_existing_file_is_loaded(tmp_path: Path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "scheduler:\n"
        "  interval_seconds: 15\n"
        "  instance_id: worker-a\n"
        "storage:\n"
        "  db_path: /tmp/rc.db\n"
        "unknown_section:\n"
        "  ignored: true\n"
    )

    config = load_config(config_path)

    assert config.scheduler.interval_seconds == 15
    assert config.scheduler.instance_id == "worker-a"
    assert config.storage.db_path == "/tmp/rc.db"


def test_empty_file_gives_defaults(tmp_path: Path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("")

    assert load_config(config_path).logging.level == "INFO"


def test_interval_has_a_floor(tmp_path: Path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("scheduler:\n  interval_seconds: 1\n")

    with pytest.raises(ValidationError):
        load_config(config_path)


def test_retry_backoff_bounds():
    with pytest.raises(ValidationError, match="must not exceed"):
        RetryConfig(backoff_min_seconds=10, backoff_max_seconds=5)


def test_resolve_paths_from_config(tmp_path: Path):
    config = ConductorConfig(
        storage={"db_path": str(tmp_path / "db.sqlite")},
        release_configs={"path": str(tmp_path / "apps.yaml")},
    )

    assert resolve_db_path(config) == tmp_path / "db.sqlite"
    assert resolve_release_configs_path(config) == tmp_path / "apps.yaml"


def test_release_configs_default_beside_config(tmp_path: Path):
    config_path = tmp_path / "config.yaml"

    resolved = resolve_release_configs_path(ConductorConfig(), config_path)

    assert resolved == tmp_path / "release_configs.yaml"
