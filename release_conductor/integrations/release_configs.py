# release_conductor/integrations/release_configs.py
"""
Release configuration repositories.

StaticReleaseConfigRepository serves a fixed list; YamlReleaseConfigRepository
reads it from a YAML file and re-reads when the file changes.
"""

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from release_conductor.errors import ConfigurationError
from release_conductor.integrations.base import ReleaseConfigRepository
from release_conductor.models.release_config import ReleaseConfiguration

logger = logging.getLogger(__name__)


class StaticReleaseConfigRepository(ReleaseConfigRepository):
    def __init__(self, configs: list[ReleaseConfiguration] | None = None) -> None:
        self._configs = {c.config_id: c for c in configs or []}

    async def get(self, config_id: str) -> ReleaseConfiguration | None:
        return self._configs.get(config_id)

    async def list_all(self) -> list[ReleaseConfiguration]:
        return list(self._configs.values())


def load_release_configs(path: Path) -> list[ReleaseConfiguration]:
    """
    Parse release configurations from YAML.

    Accepts either a top-level list or a mapping with a `release_configs` list.

    Raises:
        ConfigurationError: If the file is malformed or a configuration is invalid
    """
    with path.open("r") as f:
        try:
            data = yaml.safe_load(f) or []
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Malformed release configuration file {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("release_configs", [])
    if not isinstance(data, list):
        raise ConfigurationError(f"Expected a list of release configurations in {path}")

    try:
        return [ReleaseConfiguration(**entry) for entry in data]
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid release configuration in {path}: {e}") from e


class YamlReleaseConfigRepository(StaticReleaseConfigRepository):
    """Release configurations loaded from a YAML file, reloaded on change."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path
        self._mtime: float | None = None
        self._warned_missing = False

    def _refresh(self) -> None:
        if not self._path.exists():
            if not self._warned_missing:
                logger.warning(f"Release configuration file not found: {self._path}")
                self._warned_missing = True
            self._configs = {}
            self._mtime = None
            return

        self._warned_missing = False
        mtime = self._path.stat().st_mtime
        if mtime == self._mtime:
            return

        configs = load_release_configs(self._path)
        self._configs = {c.config_id: c for c in configs}
        self._mtime = mtime
        logger.info(f"Loaded {len(configs)} release configuration(s) from {self._path}")

    async def get(self, config_id: str) -> ReleaseConfiguration | None:
        self._refresh()
        return await super().get(config_id)

    async def list_all(self) -> list[ReleaseConfiguration]:
        self._refresh()
        return await super().list_all()
