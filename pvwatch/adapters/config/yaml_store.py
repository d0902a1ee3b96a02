"""
YAML Config Store Adapter - File-based detection configuration.

Loads per-system detection configs from the `systems:` list of a YAML file.
"""

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from pvwatch.core.domain.config import DetectionConfig
from pvwatch.core.ports.config_store import ConfigStore

logger = logging.getLogger(__name__)


class YamlConfigStore(ConfigStore):
    """
    Config store that reads detection configs from a YAML file.
    """

    def __init__(self, config_path: str | Path):
        self.config_path = Path(config_path)
        self._configs: dict[str, DetectionConfig] = {}
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._load_configs()
            self._loaded = True

    def _load_configs(self) -> None:
        if not self.config_path.exists():
            logger.info(f"Detection config file {self.config_path} not found, starting empty")
            return

        with open(self.config_path) as f:
            data = yaml.safe_load(f) or {}

        for system_data in data.get("systems", []):
            try:
                config = DetectionConfig(**system_data)
                self._configs[config.system_id] = config
            except ValidationError as e:
                logger.error(f"Invalid detection config for {system_data.get('system_id', '?')}: {e}")

    async def list_configs(self) -> list[DetectionConfig]:
        self._ensure_loaded()
        return list(self._configs.values())

    async def get_config(self, system_id: str) -> DetectionConfig | None:
        self._ensure_loaded()
        return self._configs.get(system_id)

    async def save_config(self, config: DetectionConfig) -> None:
        self._ensure_loaded()
        self._configs[config.system_id] = config
        await self._save_to_file()

    async def delete_config(self, system_id: str) -> bool:
        self._ensure_loaded()
        if system_id in self._configs:
            del self._configs[system_id]
            await self._save_to_file()
            return True
        return False

    async def _save_to_file(self) -> None:
        systems_data = [
            c.model_dump(mode="json")
            for c in self._configs.values()
        ]

        with open(self.config_path, "w") as f:
            yaml.dump({"systems": systems_data}, f, default_flow_style=False)
