"""
ConfigStore Port - Interface for loading and persisting detection configurations.

Implementations can be file-based (YAML) or in-memory.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pvwatch.core.domain.config import DetectionConfig


class ConfigStore(ABC):
    """
    Abstract interface for per-system detection configuration storage.
    """

    @abstractmethod
    async def list_configs(self) -> list["DetectionConfig"]:
        """
        List all configured systems.

        Returns:
            List of DetectionConfig objects
        """
        ...

    @abstractmethod
    async def get_config(self, system_id: str) -> "DetectionConfig | None":
        """
        Get the configuration of one system.

        Args:
            system_id: System identifier

        Returns:
            DetectionConfig if found, None otherwise
        """
        ...

    @abstractmethod
    async def save_config(self, config: "DetectionConfig") -> None:
        """
        Save or update a system configuration.
        """
        ...

    @abstractmethod
    async def delete_config(self, system_id: str) -> bool:
        """
        Delete a system configuration.

        Returns:
            True if deleted, False if not found
        """
        ...
