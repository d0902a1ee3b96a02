"""
TelemetryStore Port - Interface for historical telemetry and weather retrieval.

Also serves as a Pydantic Model for adapter configuration validation.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from pvwatch.core.domain.telemetry import TelemetryRecord, WeatherSample


class TelemetryStore(BaseModel, ABC):
    """
    Abstract interface for the storage layer's historical-data query.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    @abstractmethod
    async def history(
        self,
        system_id: str,
        start: datetime,
        end: datetime,
    ) -> list[TelemetryRecord]:
        """
        Fetch records for a system and time window.

        Args:
            system_id: System identifier
            start: Window start (inclusive)
            end: Window end (inclusive)

        Returns:
            Records ordered by timestamp, oldest first

        Raises:
            UpstreamFetchError: if the storage layer cannot be reached
        """
        ...

    async def append(self, record: TelemetryRecord) -> None:
        """
        Keep a record seen by detection.

        Stores fed by a separate ingestion layer ignore this.
        """
        pass

    async def close(self) -> None:
        """Release connections held by the adapter."""
        pass


class WeatherProvider(BaseModel, ABC):
    """
    Abstract interface for the optional weather / forecast feed.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    @abstractmethod
    async def samples(
        self,
        system_id: str,
        start: datetime,
        end: datetime,
    ) -> list[WeatherSample]:
        """
        Fetch weather samples around a system's location.

        Raises:
            UpstreamFetchError: if the feed cannot be reached
        """
        ...

    async def close(self) -> None:
        pass
