"""
AnomalyRepository Port - Interface for persisting accepted anomalies.
"""

from abc import ABC, abstractmethod

from pvwatch.core.domain.anomaly import Anomaly, AnomalyFilter


class AnomalyRepository(ABC):
    """
    Abstract interface for anomaly storage.

    Implementations:
    - InMemoryAnomalyRepository: bounded per-system ring buffer
    """

    @abstractmethod
    async def add(self, anomaly: Anomaly) -> None:
        """Persist a newly accepted anomaly."""
        ...

    @abstractmethod
    async def get(self, anomaly_id: str) -> Anomaly | None:
        """Get an anomaly by id, or None if unknown (or evicted)."""
        ...

    @abstractmethod
    async def update(self, anomaly: Anomaly) -> None:
        """Persist lifecycle changes of an existing anomaly."""
        ...

    @abstractmethod
    async def query(self, system_id: str, filters: AnomalyFilter | None = None) -> list[Anomaly]:
        """
        List a system's anomalies, newest first.

        Args:
            system_id: System identifier
            filters: Optional date range / severity / status / limit
        """
        ...

    @abstractmethod
    async def all(self, system_id: str | None = None) -> list[Anomaly]:
        """All retained anomalies, for one system or every system."""
        ...
