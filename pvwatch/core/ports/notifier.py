"""
Notifier Port - Outbound notification of detection and lifecycle events.
"""

from abc import ABC, abstractmethod

from pvwatch.core.domain.anomaly import Anomaly


class Notifier(ABC):
    """
    Receives events produced by the core. Implementations must not raise.
    """

    @abstractmethod
    def anomalies_detected(self, system_id: str, anomalies: list[Anomaly]) -> None:
        ...

    @abstractmethod
    def anomaly_acknowledged(self, anomaly: Anomaly) -> None:
        ...


class NullNotifier(Notifier):
    """Default notifier that discards every event."""

    def anomalies_detected(self, system_id: str, anomalies: list[Anomaly]) -> None:
        pass

    def anomaly_acknowledged(self, anomaly: Anomaly) -> None:
        pass
