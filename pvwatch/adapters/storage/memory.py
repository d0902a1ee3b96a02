"""
In-Memory Adapters - Process-local stores for tests and single-node deployments.
"""

import bisect
import logging
from collections import deque
from datetime import datetime

from pydantic import PrivateAttr

from pvwatch.core.domain.anomaly import Anomaly, AnomalyFilter
from pvwatch.core.domain.config import DetectionConfig
from pvwatch.core.domain.telemetry import TelemetryRecord, WeatherSample
from pvwatch.core.ports.anomaly_repository import AnomalyRepository
from pvwatch.core.ports.config_store import ConfigStore
from pvwatch.core.ports.telemetry_store import TelemetryStore, WeatherProvider

logger = logging.getLogger(__name__)


class InMemoryTelemetryStore(TelemetryStore):
    """Telemetry kept per system, sorted by timestamp."""

    _records: dict[str, list[TelemetryRecord]] = PrivateAttr(default_factory=dict)

    def ingest(self, record: TelemetryRecord) -> None:
        records = self._records.setdefault(record.system_id, [])
        keys = [r.timestamp for r in records]
        records.insert(bisect.bisect_right(keys, record.timestamp), record)

    def ingest_many(self, records: list[TelemetryRecord]) -> None:
        for r in records:
            self.ingest(r)

    async def append(self, record: TelemetryRecord) -> None:
        self.ingest(record)

    async def history(self, system_id: str, start: datetime, end: datetime) -> list[TelemetryRecord]:
        return [r for r in self._records.get(system_id, []) if start <= r.timestamp <= end]


class InMemoryWeatherProvider(WeatherProvider):
    """Weather samples shared by every system."""

    _samples: list[WeatherSample] = PrivateAttr(default_factory=list)

    def add(self, sample: WeatherSample) -> None:
        self._samples.append(sample)
        self._samples.sort(key=lambda s: s.timestamp)

    async def samples(self, system_id: str, start: datetime, end: datetime) -> list[WeatherSample]:
        return [s for s in self._samples if start <= s.timestamp <= end]


class InMemoryConfigStore(ConfigStore):
    def __init__(self, configs: list[DetectionConfig] | None = None):
        self._configs = {c.system_id: c for c in configs or []}

    async def list_configs(self) -> list[DetectionConfig]:
        return list(self._configs.values())

    async def get_config(self, system_id: str) -> DetectionConfig | None:
        return self._configs.get(system_id)

    async def save_config(self, config: DetectionConfig) -> None:
        self._configs[config.system_id] = config

    async def delete_config(self, system_id: str) -> bool:
        return self._configs.pop(system_id, None) is not None


class InMemoryAnomalyRepository(AnomalyRepository):
    """
    Bounded anomaly history per system.

    Each system keeps at most `history_limit` anomalies; when full, the
    oldest one is evicted (and forgotten by `get`).
    """

    def __init__(self, history_limit: int = 1000):
        self.history_limit = history_limit
        self._by_system: dict[str, deque[str]] = {}
        self._by_id: dict[str, Anomaly] = {}

    async def add(self, anomaly: Anomaly) -> None:
        ids = self._by_system.setdefault(anomaly.system_id, deque(maxlen=self.history_limit))
        if len(ids) == ids.maxlen:
            # append below pushes the oldest id out of the ring
            evicted = ids[0]
            self._by_id.pop(evicted, None)
            logger.debug(f"Evicted anomaly {evicted} from '{anomaly.system_id}' history")
        ids.append(anomaly.id)
        self._by_id[anomaly.id] = anomaly

    async def get(self, anomaly_id: str) -> Anomaly | None:
        return self._by_id.get(anomaly_id)

    async def update(self, anomaly: Anomaly) -> None:
        if anomaly.id in self._by_id:
            self._by_id[anomaly.id] = anomaly

    async def query(self, system_id: str, filters: AnomalyFilter | None = None) -> list[Anomaly]:
        filters = filters or AnomalyFilter()
        anomalies = [self._by_id[i] for i in self._by_system.get(system_id, ())]

        if filters.start is not None:
            anomalies = [a for a in anomalies if a.timestamp >= filters.start]
        if filters.end is not None:
            anomalies = [a for a in anomalies if a.timestamp <= filters.end]
        if filters.severity:
            anomalies = [a for a in anomalies if a.severity in filters.severity]
        if filters.status:
            anomalies = [a for a in anomalies if a.status in filters.status]

        anomalies.sort(key=lambda a: a.timestamp, reverse=True)
        return anomalies[: filters.limit]

    async def all(self, system_id: str | None = None) -> list[Anomaly]:
        systems = [system_id] if system_id is not None else list(self._by_system)
        return [self._by_id[i] for s in systems for i in self._by_system.get(s, ())]
