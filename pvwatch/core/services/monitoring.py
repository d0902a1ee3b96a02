"""
Monitoring Service - Facade over detection, lifecycle and forecasting.

This is the object the API layer and background tasks talk to. All per-system
state lives in the services it owns; nothing is module-global.
"""

import logging
from datetime import datetime, timedelta
from typing import Sequence

from pvwatch.core.domain.anomaly import (
    Anomaly,
    AnomalyFilter,
    AnomalyStatus,
    DetectionResult,
    DetectionStatistics,
    FeedbackInput,
)
from pvwatch.core.domain.baseline import Baseline
from pvwatch.core.domain.config import DetectionConfig
from pvwatch.core.domain.forecast import ForecastResult, Horizon
from pvwatch.core.domain.telemetry import TelemetryRecord, WeatherSample
from pvwatch.core.errors import InvalidInputError
from pvwatch.core.ports.anomaly_repository import AnomalyRepository
from pvwatch.core.ports.config_store import ConfigStore
from pvwatch.core.ports.notifier import Notifier, NullNotifier
from pvwatch.core.ports.telemetry_store import TelemetryStore, WeatherProvider
from pvwatch.core.services.baseline import BaselineService
from pvwatch.core.services.detection import DetectionOrchestrator
from pvwatch.core.services.forecast import ForecastService
from pvwatch.core.services.lifecycle import AlertLifecycleManager

logger = logging.getLogger(__name__)


class MonitoringService:
    """
    Entry point of the monitoring core.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        repository: AnomalyRepository,
        telemetry: TelemetryStore,
        weather: WeatherProvider | None = None,
        notifier: Notifier | None = None,
        auto_configure: bool = False,
    ):
        notifier = notifier or NullNotifier()
        self.config_store = config_store
        self.telemetry = telemetry
        self.baselines = BaselineService(telemetry)
        self.detector = DetectionOrchestrator(
            config_store=config_store,
            repository=repository,
            baselines=self.baselines,
            telemetry=telemetry,
            weather=weather,
            notifier=notifier,
            auto_configure=auto_configure,
        )
        self.lifecycle = AlertLifecycleManager(repository, notifier)
        self.forecaster = ForecastService()

    # --- Configuration ---

    async def configure(self, config: DetectionConfig) -> None:
        await self.config_store.save_config(config)
        self.baselines.invalidate(config.system_id)
        logger.info(f"Detection config saved for '{config.system_id}'")

    async def get_config(self, system_id: str) -> DetectionConfig | None:
        return await self.detector.resolve_config(system_id)

    # --- Detection ---

    async def detect(self, system_id: str, record: TelemetryRecord) -> DetectionResult:
        """
        Analyse a record, then hand it to the telemetry store so local stores
        accumulate baseline history.

        Raises:
            InvalidInputError: the record belongs to another system
        """
        if record.system_id != system_id:
            raise InvalidInputError(
                f"Record for '{record.system_id}' submitted to system '{system_id}'"
            )
        result = await self.detector.detect(system_id, record)
        if result.skip_reason != "not_configured":
            await self.telemetry.append(record)
        return result

    async def refresh_baseline(self, system_id: str, now: datetime) -> Baseline | None:
        """Force a baseline rebuild; None if the system is not configured."""
        config = await self.detector.resolve_config(system_id)
        if config is None:
            return None
        return await self.baselines.refresh(config, now)

    def invalidate_baseline(self, system_id: str) -> None:
        """Drop the cached baseline; the next detection rebuilds it from the telemetry store."""
        self.baselines.invalidate(system_id)

    def invalidate_models(self, system_id: str) -> None:
        self.forecaster.invalidate(system_id)

    # --- Lifecycle ---

    async def list_anomalies(self, system_id: str, filters: AnomalyFilter | None = None) -> list[Anomaly]:
        return await self.lifecycle.list_anomalies(system_id, filters)

    async def acknowledge(
        self,
        anomaly_id: str,
        actor_id: str,
        feedback: FeedbackInput | None = None,
    ) -> Anomaly:
        return await self.lifecycle.acknowledge(anomaly_id, actor_id, feedback)

    async def set_status(self, anomaly_id: str, status: AnomalyStatus) -> Anomaly:
        return await self.lifecycle.set_status(anomaly_id, status)

    async def get_statistics(self, system_id: str | None = None) -> DetectionStatistics:
        return await self.lifecycle.statistics(system_id)

    # --- Forecasting ---

    async def predict(
        self,
        system_id: str,
        horizon: Horizon,
        history: Sequence[TelemetryRecord],
        weather_forecast: Sequence[WeatherSample] | None = None,
    ) -> ForecastResult:
        return await self.forecaster.predict(system_id, horizon, history, weather_forecast)

    async def predict_weather_impact(
        self,
        system_id: str,
        weather_forecast: Sequence[WeatherSample],
        capacity_kw: float | None = None,
    ) -> list[ForecastResult]:
        if capacity_kw is None:
            config = await self.detector.resolve_config(system_id)
            capacity_kw = config.system.capacity_kw if config else DetectionConfig(system_id=system_id).system.capacity_kw
        return self.forecaster.predict_weather_impact(system_id, weather_forecast, capacity_kw)

    async def history(self, system_id: str, end: datetime, days: int) -> list[TelemetryRecord]:
        """
        Records of the last `days` days before `end`.

        Raises:
            UpstreamFetchError: the telemetry store is unreachable
        """
        return await self.telemetry.history(system_id, end - timedelta(days=days), end)

    async def retrain(self, system_id: str, history: Sequence[TelemetryRecord]) -> None:
        await self.forecaster.train(system_id, history)

    async def close(self) -> None:
        await self.telemetry.close()
        if self.detector.weather is not None:
            await self.detector.weather.close()
