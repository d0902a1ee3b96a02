
import logging

from pvwatch.adapters.config.settings_loader import load_settings
from pvwatch.adapters.config.yaml_store import YamlConfigStore
from pvwatch.adapters.http.rest import HttpTelemetryStore, HttpWeatherProvider
from pvwatch.adapters.storage.memory import InMemoryAnomalyRepository, InMemoryTelemetryStore
from pvwatch.core.domain.settings import SystemSettings
from pvwatch.core.ports.config_store import ConfigStore
from pvwatch.core.ports.notifier import Notifier, NullNotifier
from pvwatch.core.ports.telemetry_store import TelemetryStore, WeatherProvider
from pvwatch.core.services.monitoring import MonitoringService

logger = logging.getLogger(__name__)


def get_config_store(settings: SystemSettings) -> ConfigStore:
    """
    Factory to create the detection config store.
    Only the YAML backend exists today.
    """
    return YamlConfigStore(config_path=settings.detection_file)


def get_telemetry_store(settings: SystemSettings) -> TelemetryStore:
    if settings.telemetry_url:
        return HttpTelemetryStore(base_url=settings.telemetry_url, timeout=settings.http_timeout)
    logger.warning("No telemetry_url configured, baselines are built from records posted for detection")
    return InMemoryTelemetryStore()


def get_weather_provider(settings: SystemSettings) -> WeatherProvider | None:
    if settings.weather_url:
        return HttpWeatherProvider(base_url=settings.weather_url, timeout=settings.http_timeout)
    return None


def get_notifier(settings: SystemSettings) -> Notifier:
    if settings.kafka_bootstrap_servers:
        from pvwatch.adapters.notify.kafka import KafkaNotifier
        return KafkaNotifier(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            topic=settings.kafka_topic,
        )
    return NullNotifier()


def build_service(settings: SystemSettings) -> MonitoringService:
    """Wire the monitoring core to the adapters selected by settings."""
    return MonitoringService(
        config_store=get_config_store(settings),
        repository=InMemoryAnomalyRepository(history_limit=settings.anomaly_history_limit),
        telemetry=get_telemetry_store(settings),
        weather=get_weather_provider(settings),
        notifier=get_notifier(settings),
        auto_configure=settings.auto_configure,
    )


_service: MonitoringService | None = None


def get_service() -> MonitoringService:
    """Process-wide service built from the loaded settings."""
    global _service
    if _service is None:
        _service = build_service(load_settings())
    return _service
