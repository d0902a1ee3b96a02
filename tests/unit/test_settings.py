import pytest

from pvwatch.adapters.config.settings_loader import load_settings
from pvwatch.adapters.config.utils import build_service, get_notifier, get_telemetry_store, get_weather_provider
from pvwatch.adapters.http.rest import HttpTelemetryStore, HttpWeatherProvider
from pvwatch.adapters.notify.kafka import KafkaNotifier
from pvwatch.adapters.storage.memory import InMemoryTelemetryStore
from pvwatch.core.domain.settings import SystemSettings
from pvwatch.core.ports.notifier import NullNotifier


def test_system_settings_defaults():
    settings = SystemSettings()
    assert settings.redis_url == "redis://localhost:6379/0"
    assert settings.detection_file == "detection.yaml"
    assert settings.telemetry_url is None
    assert settings.kafka_bootstrap_servers is None
    assert settings.anomaly_history_limit == 1000
    assert settings.auto_configure is False


def test_load_settings_from_env(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://custom:6379/1")
    monkeypatch.setenv("PVWATCH_TELEMETRY_URL", "http://storage:8080")

    settings = load_settings(path="non_existent.yaml")

    assert settings.redis_url == "redis://custom:6379/1"
    assert settings.telemetry_url == "http://storage:8080"


def test_load_settings_from_file(tmp_path):
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text("""
redis_url: "redis://file:6379/0"
detection_file: "custom_detection.yaml"
anomaly_history_limit: 50
    """)

    settings = load_settings(path=str(config_file))

    assert settings.redis_url == "redis://file:6379/0"
    assert settings.detection_file == "custom_detection.yaml"
    assert settings.anomaly_history_limit == 50
    # Defaults preserved
    assert settings.kafka_topic == "pvwatch-anomalies"


def test_load_settings_env_overrides_file(tmp_path, monkeypatch):
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text('redis_url: "redis://file:6379/0"')

    monkeypatch.setenv("REDIS_URL", "redis://env:6379/0")

    settings = load_settings(path=str(config_file))

    # Env var should hold precedence
    assert settings.redis_url == "redis://env:6379/0"


def test_load_settings_default_path_from_env(tmp_path, monkeypatch):
    config_file = tmp_path / "pvwatch.yaml"
    config_file.write_text("log_level: DEBUG")
    monkeypatch.setenv("PVWATCH_CONFIG_FILE", str(config_file))

    assert load_settings().log_level == "DEBUG"


def test_corrupt_settings_file(tmp_path):
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("redis_url: [unterminated")

    with pytest.raises(RuntimeError):
        load_settings(path=str(config_file))


def test_adapters_follow_settings(tmp_path):
    settings = SystemSettings(
        detection_file=str(tmp_path / "detection.yaml"),
        telemetry_url="http://storage:8080",
        weather_url="http://weather:8080",
        kafka_bootstrap_servers="kafka:9092",
        http_timeout=5.0,
    )

    telemetry = get_telemetry_store(settings)
    assert isinstance(telemetry, HttpTelemetryStore)
    assert telemetry.timeout == 5.0
    assert isinstance(get_weather_provider(settings), HttpWeatherProvider)
    assert isinstance(get_notifier(settings), KafkaNotifier)


def test_local_fallbacks(tmp_path):
    settings = SystemSettings(detection_file=str(tmp_path / "detection.yaml"), anomaly_history_limit=10)

    assert isinstance(get_telemetry_store(settings), InMemoryTelemetryStore)
    assert get_weather_provider(settings) is None
    assert isinstance(get_notifier(settings), NullNotifier)

    service = build_service(settings)
    assert service.lifecycle.repository.history_limit == 10
