import os

import yaml

from pvwatch.core.domain.settings import SystemSettings

# Environment variable -> settings field
ENV_OVERRIDES = {
    "REDIS_URL": "redis_url",
    "PVWATCH_TELEMETRY_URL": "telemetry_url",
    "PVWATCH_WEATHER_URL": "weather_url",
    "KAFKA_BOOTSTRAP_SERVERS": "kafka_bootstrap_servers",
    "PVWATCH_DETECTION_FILE": "detection_file",
    "PVWATCH_LOG_LEVEL": "log_level",
}


def load_settings(path: str | None = None) -> SystemSettings:
    """
    Load system settings from a YAML file, overlaid with environment variables.

    Precedence: env vars > file > defaults.

    Args:
        path: Path to config.yaml. Defaults to PVWATCH_CONFIG_FILE env var or "config.yaml".
    """
    if path is None:
        path = os.getenv("PVWATCH_CONFIG_FILE", "config.yaml")

    config_data = {}

    if os.path.exists(path):
        try:
            with open(path, "r") as f:
                config_data = yaml.safe_load(f) or {}
        except Exception as e:
            raise RuntimeError(f"Failed to load configuration from {path}: {e}")

    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            config_data[field_name] = value

    return SystemSettings(**config_data)
