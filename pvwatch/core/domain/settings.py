from typing import Literal
from pydantic import BaseModel, Field

class SystemSettings(BaseModel):
    """
    Global service configuration settings.
    """
    config_store_type: Literal["yaml"] = Field(default="yaml", description="Detection config store backend")

    # Detection config (YAML store)
    detection_file: str = Field(default="detection.yaml", description="Path to per-system detection configuration")
    auto_configure: bool = Field(default=False, description="Use default detection config for unknown systems")

    # Collaborators
    telemetry_url: str | None = Field(default=None, description="Telemetry storage REST base URL")
    weather_url: str | None = Field(default=None, description="Weather feed REST base URL")
    http_timeout: float = Field(default=30.0, description="Timeout for collaborator HTTP calls (seconds)")

    # Background tasks
    redis_url: str = Field(default="redis://localhost:6379/0", description="Celery broker and backend URL")

    # Notifications
    kafka_bootstrap_servers: str | None = Field(default=None, description="Kafka brokers; notifications disabled when unset")
    kafka_topic: str = Field(default="pvwatch-anomalies", description="Topic for anomaly events")

    # Retention
    anomaly_history_limit: int = Field(default=1000, ge=1, description="Anomalies kept per system")

    log_level: str = Field(default="INFO", description="Root log level")
