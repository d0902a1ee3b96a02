
import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from pvwatch.adapters.config.settings_loader import load_settings
from pvwatch.adapters.config.utils import get_service
from pvwatch.core.domain.anomaly import (
    Anomaly,
    AnomalyFilter,
    AnomalySeverity,
    AnomalyStatus,
    DetectionResult,
    DetectionStatistics,
    FeedbackInput,
)
from pvwatch.core.domain.config import DetectionConfig
from pvwatch.core.domain.forecast import ForecastResult
from pvwatch.core.domain.telemetry import TelemetryRecord, WeatherSample
from pvwatch.core.errors import (
    AnomalyNotFoundError,
    InsufficientDataError,
    InvalidInputError,
    InvalidStateTransitionError,
    ModelNotTrainedError,
    UpstreamFetchError,
)
from pvwatch.core.services.monitoring import MonitoringService
from pvwatch.tasks import refresh_baseline_task, retrain_forecast_task

# Configuration (Load from YAML with Env Overrides)
settings = load_settings()

# Logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# FastAPI Application
app = FastAPI(title="pvwatch")


class AcknowledgeRequest(BaseModel):
    actor_id: str
    feedback: FeedbackInput | None = None


class StatusRequest(BaseModel):
    status: AnomalyStatus


class PredictRequest(BaseModel):
    # Validated by the forecast service so unknown horizons map to 400
    horizon: str
    history: list[TelemetryRecord] | None = None
    weather_forecast: list[WeatherSample] | None = None


class WeatherImpactRequest(BaseModel):
    weather_forecast: list[WeatherSample] = Field(min_length=1)
    capacity_kw: float | None = Field(default=None, gt=0.0)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(AnomalyNotFoundError)
async def anomaly_not_found_handler(request: Request, exc: AnomalyNotFoundError):
    return _error(404, exc)


@app.exception_handler(InvalidStateTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidStateTransitionError):
    return _error(409, exc)


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return _error(400, exc)


@app.exception_handler(InsufficientDataError)
async def insufficient_data_handler(request: Request, exc: InsufficientDataError):
    return _error(422, exc)


@app.exception_handler(ModelNotTrainedError)
async def model_not_trained_handler(request: Request, exc: ModelNotTrainedError):
    return _error(422, exc)


@app.exception_handler(UpstreamFetchError)
async def upstream_fetch_handler(request: Request, exc: UpstreamFetchError):
    return _error(502, exc)


async def _require_config(service: MonitoringService, system_id: str) -> DetectionConfig:
    config = await service.get_config(system_id)
    if config is None:
        raise HTTPException(status_code=404, detail=f"System '{system_id}' is not configured")
    return config


@app.get("/health")
def health_check():
    return {"status": "ok", "version": "0.1.0"}


# --- Configuration ---

@app.get("/systems/{system_id}/config", response_model=DetectionConfig)
async def get_config(system_id: str, service: MonitoringService = Depends(get_service)):
    return await _require_config(service, system_id)


@app.put("/systems/{system_id}/config", response_model=DetectionConfig)
async def put_config(
    system_id: str,
    config: DetectionConfig,
    service: MonitoringService = Depends(get_service),
):
    if config.system_id != system_id:
        raise InvalidInputError(f"Config for '{config.system_id}' submitted to system '{system_id}'")
    await service.configure(config)
    return config


# --- Detection ---

@app.post("/systems/{system_id}/detect", response_model=DetectionResult)
async def detect(
    system_id: str,
    record: TelemetryRecord,
    service: MonitoringService = Depends(get_service),
):
    """
    Analyse one telemetry record.

    A run skipped for lack of baseline history still returns 200 with
    `insufficient_data` set.
    """
    result = await service.detect(system_id, record)
    if result.skip_reason == "not_configured":
        raise HTTPException(status_code=404, detail=f"System '{system_id}' is not configured")
    return result


@app.get("/systems/{system_id}/anomalies", response_model=list[Anomaly])
async def list_anomalies(
    system_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    severity: list[AnomalySeverity] | None = Query(default=None),
    status: list[AnomalyStatus] | None = Query(default=None),
    limit: int = Query(default=100, ge=1),
    service: MonitoringService = Depends(get_service),
):
    await _require_config(service, system_id)
    filters = AnomalyFilter(start=start, end=end, severity=severity, status=status, limit=limit)
    return await service.list_anomalies(system_id, filters)


# --- Lifecycle ---

@app.post("/anomalies/{anomaly_id}/acknowledge", response_model=Anomaly)
async def acknowledge(
    anomaly_id: str,
    request: AcknowledgeRequest,
    service: MonitoringService = Depends(get_service),
):
    return await service.acknowledge(anomaly_id, request.actor_id, request.feedback)


@app.post("/anomalies/{anomaly_id}/status", response_model=Anomaly)
async def set_status(
    anomaly_id: str,
    request: StatusRequest,
    service: MonitoringService = Depends(get_service),
):
    return await service.set_status(anomaly_id, request.status)


@app.get("/statistics", response_model=DetectionStatistics)
async def get_statistics(
    system_id: str | None = None,
    service: MonitoringService = Depends(get_service),
):
    return await service.get_statistics(system_id)


# --- Forecasting ---

@app.post("/systems/{system_id}/predict", response_model=ForecastResult)
async def predict(
    system_id: str,
    request: PredictRequest,
    service: MonitoringService = Depends(get_service),
):
    """
    Forecast production. Without an explicit history the system's
    baseline window is fetched from the telemetry store.
    """
    history = request.history
    if history is None:
        config = await _require_config(service, system_id)
        history = await service.history(system_id, datetime.now(timezone.utc), config.historical_window_days)
    return await service.predict(system_id, request.horizon, history, request.weather_forecast)


@app.post("/systems/{system_id}/weather-impact", response_model=list[ForecastResult])
async def weather_impact(
    system_id: str,
    request: WeatherImpactRequest,
    service: MonitoringService = Depends(get_service),
):
    return await service.predict_weather_impact(system_id, request.weather_forecast, request.capacity_kw)


# --- Background tasks ---

@app.post("/systems/{system_id}/baseline/refresh")
def trigger_baseline_refresh(system_id: str, service: MonitoringService = Depends(get_service)):
    """
    Rebuild a system's baseline.

    The cached copy in this process is dropped so the next detection rebuilds
    it; the worker task refreshes the worker's own copy.
    """
    service.invalidate_baseline(system_id)
    task = refresh_baseline_task.delay(system_id)
    return {"message": "Baseline refresh triggered", "task_id": str(task.id)}


@app.post("/systems/{system_id}/forecast/train")
def trigger_forecast_training(
    system_id: str,
    days: int = Query(default=30, ge=1),
    service: MonitoringService = Depends(get_service),
):
    """
    Retrain a system's forecast models in the background.

    Models cached in this process are dropped and retrained on the next prediction.
    """
    service.invalidate_models(system_id)
    task = retrain_forecast_task.delay(system_id, days)
    return {"message": "Forecast training triggered", "task_id": str(task.id)}
