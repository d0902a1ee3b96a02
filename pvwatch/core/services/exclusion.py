"""
Exclusion rules - Conditions under which a record is not analysed at all.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Iterable

from pvwatch.core.domain.config import ExclusionCondition
from pvwatch.core.domain.telemetry import TelemetryRecord, WeatherSample, as_utc

logger = logging.getLogger(__name__)


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(str(value)))


def _in_windows(ts: datetime, windows: Iterable[dict], buffer: timedelta = timedelta(0)) -> bool:
    for window in windows:
        start = _as_datetime(window["start"]) - buffer
        end = _as_datetime(window["end"]) + buffer
        if start <= ts <= end:
            return True
    return False


def _weather_excluded(
    record: TelemetryRecord,
    params: dict[str, Any],
    weather: WeatherSample | None,
) -> bool:
    irradiance = record.environmental.irradiance
    if irradiance is None and weather is not None:
        irradiance = weather.irradiance
    min_irradiance = params.get("min_irradiance", 100.0)
    if irradiance is not None and irradiance < min_irradiance:
        return True

    max_precipitation = params.get("max_precipitation")
    if weather is not None and max_precipitation is not None:
        return weather.precipitation > max_precipitation
    return False


def _maintenance_excluded(record: TelemetryRecord, params: dict[str, Any]) -> bool:
    buffer = timedelta(hours=params.get("buffer_hours", 0))
    return _in_windows(record.timestamp, params.get("windows", []), buffer)


def _grid_excluded(record: TelemetryRecord, params: dict[str, Any]) -> bool:
    min_voltage = params.get("min_voltage")
    if min_voltage is not None and record.production.voltage < min_voltage:
        return True
    return _in_windows(record.timestamp, params.get("windows", []))


def _manual_excluded(record: TelemetryRecord, params: dict[str, Any]) -> bool:
    if params.get("active", False):
        return True
    return _in_windows(record.timestamp, params.get("windows", []))


def matching_exclusion(
    record: TelemetryRecord,
    conditions: Iterable[ExclusionCondition],
    weather: WeatherSample | None = None,
) -> ExclusionCondition | None:
    """
    First enabled condition (in config order) that excludes the record.

    Args:
        record: Incoming record
        conditions: Exclusion conditions from the detection config
        weather: Weather sample closest to the record, if any
    """
    for condition in conditions:
        if not condition.enabled:
            continue

        params = condition.parameters
        if condition.type == "weather":
            matched = _weather_excluded(record, params, weather)
        elif condition.type == "maintenance":
            matched = _maintenance_excluded(record, params)
        elif condition.type == "grid":
            matched = _grid_excluded(record, params)
        elif condition.type == "manual":
            matched = _manual_excluded(record, params)
        else:
            matched = False

        if matched:
            logger.debug(f"Record {record.timestamp} of '{record.system_id}' excluded by {condition.type} rule")
            return condition
    return None
