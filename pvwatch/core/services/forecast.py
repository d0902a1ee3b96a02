"""
Forecast Service - Production forecasts per horizon.

1. Convert the record history into a DataFrame (energy, irradiance, hour)
2. Train (or reuse) the per-system regression and seasonal models
3. Combine models per horizon into a point estimate
4. Attach confidence, range and contributing factors
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Sequence

import pandas as pd

from pvwatch.common.singleflight import SingleFlight
from pvwatch.core.domain.forecast import ForecastResult, Horizon, PredictionFactor, PredictionRange
from pvwatch.core.domain.telemetry import TelemetryRecord, WeatherSample
from pvwatch.core.errors import InsufficientDataError, InvalidInputError
from pvwatch.core.forecasting.models import (
    MIN_SEASONAL_SAMPLES,
    LinearRegressionModel,
    MovingAverageModel,
    SeasonalDecompositionModel,
)

logger = logging.getLogger(__name__)

MIN_HISTORY = 10

BASE_CONFIDENCE: dict[str, float] = {"hour": 0.85, "day": 0.75, "week": 0.65, "month": 0.55}

# Weather forecasts lose value the further they are stretched
WEATHER_DECAY: dict[str, float] = {"hour": 1.0, "day": 1.0, "week": 0.9, "month": 0.8}

VALID_FOR_MINUTES: dict[str, int] = {"hour": 15, "day": 240, "week": 1440, "month": 10080}

WEATHER_MATCH = timedelta(minutes=30)


@dataclass
class TrainedModels:
    fingerprint: tuple
    regression: LinearRegressionModel | None
    seasonal: SeasonalDecompositionModel | None


def history_frame(history: Sequence[TelemetryRecord]) -> pd.DataFrame:
    """One row per record: timestamp (UTC), energy (kWh), irradiance (W/m², may be NaN), hour."""
    df = pd.DataFrame(
        {
            "timestamp": [r.timestamp for r in history],
            "energy": [r.production.energy_delta for r in history],
            "irradiance": [r.environmental.irradiance for r in history],
        }
    )
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df["irradiance"] = pd.to_numeric(df["irradiance"], errors="coerce")
    df = df.sort_values("timestamp", kind="stable").reset_index(drop=True)
    df["hour"] = [ts.hour for ts in df["timestamp"]]
    return df


def daily_totals(df: pd.DataFrame) -> pd.Series:
    """Energy per calendar day, only for days that have records."""
    days = [datetime(ts.year, ts.month, ts.day, tzinfo=ts.tzinfo) for ts in df["timestamp"]]
    return df.groupby(days, sort=True)["energy"].sum()


def _nearest(samples: Sequence[WeatherSample], ts: datetime, within: timedelta | None = None) -> WeatherSample | None:
    best = None
    for s in samples:
        gap = abs(s.timestamp - ts)
        if within is not None and gap > within:
            continue
        if best is None or gap < abs(best.timestamp - ts):
            best = s
    return best


def prediction_range(value: float, confidence: float, std_dev: float) -> PredictionRange:
    margin = std_dev * (1 - confidence)
    return PredictionRange(
        min=max(0.0, value - margin * 2),
        max=value + margin * 2,
        p10=max(0.0, value - margin * 1.3),
        p50=value,
        p90=value + margin * 1.3,
    )


def weather_range(value: float) -> PredictionRange:
    margin = value * 0.2
    return PredictionRange(
        min=max(0.0, value - margin),
        max=value + margin,
        p10=max(0.0, value - margin * 0.6),
        p50=value,
        p90=value + margin * 0.6,
    )


class ForecastService:
    """
    Stateless forecasts over cached per-system models.

    Models are retrained when the history changes; concurrent requests for
    the same system share one training run.
    """

    def __init__(self):
        self._models: dict[str, TrainedModels] = {}
        self._flight = SingleFlight()

    def cached(self, system_id: str) -> TrainedModels | None:
        return self._models.get(system_id)

    def invalidate(self, system_id: str) -> None:
        self._models.pop(system_id, None)

    async def train(self, system_id: str, history: Sequence[TelemetryRecord]) -> TrainedModels:
        """Train the system's models from history, replacing any cached ones."""
        if len(history) < MIN_HISTORY:
            raise InsufficientDataError(
                f"Forecasting needs at least {MIN_HISTORY} records, got {len(history)}",
                available=len(history),
                required=MIN_HISTORY,
            )
        df = history_frame(history)
        return await self._flight.do(system_id, lambda: self._train(system_id, df))

    async def _train(self, system_id: str, df: pd.DataFrame) -> TrainedModels:
        fingerprint = (len(df), df["timestamp"].iloc[-1])
        logger.info(f"Training forecast models for '{system_id}' on {len(df)} records")

        regression = None
        with_irradiance = df.dropna(subset=["irradiance"])
        if not with_irradiance.empty:
            regression = LinearRegressionModel()
            regression.train(with_irradiance["irradiance"].tolist(), with_irradiance["energy"].tolist())

        seasonal = None
        daily = daily_totals(df)
        if len(daily) >= MIN_SEASONAL_SAMPLES:
            seasonal = SeasonalDecompositionModel()
            seasonal.train(daily.tolist(), list(daily.index))

        models = TrainedModels(fingerprint=fingerprint, regression=regression, seasonal=seasonal)
        self._models[system_id] = models
        return models

    async def _models_for(self, system_id: str, df: pd.DataFrame) -> TrainedModels:
        current = self._models.get(system_id)
        if current is not None and current.fingerprint == (len(df), df["timestamp"].iloc[-1]):
            return current
        return await self._flight.do(system_id, lambda: self._train(system_id, df))

    async def predict(
        self,
        system_id: str,
        horizon: Horizon,
        history: Sequence[TelemetryRecord],
        weather_forecast: Sequence[WeatherSample] | None = None,
    ) -> ForecastResult:
        """
        Forecast production for the period following the latest record.

        Raises:
            InvalidInputError: unknown horizon
            InsufficientDataError: fewer than 10 history records
        """
        if horizon not in BASE_CONFIDENCE:
            raise InvalidInputError(f"Unsupported prediction horizon: {horizon}")
        if len(history) < MIN_HISTORY:
            raise InsufficientDataError(
                f"Forecasting needs at least {MIN_HISTORY} records, got {len(history)}",
                available=len(history),
                required=MIN_HISTORY,
            )

        weather = list(weather_forecast or [])
        df = history_frame(history)
        models = await self._models_for(system_id, df)
        now = df["timestamp"].iloc[-1].to_pydatetime()
        daily = daily_totals(df)

        if horizon == "hour":
            value, methodology, target = self._next_hour(df, models, weather, now)
        elif horizon == "day":
            value, methodology, target = self._next_day(df, models, weather, now)
        else:
            value, methodology, target = self._long_horizon(horizon, daily, models, now)

        confidence = BASE_CONFIDENCE[horizon]
        if weather:
            confidence *= WEATHER_DECAY[horizon]

        value = max(0.0, value)
        std_dev = float(df["energy"].std(ddof=0))

        return ForecastResult(
            system_id=system_id,
            horizon=horizon,
            value=value,
            confidence=confidence,
            range=prediction_range(value, confidence, std_dev),
            factors=self._factors(horizon, daily, bool(weather)),
            methodology=methodology,
            generated_at=datetime.now(timezone.utc),
            valid_for=VALID_FOR_MINUTES[horizon],
            target_time=target,
        )

    def _hourly_average(self, df: pd.DataFrame, hour: int) -> float | None:
        values = df.loc[df["hour"] == hour, "energy"]
        return float(values.mean()) if not values.empty else None

    def _next_hour(self, df, models: TrainedModels, weather, now) -> tuple[float, str, datetime]:
        target = now + timedelta(hours=1)
        sample = _nearest(weather, target)
        if sample is not None and models.regression is not None:
            return models.regression.predict(sample.irradiance), "linear_regression", target

        average = self._hourly_average(df, target.hour)
        if average is None:
            average = float(df["energy"].mean())
        return average, "historical_hourly_average", target

    def _next_day(self, df, models: TrainedModels, weather, now) -> tuple[float, str, datetime]:
        total = 0.0
        for step in range(1, 25):
            ts = now + timedelta(hours=step)
            sample = _nearest(weather, ts, WEATHER_MATCH)
            if sample is not None and models.regression is not None:
                total += max(0.0, models.regression.predict(sample.irradiance))
                continue
            total += self._hourly_average(df, ts.hour) or 0.0
        return total, "hourly_aggregation", now + timedelta(days=1)

    def _long_horizon(self, horizon, daily: pd.Series, models: TrainedModels, now) -> tuple[float, str, datetime]:
        start = now + timedelta(days=1)
        days = 7 if horizon == "week" else calendar.monthrange(start.year, start.month)[1]
        target = now + timedelta(days=days)

        if models.seasonal is not None:
            base_index = models.seasonal.samples
            total = sum(
                models.seasonal.predict(now + timedelta(days=i), index=base_index + i - 1)
                for i in range(1, days + 1)
            )
            return total, "seasonal_decomposition", target

        return float(daily.mean()) * days, "daily_average_scaling", target

    def _factors(self, horizon: str, daily: pd.Series, has_weather: bool) -> list[PredictionFactor]:
        if horizon == "hour":
            factors = [
                PredictionFactor(factor="Historical Pattern", impact=0.6, confidence=0.8,
                                 description="Based on historical hourly production patterns"),
                PredictionFactor(factor="Seasonal Variation", impact=0.2, confidence=0.7,
                                 description="Current season affects production levels"),
            ]
            if has_weather:
                factors.append(
                    PredictionFactor(factor="Weather Forecast", impact=0.8, confidence=0.9,
                                     description="Irradiance forecast applied through regression")
                )
        elif horizon == "day":
            factors = [
                PredictionFactor(factor="Historical Daily Patterns", impact=0.7, confidence=0.8,
                                 description="Based on similar hours in historical data"),
            ]
        elif horizon == "week":
            factors = [
                PredictionFactor(factor="Seasonal Patterns", impact=0.8, confidence=0.7,
                                 description="Weekly patterns vary by season"),
                PredictionFactor(factor="Historical Averages", impact=0.6, confidence=0.8,
                                 description="Based on historical daily production"),
            ]
        else:
            factors = [
                PredictionFactor(factor="Seasonal Cycle", impact=0.9, confidence=0.8,
                                 description="Strong seasonal influence on monthly production"),
                PredictionFactor(factor="System Degradation", impact=0.2, confidence=0.7,
                                 description="Gradual system degradation over time"),
            ]

        factors.append(self._trend_factor(daily))
        return factors

    def _trend_factor(self, daily: pd.Series) -> PredictionFactor:
        ma = MovingAverageModel(window=7)
        ma.extend(daily.tolist())
        recent = ma.predict()
        overall = float(daily.mean()) if len(daily) else 0.0
        impact = (recent - overall) / overall * 100 if overall else 0.0
        return PredictionFactor(
            factor="System Performance Trend",
            impact=impact,
            confidence=0.6,
            description=f"7-day average {recent:.2f} kWh/day vs {overall:.2f} kWh/day overall",
        )

    def predict_weather_impact(
        self,
        system_id: str,
        weather_forecast: Sequence[WeatherSample],
        capacity_kw: float,
    ) -> list[ForecastResult]:
        """Expected output under each forecast weather sample."""
        results = []
        for sample in weather_forecast:
            base = clear_sky_production(capacity_kw, sample.timestamp)
            irradiance_impact = sample.irradiance / 1000.0
            temperature_impact = temperature_factor(sample.temperature)
            cloud_impact = 1 - sample.cloud_cover * 0.7
            wind_impact = min(1 + sample.wind_speed * 0.01, 1.05)
            precipitation_impact = 0.8 if sample.precipitation > 0 else 1.0

            value = max(
                0.0,
                base * irradiance_impact * temperature_impact * cloud_impact * wind_impact * precipitation_impact,
            )
            results.append(
                ForecastResult(
                    system_id=system_id,
                    value=value,
                    confidence=0.8,
                    range=weather_range(value),
                    factors=[
                        PredictionFactor(factor="Solar Irradiance", impact=(irradiance_impact - 1) * 100,
                                         confidence=0.95, description=f"{sample.irradiance:.0f} W/m² expected"),
                        PredictionFactor(factor="Temperature", impact=(temperature_impact - 1) * 100,
                                         confidence=0.85, description=f"{sample.temperature:.1f}°C ambient temperature"),
                        PredictionFactor(factor="Cloud Cover", impact=(cloud_impact - 1) * 100,
                                         confidence=0.75, description=f"{sample.cloud_cover * 100:.0f}% cloud cover"),
                    ],
                    methodology="weather_correlation_model",
                    generated_at=datetime.now(timezone.utc),
                    valid_for=60,
                    target_time=sample.timestamp,
                )
            )
        return results


def clear_sky_production(capacity_kw: float, ts: datetime) -> float:
    """Bell curve between 06:00 and 18:00 peaking at noon, 80% derated."""
    hour = ts.hour
    if hour < 6 or hour > 18:
        return 0.0
    factor = max(0.0, 1 - (abs(hour - 12) / 6) ** 2)
    return capacity_kw * factor * 0.8


def temperature_factor(temperature: float) -> float:
    """Silicon loses about 0.4% per degree above 25°C."""
    return 1 - 0.004 * (temperature - 25)
