"""
Forecast Models - Lightweight statistical predictors for production.

- LinearRegressionModel: single-predictor OLS (e.g. irradiance -> energy)
- MovingAverageModel: mean of a fixed-size rolling window
- SeasonalDecompositionModel: day-of-year factor x linear trend
"""

from collections import deque
from datetime import datetime
from typing import Sequence

import numpy as np

from pvwatch.core.errors import InsufficientDataError, InvalidInputError, ModelNotTrainedError

MIN_SEASONAL_SAMPLES = 365


def day_of_year(ts: datetime) -> int:
    return ts.timetuple().tm_yday


class LinearRegressionModel:
    """Ordinary least squares with one predictor."""

    def __init__(self):
        self.slope = 0.0
        self.intercept = 0.0
        self.trained = False

    def train(self, x: Sequence[float], y: Sequence[float]) -> None:
        """
        Fit slope and intercept.

        Raises:
            InvalidInputError: empty input or x/y of different length
        """
        if len(x) == 0 or len(x) != len(y):
            raise InvalidInputError(
                f"Regression needs equal, non-empty inputs (got {len(x)} and {len(y)})"
            )

        xs = np.asarray(x, dtype=float)
        ys = np.asarray(y, dtype=float)
        x_mean = xs.mean()
        y_mean = ys.mean()
        denominator = float(((xs - x_mean) ** 2).sum())

        # A constant predictor explains nothing: fall back to the mean
        self.slope = 0.0 if denominator == 0 else float(((xs - x_mean) * (ys - y_mean)).sum()) / denominator
        self.intercept = float(y_mean - self.slope * x_mean)
        self.trained = True

    def predict(self, x: float) -> float:
        if not self.trained:
            raise ModelNotTrainedError("Linear regression model not trained")
        return self.slope * x + self.intercept


class MovingAverageModel:
    """Arithmetic mean over the last `window` values."""

    def __init__(self, window: int = 7):
        if window < 1:
            raise InvalidInputError("Moving average window must be at least 1")
        self.window = window
        self._values: deque[float] = deque(maxlen=window)

    def add(self, value: float) -> None:
        self._values.append(float(value))

    def extend(self, values: Sequence[float]) -> None:
        for v in values:
            self.add(v)

    def predict(self) -> float:
        if not self._values:
            return 0.0
        return sum(self._values) / len(self._values)


class SeasonalDecompositionModel:
    """
    Multiplicative seasonal model on a daily series.

    Each day of year gets a factor (day mean / overall mean); the
    deseasonalised series is fitted with a linear trend over the sample index.
    """

    def __init__(self):
        self.factors: dict[int, float] = {}
        self.trend = LinearRegressionModel()
        self.trained = False
        self.samples = 0

    def train(self, values: Sequence[float], timestamps: Sequence[datetime]) -> None:
        """
        Raises:
            InvalidInputError: values and timestamps differ in length
            InsufficientDataError: fewer than one year of samples
        """
        if len(values) != len(timestamps):
            raise InvalidInputError("Seasonal model needs one timestamp per value")
        if len(values) < MIN_SEASONAL_SAMPLES:
            raise InsufficientDataError(
                f"Seasonal model needs at least {MIN_SEASONAL_SAMPLES} samples, got {len(values)}",
                available=len(values),
                required=MIN_SEASONAL_SAMPLES,
            )

        series = np.asarray(values, dtype=float)
        overall_mean = float(series.mean())

        by_day: dict[int, list[float]] = {}
        for value, ts in zip(series, timestamps):
            by_day.setdefault(day_of_year(ts), []).append(float(value))

        self.factors = {
            day: (sum(vals) / len(vals)) / overall_mean if overall_mean else 1.0
            for day, vals in by_day.items()
        }

        deseasonalized = [
            value / self.factor(ts) if self.factor(ts) else 0.0
            for value, ts in zip(series, timestamps)
        ]
        self.trend.train(list(range(len(series))), deseasonalized)
        self.samples = len(series)
        self.trained = True

    def factor(self, ts: datetime) -> float:
        return self.factors.get(day_of_year(ts), 1.0)

    def predict(self, ts: datetime, index: int | None = None) -> float:
        """
        Predict the value for `ts`.

        Args:
            ts: Target date (selects the seasonal factor)
            index: Sample index on the trend line (default: next after training)
        """
        if not self.trained:
            raise ModelNotTrainedError("Seasonal model not trained")
        if index is None:
            index = self.samples
        return max(0.0, self.trend.predict(index) * self.factor(ts))
