"""
Baseline Service - Builds and caches per-system rolling baselines.

1. Fetch the historical window from the telemetry store
2. Summarise each tracked metric and the hour-of-day AC power profile
3. Cache the result until it is older than the window (or invalidated)
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Sequence

from pvwatch.common.singleflight import SingleFlight
from pvwatch.common.stats import population_std, summarize
from pvwatch.core.domain.baseline import Baseline, HourlyProfile
from pvwatch.core.domain.config import DetectionConfig
from pvwatch.core.domain.telemetry import TelemetryRecord
from pvwatch.core.errors import InsufficientDataError, UpstreamFetchError
from pvwatch.core.ports.telemetry_store import TelemetryStore

logger = logging.getLogger(__name__)

TRACKED_METRICS = ("ac_power", "performance_ratio", "efficiency")


def build_baseline(
    system_id: str,
    records: Sequence[TelemetryRecord],
    minimum_data_points: int = 100,
    window_days: int = 30,
    built_at: datetime | None = None,
) -> Baseline:
    """
    Compute a baseline from an ordered record history.

    Raises:
        InsufficientDataError: fewer than `minimum_data_points` records
    """
    if len(records) < minimum_data_points:
        raise InsufficientDataError(
            f"Baseline for '{system_id}' needs {minimum_data_points} records, got {len(records)}",
            available=len(records),
            required=minimum_data_points,
        )

    metric_statistics = {
        metric: summarize([r.metric(metric) for r in records])
        for metric in TRACKED_METRICS
    }

    by_hour: dict[int, list[float]] = defaultdict(list)
    for r in records:
        by_hour[r.timestamp.hour].append(r.production.ac_power)

    hourly_profiles = {
        hour: HourlyProfile(
            hour=hour,
            mean=sum(values) / len(values),
            std_dev=population_std(values),
            samples=len(values),
        )
        for hour, values in by_hour.items()
    }

    return Baseline(
        system_id=system_id,
        statistics=metric_statistics["performance_ratio"],
        metric_statistics=metric_statistics,
        hourly_profiles=hourly_profiles,
        window_days=window_days,
        data_points=len(records),
        built_at=built_at or records[-1].timestamp,
    )


class BaselineService:
    """
    Per-system baseline cache backed by the telemetry store.

    Concurrent requests for the same system share one rebuild.
    """

    def __init__(self, telemetry: TelemetryStore):
        self.telemetry = telemetry
        self._cache: dict[str, Baseline] = {}
        self._flight = SingleFlight()

    def cached(self, system_id: str) -> Baseline | None:
        return self._cache.get(system_id)

    def invalidate(self, system_id: str) -> None:
        self._cache.pop(system_id, None)

    def put(self, baseline: Baseline) -> None:
        self._cache[baseline.system_id] = baseline

    async def get(self, config: DetectionConfig, now: datetime) -> Baseline | None:
        """
        Return a fresh baseline, rebuilding it when absent or stale.

        Returns None when there is not enough history; a stale baseline is
        kept if the rebuild cannot reach the telemetry store.
        """
        current = self._cache.get(config.system_id)
        if current is not None and not current.is_stale(now):
            return current

        try:
            return await self.refresh(config, now)
        except InsufficientDataError as e:
            logger.info(f"Baseline unavailable for '{config.system_id}': {e}")
            return None
        except UpstreamFetchError as e:
            logger.warning(f"Baseline rebuild for '{config.system_id}' failed, using cached copy: {e}")
            return current

    async def refresh(self, config: DetectionConfig, now: datetime) -> Baseline:
        """
        Rebuild the baseline from the historical window regardless of cache state.

        Raises:
            InsufficientDataError: not enough records in the window
            UpstreamFetchError: history could not be fetched
        """
        return await self._flight.do(config.system_id, lambda: self._rebuild(config, now))

    async def _rebuild(self, config: DetectionConfig, now: datetime) -> Baseline:
        start = now - timedelta(days=config.historical_window_days)
        logger.info(f"Building baseline for '{config.system_id}' start={start} end={now}")
        records = await self.telemetry.history(config.system_id, start, now)

        try:
            baseline = build_baseline(
                config.system_id,
                records,
                minimum_data_points=config.minimum_data_points,
                window_days=config.historical_window_days,
                built_at=now,
            )
        except InsufficientDataError:
            self.invalidate(config.system_id)
            raise

        self._cache[config.system_id] = baseline
        logger.info(f"Baseline for '{config.system_id}' built from {baseline.data_points} records")
        return baseline
