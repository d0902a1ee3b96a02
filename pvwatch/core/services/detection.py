"""
Detection Orchestrator - The per-record anomaly detection cycle.

1. Resolve the system's detection config
2. Fetch nearby weather (optional) and check exclusion rules
3. Ensure a baseline (skipping baseline-dependent methods when unavailable)
4. Run every enabled method, isolating failures
5. Consolidate, filter by score/impact, rate-limit
6. Persist accepted anomalies and notify
"""

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta

from pvwatch.core.detection.base import DetectionContext, DetectionMethod, closest_weather
from pvwatch.core.detection.methods import default_methods
from pvwatch.core.domain.anomaly import (
    Anomaly,
    AnomalyCandidate,
    AnomalyContext,
    AnomalyImpact,
    DetectionResult,
    HistoricalRange,
    SeasonalContext,
    SystemContext,
    WeatherContext,
)
from pvwatch.core.domain.baseline import Baseline
from pvwatch.core.domain.config import DetectionConfig
from pvwatch.core.domain.telemetry import TelemetryRecord, WeatherSample
from pvwatch.core.errors import InsufficientDataError, UpstreamFetchError
from pvwatch.core.ports.anomaly_repository import AnomalyRepository
from pvwatch.core.ports.config_store import ConfigStore
from pvwatch.core.ports.notifier import Notifier, NullNotifier
from pvwatch.core.ports.telemetry_store import TelemetryStore, WeatherProvider
from pvwatch.core.services.baseline import BaselineService
from pvwatch.core.services.exclusion import matching_exclusion
from pvwatch.core.services.impact import consolidate, estimate_impact, passes_thresholds
from pvwatch.core.services.rate_limit import AlertRateLimiter
from pvwatch.core.services.recommendations import recommendations_for, system_recommendations

logger = logging.getLogger(__name__)

# Methods that need a baseline to run at all
BASELINE_METHODS = frozenset({"statistical_outlier", "seasonal_anomaly"})

RECENT_HISTORY = 50


@dataclass
class SystemState:
    """Mutable detection state owned by one system."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    limiter: AlertRateLimiter = field(default_factory=AlertRateLimiter)
    recent: deque = field(default_factory=lambda: deque(maxlen=RECENT_HISTORY))
    seeded: bool = False


@dataclass
class Evaluation:
    """Candidates that survived consolidation and filtering, with their impact."""

    accepted: list[tuple[AnomalyCandidate, AnomalyImpact]] = field(default_factory=list)
    failed_methods: list[str] = field(default_factory=list)
    insufficient_data: bool = False


class DetectionOrchestrator:
    """
    Runs the detection cycle for incoming records.

    State is kept per system; no lock is shared between systems.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        repository: AnomalyRepository,
        baselines: BaselineService,
        telemetry: TelemetryStore | None = None,
        weather: WeatherProvider | None = None,
        notifier: Notifier | None = None,
        methods: dict[str, DetectionMethod] | None = None,
        auto_configure: bool = False,
    ):
        """
        Initialize the orchestrator.

        Args:
            config_store: Port to per-system detection configs
            repository: Port to store accepted anomalies
            baselines: Baseline cache
            telemetry: Port used to seed recent history for trend analysis
            weather: Optional weather feed
            notifier: Receives accepted anomalies (default: discard)
            methods: Method registry (default: built-in methods)
            auto_configure: Use a default config for systems without one
        """
        self.config_store = config_store
        self.repository = repository
        self.baselines = baselines
        self.telemetry = telemetry
        self.weather = weather
        self.notifier = notifier or NullNotifier()
        self.methods = methods if methods is not None else default_methods()
        self.auto_configure = auto_configure
        self._states: dict[str, SystemState] = {}

    def state_for(self, system_id: str) -> SystemState:
        return self._states.setdefault(system_id, SystemState())

    async def resolve_config(self, system_id: str) -> DetectionConfig | None:
        config = await self.config_store.get_config(system_id)
        if config is None and self.auto_configure:
            config = DetectionConfig(system_id=system_id)
        return config

    async def detect(self, system_id: str, record: TelemetryRecord) -> DetectionResult:
        """
        Analyse one record.

        Never raises: orchestrator-level failures produce an empty result.
        """
        try:
            return await self._detect(system_id, record)
        except Exception as e:
            logger.error(f"Detection failed for '{system_id}': {e}")
            return DetectionResult(system_id=system_id, skipped=True, skip_reason="error")

    async def _detect(self, system_id: str, record: TelemetryRecord) -> DetectionResult:
        config = await self.resolve_config(system_id)
        if config is None:
            return DetectionResult(system_id=system_id, skipped=True, skip_reason="not_configured")
        if not config.enabled:
            return DetectionResult(system_id=system_id, skipped=True, skip_reason="disabled")

        weather = await self._fetch_weather(config, record)
        nearest = closest_weather(weather, record.timestamp, timedelta(minutes=config.tuning.weather_match_minutes))

        exclusion = matching_exclusion(record, config.exclude_conditions, nearest)
        if exclusion is not None:
            return DetectionResult(
                system_id=system_id,
                skipped=True,
                skip_reason=f"excluded:{exclusion.type}",
            )

        anomalies: list[Anomaly] = []
        suppressed = 0
        state = self.state_for(system_id)
        # Records of one system are evaluated one at a time, in arrival order
        async with state.lock:
            if not state.seeded:
                await self._seed_recent(config, record, state)

            baseline = await self.baselines.get(config, record.timestamp)
            evaluation = self.evaluate(
                record,
                config,
                baseline=baseline,
                history=tuple(state.recent),
                weather=tuple(weather),
            )

            for candidate, impact in evaluation.accepted:
                reason = state.limiter.admit(candidate.type, candidate.timestamp, config.alert_thresholds.frequency)
                if reason is not None:
                    logger.debug(f"Suppressed {candidate.type} for '{system_id}': {reason}")
                    suppressed += 1
                    continue
                anomaly = self._build_anomaly(candidate, impact, record, config, baseline, nearest)
                await self.repository.add(anomaly)
                anomalies.append(anomaly)
                logger.info(
                    f"Anomaly {anomaly.id} ({anomaly.type}, {anomaly.severity}) accepted for '{system_id}'"
                )
            state.recent.append(record)

        if anomalies:
            self.notifier.anomalies_detected(system_id, anomalies)

        return DetectionResult(
            system_id=system_id,
            anomalies=anomalies,
            recommendations=system_recommendations(anomalies),
            insufficient_data=evaluation.insufficient_data,
            failed_methods=evaluation.failed_methods,
            suppressed=suppressed,
        )

    def evaluate(
        self,
        record: TelemetryRecord,
        config: DetectionConfig,
        baseline: Baseline | None = None,
        history: tuple[TelemetryRecord, ...] = (),
        weather: tuple[WeatherSample, ...] = (),
    ) -> Evaluation:
        """
        Run the enabled methods and filter their candidates.

        Pure with respect to orchestrator state: identical inputs give an
        identical candidate set.
        """
        ctx = DetectionContext(
            record=record,
            config=config,
            baseline=baseline,
            history=history,
            weather=weather,
        )
        evaluation = Evaluation()
        candidates: list[AnomalyCandidate] = []

        for name in config.detection_methods:
            method = self.methods.get(name)
            if method is None:
                logger.warning(f"Detection method '{name}' is not registered")
                continue
            try:
                candidates.extend(method.detect(ctx))
            except InsufficientDataError as e:
                logger.debug(f"Skipping '{name}' for '{record.system_id}': {e}")
                if name in BASELINE_METHODS:
                    evaluation.insufficient_data = True
            except Exception as e:
                logger.error(f"Detection method '{name}' failed for '{record.system_id}': {e}")
                evaluation.failed_methods.append(name)

        for candidate in consolidate(candidates):
            impact = estimate_impact(candidate, config.impact_model)
            if passes_thresholds(candidate, impact, config.alert_thresholds):
                evaluation.accepted.append((candidate, impact))
        return evaluation

    async def _fetch_weather(self, config: DetectionConfig, record: TelemetryRecord) -> list[WeatherSample]:
        if self.weather is None:
            return []
        window = timedelta(minutes=config.tuning.weather_match_minutes)
        try:
            return await self.weather.samples(
                config.system_id,
                record.timestamp - window,
                record.timestamp + window,
            )
        except UpstreamFetchError as e:
            logger.warning(f"Weather unavailable for '{config.system_id}': {e}")
            return []

    async def _seed_recent(self, config: DetectionConfig, record: TelemetryRecord, state: SystemState) -> None:
        """Load the tail of stored history so trend analysis can start immediately."""
        state.seeded = True
        if self.telemetry is None:
            return
        try:
            history = await self.telemetry.history(
                config.system_id,
                record.timestamp - timedelta(days=1),
                record.timestamp,
            )
        except UpstreamFetchError as e:
            logger.warning(f"Could not seed recent history for '{config.system_id}': {e}")
            return
        for r in history:
            if r.timestamp < record.timestamp:
                state.recent.append(r)

    def _build_anomaly(
        self,
        candidate: AnomalyCandidate,
        impact: AnomalyImpact,
        record: TelemetryRecord,
        config: DetectionConfig,
        baseline: Baseline | None,
        weather: WeatherSample | None,
    ) -> Anomaly:
        ts = record.timestamp
        historical = None
        seasonal_expected = seasonal_std = None
        if baseline is not None:
            stats = baseline.for_metric("ac_power") or baseline.statistics
            historical = HistoricalRange(min=stats.min, max=stats.max, mean=stats.mean, std_dev=stats.std_dev)
            profile = baseline.profile_for_hour(ts.hour)
            if profile is not None:
                seasonal_expected, seasonal_std = profile.mean, profile.std_dev

        env = record.environmental
        context = AnomalyContext(
            current_value=candidate.current_value,
            expected_value=candidate.expected_value,
            deviation=candidate.deviation,
            historical_range=historical,
            seasonal=SeasonalContext(
                time_of_day=ts.hour,
                day_of_week=ts.weekday(),
                day_of_year=ts.timetuple().tm_yday,
                seasonal_expected=seasonal_expected,
                seasonal_std_dev=seasonal_std,
            ),
            weather=WeatherContext(
                irradiance=env.irradiance if env.irradiance is not None else (weather.irradiance if weather else None),
                ambient_temp=env.ambient_temp,
                module_temp=env.module_temp,
                cloud_cover=weather.cloud_cover if weather else None,
                precipitation=weather.precipitation if weather else None,
            ),
            system=SystemContext(
                capacity_kw=config.system.capacity_kw,
                dc_power=record.production.dc_power,
                ac_power=record.production.ac_power,
                voltage=record.production.voltage,
                frequency=record.production.frequency,
                quality_confidence=record.quality_confidence,
            ),
            affected_components=candidate.affected_components,
            possible_causes=candidate.possible_causes,
        )

        return Anomaly(
            id=f"anomaly_{uuid.uuid4().hex[:12]}",
            system_id=candidate.system_id,
            timestamp=candidate.timestamp,
            type=candidate.type,
            category=candidate.category,
            severity=candidate.severity,
            score=candidate.score,
            confidence=candidate.confidence,
            description=candidate.description,
            detected_by=candidate.detected_by,
            context=context,
            impact=impact,
            recommendations=recommendations_for(candidate.type, candidate.severity),
            created_at=ts,
        )

