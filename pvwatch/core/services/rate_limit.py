"""
Alert-rate control - Cooldown and hourly/daily caps per system.
"""

from collections import deque
from datetime import datetime, timedelta

from pvwatch.core.domain.config import FrequencyLimits


class AlertRateLimiter:
    """
    Tracks accepted alerts for ONE system.

    Time is taken from the anomaly timestamps, not the wall clock, so replays
    of historical data are limited the same way as live data. Callers must
    serialise `admit` per system.
    """

    def __init__(self):
        self._accepted: deque[datetime] = deque()
        self._last_by_type: dict[str, datetime] = {}

    def _prune(self, now: datetime) -> None:
        horizon = now - timedelta(days=1)
        while self._accepted and self._accepted[0] <= horizon:
            self._accepted.popleft()

    def check(self, anomaly_type: str, at: datetime, limits: FrequencyLimits) -> str | None:
        """Reason the alert would be suppressed, or None if it may pass."""
        last = self._last_by_type.get(anomaly_type)
        if last is not None and abs(at - last) < timedelta(minutes=limits.cooldown_minutes):
            return "cooldown"

        self._prune(at)
        hour_ago = at - timedelta(hours=1)
        in_last_hour = sum(1 for ts in self._accepted if ts > hour_ago)
        if in_last_hour >= limits.max_per_hour:
            return "hourly_cap"
        if len(self._accepted) >= limits.max_per_day:
            return "daily_cap"
        return None

    def admit(self, anomaly_type: str, at: datetime, limits: FrequencyLimits) -> str | None:
        """
        Check and, when allowed, count the alert.

        Returns:
            None if admitted, otherwise the suppression reason
        """
        reason = self.check(anomaly_type, at, limits)
        if reason is None:
            self._accepted.append(at)
            self._last_by_type[anomaly_type] = at
        return reason
