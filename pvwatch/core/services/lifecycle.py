"""
Alert Lifecycle Manager - Acknowledgement, resolution and operator feedback.

States: active -> investigating (acknowledged) -> resolved | false_positive.
Terminal states are final.
"""

import asyncio
import logging
import weakref
from datetime import datetime, timezone

from pvwatch.core.domain.anomaly import (
    TERMINAL_STATUSES,
    Anomaly,
    AnomalyFeedback,
    AnomalyFilter,
    AnomalyStatus,
    DetectionStatistics,
    FeedbackInput,
)
from pvwatch.core.errors import AnomalyNotFoundError, InvalidStateTransitionError
from pvwatch.core.ports.anomaly_repository import AnomalyRepository
from pvwatch.core.ports.notifier import Notifier, NullNotifier

logger = logging.getLogger(__name__)


class AlertLifecycleManager:
    """
    Mutates stored anomalies through the allowed transitions only.
    """

    def __init__(self, repository: AnomalyRepository, notifier: Notifier | None = None):
        self.repository = repository
        self.notifier = notifier or NullNotifier()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, anomaly_id: str) -> asyncio.Lock:
        lock = self._locks.get(anomaly_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[anomaly_id] = lock
        return lock

    async def _load(self, anomaly_id: str) -> Anomaly:
        anomaly = await self.repository.get(anomaly_id)
        if anomaly is None:
            raise AnomalyNotFoundError(anomaly_id)
        return anomaly

    async def acknowledge(
        self,
        anomaly_id: str,
        actor_id: str,
        feedback: FeedbackInput | None = None,
        now: datetime | None = None,
    ) -> Anomaly:
        """
        Acknowledge an active anomaly, optionally with operator feedback.

        Raises:
            AnomalyNotFoundError: unknown anomaly
            InvalidStateTransitionError: already acknowledged or closed
        """
        now = now or datetime.now(timezone.utc)
        async with self._lock_for(anomaly_id):
            updated = await self._acknowledge(anomaly_id, actor_id, feedback, now)
        self.notifier.anomaly_acknowledged(updated)
        return updated

    async def _acknowledge(
        self,
        anomaly_id: str,
        actor_id: str,
        feedback: FeedbackInput | None,
        now: datetime,
    ) -> Anomaly:
        anomaly = await self._load(anomaly_id)
        if anomaly.acknowledged:
            raise InvalidStateTransitionError(f"Anomaly {anomaly_id} is already acknowledged")
        if anomaly.status in TERMINAL_STATUSES:
            raise InvalidStateTransitionError(f"Anomaly {anomaly_id} is already {anomaly.status}")

        update = {
            "acknowledged": True,
            "acknowledged_by": actor_id,
            "acknowledged_at": now,
            "status": "investigating",
        }
        if feedback is not None:
            update["feedback"] = AnomalyFeedback(
                **feedback.model_dump(),
                submitted_by=actor_id,
                submitted_at=now,
            )

        updated = anomaly.model_copy(update=update)
        await self.repository.update(updated)
        logger.info(f"Anomaly {anomaly_id} acknowledged by '{actor_id}'")
        return updated

    async def set_status(
        self,
        anomaly_id: str,
        status: AnomalyStatus,
        now: datetime | None = None,
    ) -> Anomaly:
        """
        Move an anomaly forward in its lifecycle.

        Raises:
            AnomalyNotFoundError: unknown anomaly
            InvalidStateTransitionError: reopening, or leaving a terminal state
        """
        now = now or datetime.now(timezone.utc)
        async with self._lock_for(anomaly_id):
            return await self._set_status(anomaly_id, status, now)

    async def _set_status(self, anomaly_id: str, status: AnomalyStatus, now: datetime) -> Anomaly:
        anomaly = await self._load(anomaly_id)
        if anomaly.status in TERMINAL_STATUSES:
            raise InvalidStateTransitionError(
                f"Anomaly {anomaly_id} is {anomaly.status} and cannot become {status}"
            )
        if status == "active":
            raise InvalidStateTransitionError(f"Anomaly {anomaly_id} cannot be reopened")
        if status == anomaly.status:
            raise InvalidStateTransitionError(f"Anomaly {anomaly_id} is already {status}")

        update: dict = {"status": status}
        if status in TERMINAL_STATUSES:
            update["resolved_at"] = now

        updated = anomaly.model_copy(update=update)
        await self.repository.update(updated)
        logger.info(f"Anomaly {anomaly_id} moved {anomaly.status} -> {status}")
        return updated

    async def list_anomalies(self, system_id: str, filters: AnomalyFilter | None = None) -> list[Anomaly]:
        return await self.repository.query(system_id, filters)

    async def statistics(self, system_id: str | None = None) -> DetectionStatistics:
        """Aggregate counts and feedback-derived accuracy over retained anomalies."""
        anomalies = await self.repository.all(system_id)
        total = len(anomalies)
        if total == 0:
            return DetectionStatistics()

        by_severity: dict[str, int] = {}
        methods: dict[str, int] = {}
        for a in anomalies:
            by_severity[a.severity] = by_severity.get(a.severity, 0) + 1
            for m in a.detected_by:
                methods[m] = methods.get(m, 0) + 1

        false_positives = sum(1 for a in anomalies if a.false_positive)
        reviewed = [a.feedback for a in anomalies if a.feedback is not None]
        accuracy = sum(1 for f in reviewed if f.correct) / len(reviewed) if reviewed else None

        return DetectionStatistics(
            total_anomalies=total,
            critical_anomalies=by_severity.get("critical", 0),
            false_positives=false_positives,
            average_score=sum(a.score for a in anomalies) / total,
            accuracy=accuracy,
            false_positive_rate=false_positives / total,
            by_severity=by_severity,
            detection_methods=methods,
        )
