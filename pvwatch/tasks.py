
import asyncio
import logging
from datetime import datetime, timezone

from celery import Celery

from pvwatch.adapters.config.settings_loader import load_settings
from pvwatch.adapters.config.utils import get_service

logger = logging.getLogger(__name__)

settings = load_settings()

# Celery Application
celery_app = Celery("pvwatch", broker=settings.redis_url, backend=settings.redis_url)


@celery_app.task(name="pvwatch.tasks.refresh_baseline")
def refresh_baseline_task(system_id: str):
    """
    Background task to rebuild a system's detection baseline.
    """
    logger.info(f"Starting baseline refresh for system: {system_id}")

    async def _execute():
        service = get_service()
        try:
            baseline = await service.refresh_baseline(system_id, datetime.now(timezone.utc))
        finally:
            await service.close()
        if baseline is None:
            logger.error(f"System '{system_id}' has no detection config.")
            return None
        return baseline.data_points

    try:
        data_points = asyncio.run(_execute())
        if data_points is None:
            return f"Baseline Skipped: {system_id} is not configured"
        return f"Baseline Success: {system_id} ({data_points} records)"
    except Exception as e:
        logger.error(f"Baseline refresh failed: {e}")
        raise e


@celery_app.task(name="pvwatch.tasks.retrain_forecast")
def retrain_forecast_task(system_id: str, days: int = 30):
    """
    Background task to retrain a system's forecast models on recent history.
    """
    logger.info(f"Starting forecast training for system: {system_id}")

    async def _execute():
        service = get_service()
        try:
            history = await service.history(system_id, datetime.now(timezone.utc), days)
            await service.retrain(system_id, history)
        finally:
            await service.close()
        return len(history)

    try:
        records = asyncio.run(_execute())
        return f"Training Success: {system_id} ({records} records)"
    except Exception as e:
        logger.error(f"Forecast training failed: {e}")
        raise e
