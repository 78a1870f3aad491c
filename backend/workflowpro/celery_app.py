"""
Celery worker for background housekeeping (expired notification sweep).
"""
import asyncio
import logging

from celery import Celery

from .config import settings
from .database import Database
from .use_cases.notifications import purge_expired_notifications_use_case

logger = logging.getLogger(__name__)

celery_app = Celery(
    "workflowpro",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)


async def sweep_expired_notifications(db: Database | None = None) -> int:
    """Purge expired notifications. A database built here is disposed afterwards."""
    owned = db is None
    db = db or Database.from_settings(settings)
    try:
        return await purge_expired_notifications_use_case(db=db)
    finally:
        if owned:
            await db.dispose()


@celery_app.task(name="cleanup_expired_notifications")
def cleanup_expired_notifications():
    try:
        purged = asyncio.run(sweep_expired_notifications())
    except Exception:
        logger.error("Error cleaning up expired notifications", exc_info=True)
        raise
    return {"purged": purged}


# Schedule periodic processing
celery_app.conf.beat_schedule = {
    "cleanup-expired-notifications": {
        "task": "cleanup_expired_notifications",
        "schedule": float(settings.NOTIFICATION_SWEEP_INTERVAL_SECONDS),
    },
}
