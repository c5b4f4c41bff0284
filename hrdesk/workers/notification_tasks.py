"""Celery tasks for notification delivery.

Workflow emails are sent inline by the notification hook and recorded in
``notification_logs``. Deliveries that failed (SMTP down, timeouts) are
retried here, either one at a time or by the periodic sweep.
"""

from typing import Dict, Any
from uuid import UUID
import logging

from celery import Celery, shared_task
from celery.schedules import crontab

from hrdesk.core.config import get_settings
from hrdesk.core.logger import configure_logging
from hrdesk.db.models import NotificationLog, NotificationStatus
from hrdesk.db.session import SessionLocal
from hrdesk.services.notifications import retry_notification_sync

logger = logging.getLogger(__name__)
settings = get_settings()

celery_app = Celery(
    'hrdesk',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'hrdesk.workers.notification_tasks.deliver_notification': {'queue': 'notifications'},
        'hrdesk.workers.notification_tasks.retry_failed_notifications': {'queue': 'notifications'},
    },
    task_default_queue='default',
    beat_schedule={
        'retry-failed-notifications': {
            'task': 'hrdesk.workers.notification_tasks.retry_failed_notifications',
            'schedule': crontab(minute='*/10'),
        },
    },
)

configure_logging(settings)

RETRY_BATCH_SIZE = 100


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def deliver_notification(self, log_id: str) -> Dict[str, Any]:
    """
    Re-attempt delivery of one logged notification.

    Args:
        log_id: NotificationLog ID

    Returns:
        Delivery status dictionary
    """
    db = SessionLocal()
    try:
        log = db.get(NotificationLog, UUID(log_id))
        if log is None:
            return {"status": "error", "error": f"Notification {log_id} not found"}
        if log.status == NotificationStatus.SENT.value:
            return {"status": log.status, "attempts": log.attempts}

        delivered = retry_notification_sync(db, log)
        if not delivered and log.attempts < settings.notification_max_attempts:
            raise self.retry()

        return {"status": log.status, "attempts": log.attempts}

    except self.MaxRetriesExceededError:
        logger.error(f"Giving up on notification {log_id}")
        return {"status": NotificationStatus.FAILED.value}
    finally:
        db.close()


@shared_task
def retry_failed_notifications() -> Dict[str, Any]:
    """
    Periodic sweep over failed deliveries that still have attempts left.

    Returns:
        Counts of retried and delivered notifications
    """
    db = SessionLocal()
    try:
        logs = (
            db.query(NotificationLog)
            .filter(
                NotificationLog.status == NotificationStatus.FAILED.value,
                NotificationLog.attempts < settings.notification_max_attempts,
            )
            .order_by(NotificationLog.created_at)
            .limit(RETRY_BATCH_SIZE)
            .all()
        )

        delivered = 0
        for log in logs:
            try:
                if retry_notification_sync(db, log):
                    delivered += 1
            except Exception:
                logger.exception(f"Retry of notification {log.id} failed")
                db.rollback()

        if logs:
            logger.info(f"Retried {len(logs)} failed notification(s), {delivered} delivered")
        return {"retried": len(logs), "delivered": delivered}
    finally:
        db.close()
