"""Celery workers for HR Desk."""

from hrdesk.workers.notification_tasks import (
    celery_app,
    deliver_notification,
    retry_failed_notifications,
)

__all__ = [
    "celery_app",
    "deliver_notification",
    "retry_failed_notifications",
]
