"""Services for HR Desk."""

from hrdesk.services.storage import LocalFileStorage, StoredFile
from hrdesk.services.notifications import NotificationService, send_notification_sync
from hrdesk.services.documents import DocumentService

__all__ = [
    "LocalFileStorage",
    "StoredFile",
    "NotificationService",
    "send_notification_sync",
    "DocumentService",
]
