"""Notification delivery log."""

import uuid
from enum import Enum
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Integer, Uuid
from sqlalchemy.orm import relationship

from hrdesk.db.base import Base, utcnow


class NotificationChannel(str, Enum):
    """Available notification channels."""
    EMAIL = "email"


class NotificationEventType(str, Enum):
    """Events that can trigger notifications."""
    APPROVAL_PENDING = "approval_pending"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_REJECTED = "request_rejected"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # no transport configured


class NotificationLog(Base):
    """
    Log of sent notifications for audit and retry.

    Failed rows are picked up again by the retry worker until
    ``notification_max_attempts`` is reached.
    """
    __tablename__ = "notification_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Notification details
    channel = Column(String(50), nullable=False)
    event_type = Column(String(50), nullable=False)
    recipient = Column(String(255), nullable=False)

    # Related entities
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    submission_id = Column(Uuid, ForeignKey("request_submissions.id", ondelete="SET NULL"), nullable=True, index=True)

    # Payload
    subject = Column(String(512), nullable=True)
    body = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)

    # Status
    status = Column(String(50), nullable=False, default=NotificationStatus.PENDING.value, index=True)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, default=0)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, index=True)
    sent_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User")
    submission = relationship("RequestSubmission")

    def __repr__(self) -> str:
        return f"<NotificationLog {self.event_type} to {self.recipient}>"
