"""Notification service for request workflow emails.

Handles:
- Approval-pending emails to the approvers of the current step
- Completed / rejected emails to the requester
- Delivery logging and retry of failed deliveries
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, Dict, Any, List, Iterable

import aiosmtplib
from sqlalchemy.orm import Session

from hrdesk.core.config import get_settings
from hrdesk.db.base import utcnow
from hrdesk.db.models import (
    NotificationLog,
    NotificationChannel,
    NotificationEventType,
    NotificationStatus,
    RequestSubmission,
    User,
)

logger = logging.getLogger(__name__)


EMAIL_TEMPLATES = {
    NotificationEventType.APPROVAL_PENDING: {
        "subject": "{request_type} Request Awaiting Your Approval ({reference_code})",
        "body": """Hi {recipient_name},

{requester_name} submitted a {request_type} request that is waiting for your decision.

Reference Code: {reference_code}
Step: {step_name}

Review Request: {request_url}

Thank you for using the HR Request Management System.
""",
    },
    NotificationEventType.REQUEST_COMPLETED: {
        "subject": "{request_type} Request Completed ({reference_code})",
        "body": """Hi {recipient_name},

Your {request_type} request has been completed.
Reference Code: {reference_code}
{notes_line}
{action_label}: {request_url}

Thank you for using the HR Request Management System.
""",
    },
    NotificationEventType.REQUEST_REJECTED: {
        "subject": "{request_type} Request Rejected ({reference_code})",
        "body": """Hi {recipient_name},

Your {request_type} request has been rejected.
Reference Code: {reference_code}
{notes_line}
View Request Details: {request_url}

Thank you for using the HR Request Management System.
""",
    },
}


def build_request_context(submission: RequestSubmission, notes: Optional[str] = None) -> Dict[str, Any]:
    """Template variables shared by every request email."""
    settings = get_settings()
    request_type = submission.request_type.name if submission.request_type else "HR Request"
    requester = submission.requester
    has_file = bool(submission.fulfillment and submission.fulfillment.file_url)

    if notes is None and submission.fulfillment is not None:
        notes = submission.fulfillment.notes

    current = submission.current_action()
    return {
        "request_type": request_type,
        "reference_code": submission.reference_code,
        "requester_name": requester.display_name if requester else "A former employee",
        "request_url": f"{settings.app_url.rstrip('/')}/requests/{submission.id}",
        "notes_line": f"Notes: {notes}\n" if notes else "",
        "action_label": "View Request & Download Files" if has_file else "View Request Details",
        "step_name": (current.step_name or f"Step {current.step_index + 1}") if current else "",
    }


class NotificationService:
    """
    Sends workflow emails and records every attempt in ``notification_logs``.
    """

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    async def notify_approval_pending(self, submission: RequestSubmission, approvers: Iterable[User]) -> List[str]:
        """Tell the approvers of the current step that a decision is needed."""
        context = build_request_context(submission)
        ids = []
        seen = set()
        for user in approvers:
            if not user.email or user.id in seen or not user.is_active:
                continue
            seen.add(user.id)
            notif_id = await self._send_email(
                to_email=user.email,
                event_type=NotificationEventType.APPROVAL_PENDING,
                context={**context, "recipient_name": user.display_name},
                user_id=user.id,
                submission=submission,
            )
            if notif_id:
                ids.append(notif_id)
        return ids

    async def notify_request_completed(self, submission: RequestSubmission, notes: Optional[str] = None) -> List[str]:
        return await self._notify_requester(submission, NotificationEventType.REQUEST_COMPLETED, notes)

    async def notify_request_rejected(self, submission: RequestSubmission, notes: Optional[str] = None) -> List[str]:
        return await self._notify_requester(submission, NotificationEventType.REQUEST_REJECTED, notes)

    async def _notify_requester(
        self,
        submission: RequestSubmission,
        event_type: NotificationEventType,
        notes: Optional[str],
    ) -> List[str]:
        requester = submission.requester
        if requester is None or not requester.email:
            logger.warning(f"Submission {submission.reference_code} has no requester email, skipping {event_type.value}")
            return []

        context = build_request_context(submission, notes)
        context["recipient_name"] = requester.display_name
        notif_id = await self._send_email(
            to_email=requester.email,
            event_type=event_type,
            context=context,
            user_id=requester.id,
            submission=submission,
        )
        return [notif_id] if notif_id else []

    async def _send_email(
        self,
        to_email: str,
        event_type: NotificationEventType,
        context: Dict[str, Any],
        user_id=None,
        submission: Optional[RequestSubmission] = None,
    ) -> Optional[str]:
        """Render, log and deliver one email."""
        template = EMAIL_TEMPLATES.get(event_type)
        if not template:
            logger.warning(f"No email template for event type: {event_type}")
            return None

        subject = template["subject"].format(**context)
        body = template["body"].format(**context)

        log = NotificationLog(
            channel=NotificationChannel.EMAIL.value,
            event_type=event_type.value,
            recipient=to_email,
            user_id=user_id,
            submission_id=submission.id if submission else None,
            subject=subject,
            body=body,
            payload={"context": {k: str(v) for k, v in context.items()}},
            status=NotificationStatus.PENDING.value,
        )
        self.db.add(log)
        self.db.flush()

        await self._attempt(log)
        self.db.commit()
        if log.status == NotificationStatus.FAILED.value:
            self._queue_redelivery(log)
        return str(log.id)

    def _queue_redelivery(self, log: NotificationLog) -> None:
        """Hand a failed delivery to the notifications worker."""
        from hrdesk.workers.notification_tasks import deliver_notification

        try:
            deliver_notification.delay(str(log.id))
        except Exception:
            # The periodic sweep still picks the log up
            logger.exception(f"Could not queue redelivery of notification {log.id}")

    async def _attempt(self, log: NotificationLog) -> bool:
        log.attempts = (log.attempts or 0) + 1
        try:
            delivered = await self._deliver_email(log.recipient, log.subject, log.body)
        except Exception as e:
            logger.exception(f"Failed to send email to {log.recipient}")
            log.status = NotificationStatus.FAILED.value
            log.error_message = str(e)
            return False

        if delivered:
            log.status = NotificationStatus.SENT.value
            log.sent_at = utcnow()
            log.error_message = None
        else:
            log.status = NotificationStatus.SKIPPED.value
        return True

    async def retry(self, log: NotificationLog) -> bool:
        """Retry a failed delivery. Returns True when the email went out (or was skipped)."""
        ok = await self._attempt(log)
        self.db.commit()
        return ok

    async def _deliver_email(self, to_email: str, subject: str, body: str) -> bool:
        """Deliver via SMTP. Returns False when SMTP is not configured."""
        if not self.settings.smtp_host:
            logger.warning("SMTP not configured, skipping email delivery")
            return False

        msg = MIMEMultipart()
        msg["From"] = f"{self.settings.smtp_from_name} <{self.settings.smtp_from_email}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        await aiosmtplib.send(
            msg,
            hostname=self.settings.smtp_host,
            port=self.settings.smtp_port,
            username=self.settings.smtp_user,
            password=self.settings.smtp_password,
            start_tls=self.settings.smtp_use_tls,
        )
        return True


def _run(coro):
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    # Called from inside an event loop: run on a private loop in a worker thread
    with ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


def send_notification_sync(
    db: Session,
    event_type: NotificationEventType,
    submission: RequestSubmission,
    *,
    recipients: Optional[Iterable[User]] = None,
    notes: Optional[str] = None,
) -> List[str]:
    """Synchronous wrapper for sending one workflow notification."""
    service = NotificationService(db)

    if event_type == NotificationEventType.APPROVAL_PENDING:
        return _run(service.notify_approval_pending(submission, recipients or []))
    if event_type == NotificationEventType.REQUEST_COMPLETED:
        return _run(service.notify_request_completed(submission, notes))
    if event_type == NotificationEventType.REQUEST_REJECTED:
        return _run(service.notify_request_rejected(submission, notes))
    raise ValueError(f"Unsupported notification event: {event_type}")


def retry_notification_sync(db: Session, log: NotificationLog) -> bool:
    return _run(NotificationService(db).retry(log))
