"""Database models for HR Desk."""

from hrdesk.db.models.role import Role, user_roles
from hrdesk.db.models.user import User
from hrdesk.db.models.request_type import RequestType, RequestField
from hrdesk.db.models.submission import (
    RequestSubmission,
    RequestAnswer,
    RequestApprovalAction,
    RequestApprovalApprover,
    RequestFulfillment,
    SubmissionEvent,
)
from hrdesk.db.models.leave import LeaveBalance, Holiday
from hrdesk.db.models.notification import (
    NotificationLog,
    NotificationChannel,
    NotificationEventType,
    NotificationStatus,
)

__all__ = [
    "Role",
    "user_roles",
    "User",
    "RequestType",
    "RequestField",
    "RequestSubmission",
    "RequestAnswer",
    "RequestApprovalAction",
    "RequestApprovalApprover",
    "RequestFulfillment",
    "SubmissionEvent",
    "LeaveBalance",
    "Holiday",
    "NotificationLog",
    "NotificationChannel",
    "NotificationEventType",
    "NotificationStatus",
]
