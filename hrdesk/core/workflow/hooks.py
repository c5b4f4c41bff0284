"""Post-transition hooks.

Side effects of workflow transitions are explicit handlers registered on a
``HookRegistry``, run by the engine in registration order:

- ``in_transaction`` hooks run before commit; an exception aborts the whole
  operation (e.g. insufficient leave balance on submit).
- ``after_commit`` hooks run once the transition is durable; an exception is
  logged and the transition stands (e.g. a failed email).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Iterable, Tuple

from sqlalchemy.orm import Session

from hrdesk.db.models import (
    RequestSubmission,
    SubmissionEvent,
    User,
    NotificationEventType,
)

from .errors import ValidationError
from .fields import parse_date
from .membership import RoleMembership, SqlRoleMembership
from . import leave

logger = logging.getLogger(__name__)


class HookEvent(str, Enum):
    SUBMITTED = "submitted"
    ADVANCED = "advanced"          # an approval moved the request to its next step
    APPROVED = "approved"
    FULFILLMENT = "fulfillment"
    COMPLETED = "completed"
    REJECTED = "rejected"


class HookPhase(str, Enum):
    IN_TRANSACTION = "in_transaction"
    AFTER_COMMIT = "after_commit"


@dataclass
class HookContext:
    db: Session
    submission: RequestSubmission
    event: HookEvent
    actor: Optional[User] = None
    notes: Optional[str] = None
    membership: Optional[RoleMembership] = None
    event_record: Optional[SubmissionEvent] = None


class Hook:
    """Base class for hooks. Subclasses set the class attributes and implement ``run``."""

    name: str = "hook"
    events: Tuple[HookEvent, ...] = ()
    kinds: Optional[Tuple[str, ...]] = None  # None means every request type kind
    phase: HookPhase = HookPhase.AFTER_COMMIT

    def applies(self, event: HookEvent, submission: RequestSubmission) -> bool:
        if event not in self.events:
            return False
        if self.kinds is not None and submission.request_type.kind not in self.kinds:
            return False
        return True

    def run(self, ctx: HookContext) -> None:
        raise NotImplementedError


class LeaveBalanceHook(Hook):
    """Reserves, deducts and releases leave days for leave requests."""

    name = "leave_balance"
    events = (HookEvent.SUBMITTED, HookEvent.COMPLETED, HookEvent.REJECTED)
    kinds = ("leave",)
    phase = HookPhase.IN_TRANSACTION

    def __init__(self, leave_type_key: str = "leave_type", start_key: str = "start_date", end_key: str = "end_date"):
        self.leave_type_key = leave_type_key
        self.start_key = start_key
        self.end_key = end_key

    def run(self, ctx: HookContext) -> None:
        if ctx.event == HookEvent.SUBMITTED:
            self._reserve(ctx)
            return

        reservation = self.find_reservation(ctx.submission)
        if reservation is None:
            return
        args = (ctx.db, ctx.submission.user_id, reservation["leave_type"], reservation["year"], reservation["days"])
        if ctx.event == HookEvent.COMPLETED:
            leave.deduct(*args)
        else:
            leave.release(*args)

    def _reserve(self, ctx: HookContext) -> None:
        answers = ctx.submission.answer_map()

        def value(key):
            answer = answers.get(key)
            return answer.value if answer is not None else None

        leave_type = value(self.leave_type_key)
        start = parse_date(value(self.start_key))
        end = parse_date(value(self.end_key))
        if not leave_type or start is None or end is None:
            return

        if end < start:
            raise ValidationError(errors={self.end_key: "End date must be after the start date."})
        if end.year != start.year:
            raise ValidationError(
                errors={self.end_key: "Leave cannot span two calendar years. Submit one request per year."}
            )

        days = leave.calculate_working_days(ctx.db, start, end)
        if days <= 0:
            raise ValidationError(errors={self.end_key: "The selected dates contain no working days."})

        if not leave.reserve(ctx.db, ctx.submission.user_id, leave_type, start.year, days):
            balance = leave.get_balance(ctx.db, ctx.submission.user_id, leave_type, start.year)
            available = balance.available if balance else 0
            raise ValidationError(
                errors={self.leave_type_key: f"Insufficient leave balance. Only {available:g} day(s) available."}
            )

        if ctx.event_record is not None:
            ctx.event_record.extra_data = {
                **(ctx.event_record.extra_data or {}),
                "leave": {"leave_type": leave_type, "year": start.year, "days": days},
            }

    @staticmethod
    def find_reservation(submission: RequestSubmission) -> Optional[dict]:
        for event in submission.events:
            data = (event.extra_data or {}).get("leave")
            if event.transition == "submit" and data:
                return data
        return None


class DocumentGenerationHook(Hook):
    """Renders the request type's document template once approvals finish."""

    name = "document_generation"
    events = (HookEvent.FULFILLMENT, HookEvent.COMPLETED)
    phase = HookPhase.AFTER_COMMIT

    def __init__(self, documents):
        self.documents = documents

    def applies(self, event: HookEvent, submission: RequestSubmission) -> bool:
        return (
            super().applies(event, submission)
            and bool(submission.request_type.document_template)
            and not submission.document_path
        )

    def run(self, ctx: HookContext) -> None:
        stored = self.documents.generate(ctx.submission)
        if stored is None:
            return
        ctx.submission.document_path = stored.key
        try:
            ctx.db.commit()
        except Exception:
            self.documents.storage.delete(stored.key)
            raise


class NotificationHook(Hook):
    """Emails approvers when a step opens and the requester when the request ends."""

    name = "notifications"
    events = (HookEvent.SUBMITTED, HookEvent.ADVANCED, HookEvent.COMPLETED, HookEvent.REJECTED)
    phase = HookPhase.AFTER_COMMIT

    def __init__(self, send=None):
        if send is None:
            from hrdesk.services.notifications import send_notification_sync
            send = send_notification_sync
        self.send = send

    def run(self, ctx: HookContext) -> None:
        submission = ctx.submission

        if ctx.event in (HookEvent.SUBMITTED, HookEvent.ADVANCED):
            action = submission.current_action()
            if submission.status != "pending" or action is None:
                return
            membership = ctx.membership or SqlRoleMembership(ctx.db)
            recipients = resolve_approvers(action, membership)
            if recipients:
                self.send(ctx.db, NotificationEventType.APPROVAL_PENDING, submission, recipients=recipients)
        elif ctx.event == HookEvent.COMPLETED:
            self.send(ctx.db, NotificationEventType.REQUEST_COMPLETED, submission, notes=ctx.notes)
        elif ctx.event == HookEvent.REJECTED:
            self.send(ctx.db, NotificationEventType.REQUEST_REJECTED, submission, notes=ctx.notes)


def resolve_approvers(action, membership: RoleMembership) -> list[User]:
    """Users that may act on an approval action: listed users plus current role members."""
    users: list[User] = []
    seen = set()
    for entry in action.approvers:
        if entry.approver_type == "user" and entry.user is not None:
            candidates = [entry.user]
        elif entry.approver_type == "role" and entry.role_id is not None:
            candidates = membership.members(entry.role_id)
        else:
            candidates = []
        for user in candidates:
            if user.id not in seen:
                seen.add(user.id)
                users.append(user)
    return users


@dataclass
class HookRegistry:
    """Ordered collection of hooks."""

    hooks: list = field(default_factory=list)

    def register(self, hook: Hook) -> Hook:
        self.hooks.append(hook)
        return hook

    def matching(self, phase: HookPhase, event: HookEvent, submission: RequestSubmission) -> list[Hook]:
        return [h for h in self.hooks if h.phase == phase and h.applies(event, submission)]

    def run_in_transaction(self, contexts: Iterable[HookContext]) -> None:
        """Run in-transaction hooks; the first exception propagates."""
        for ctx in contexts:
            for hook in self.matching(HookPhase.IN_TRANSACTION, ctx.event, ctx.submission):
                logger.debug(f"Running hook {hook.name} for {ctx.event.value} on {ctx.submission.reference_code}")
                hook.run(ctx)

    def run_after_commit(self, contexts: Iterable[HookContext]) -> None:
        """Run after-commit hooks; failures are logged and do not affect the transition."""
        for ctx in contexts:
            for hook in self.matching(HookPhase.AFTER_COMMIT, ctx.event, ctx.submission):
                try:
                    hook.run(ctx)
                except Exception:
                    logger.exception(
                        f"Hook {hook.name} failed for {ctx.event.value} on {ctx.submission.reference_code}"
                    )
                    ctx.db.rollback()

    @classmethod
    def default(cls, storage=None, send=None) -> "HookRegistry":
        """Leave balance, then document generation (when storage is given), then notifications."""
        registry = cls()
        registry.register(LeaveBalanceHook())
        if storage is not None:
            from hrdesk.services.documents import DocumentService
            registry.register(DocumentGenerationHook(DocumentService(storage)))
        registry.register(NotificationHook(send))
        return registry
